"""
Load Balancer - least-requests selection among equally ranked providers.

Each selection goes to the candidate with the fewest cumulative selections
so far; ties go to the earliest candidate in the input list. Counters are
shared across every call for the lifetime of the process, so repeated calls
over the same candidate set spread evenly: M calls over N candidates (M a
multiple of N) give each candidate exactly M/N selections.

The balancer is thread-safe using threading.Lock, matching the other
shared in-memory state in the service.
"""

from collections import defaultdict
from collections.abc import Sequence
import logging
import threading

logger = logging.getLogger(__name__)


class LoadBalancer:
    """
    Least-connections style provider picker.

    Example:
        balancer = LoadBalancer()
        balancer.pick_next(["a", "b", "c"])  # "a"
        balancer.pick_next(["a", "b", "c"])  # "b"
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._request_counts: dict[str, int] = defaultdict(int)

    def pick_next(self, candidate_keys: Sequence[str]) -> str | None:
        """
        Select the next provider and count the selection.

        Args:
            candidate_keys: Equally ranked provider keys, in preference order

        Returns:
            The selected key, or None for an empty candidate list
        """
        if not candidate_keys:
            return None

        with self._lock:
            if len(candidate_keys) == 1:
                selected = candidate_keys[0]
            else:
                # min() returns the first minimum, which gives list-order ties
                selected = min(
                    candidate_keys, key=lambda key: self._request_counts[key]
                )
            self._request_counts[selected] += 1
            count = self._request_counts[selected]

        logger.debug(f"Load balancer selected {selected} (selection #{count})")
        return selected

    def get_request_count(self, key: str) -> int:
        """Cumulative selections for a key, 0 if never selected."""
        with self._lock:
            return self._request_counts.get(key, 0)

    def get_request_counts(self) -> dict[str, int]:
        """Snapshot of all counters."""
        with self._lock:
            return dict(self._request_counts)

    def reset(self) -> None:
        """
        Reset all counters.

        Primarily used for testing.
        """
        with self._lock:
            self._request_counts.clear()
