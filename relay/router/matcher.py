"""
Capability Matcher - ranks providers for a task.

Given a task type and optionally a language and framework, the matcher
filters the registry down to providers that declare the capability and
orders them by proficiency (expert first). Ties keep registry order, so the
same registry always yields the same ranking.

An unsupported task yields an empty ranking, never an exception; callers
decide what "nothing can do this" means for them.
"""

from dataclasses import dataclass
from itertools import groupby
import logging

from relay.registry.models import Proficiency, ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedCandidate:
    """
    One provider in a ranking.

    Attributes:
        key: Provider key
        proficiency: Declared proficiency for the ranked task
        position: Declared registry position (tie-breaker)
    """

    key: str
    proficiency: Proficiency
    position: int


class CapabilityMatcher:
    """
    Rank registered providers by declared proficiency for a task.

    Usage:
        matcher = CapabilityMatcher(registry)
        matcher.rank("code_generation", language="python")
        # ['primary', 'gpt4-turbo', 'grok', ...]
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    def candidates(
        self,
        task_type: str,
        language: str | None = None,
        framework: str | None = None,
    ) -> list[RankedCandidate]:
        """
        Filter and order the providers able to serve a task.

        Args:
            task_type: Task tag, e.g. "code_generation"
            language: Optional language the capability must list
            framework: Optional framework the capability must list

        Returns:
            RankedCandidate list, most proficient first, registry order on ties
        """
        task_type = getattr(task_type, "value", task_type)
        matched: list[RankedCandidate] = []

        for position, descriptor in enumerate(self._registry.list_available()):
            capability = descriptor.capability_for(task_type)
            if capability is None:
                continue
            if language and not capability.supports_language(language):
                continue
            if framework and not capability.supports_framework(framework):
                continue
            matched.append(
                RankedCandidate(
                    key=descriptor.key,
                    proficiency=capability.proficiency,
                    position=position,
                )
            )

        # sorted() is stable and positions are unique, so order is deterministic
        matched.sort(key=lambda c: (-c.proficiency.rank, c.position))

        logger.debug(
            f"Ranked {len(matched)} provider(s) for task={task_type} "
            f"language={language} framework={framework}"
        )
        return matched

    def rank(
        self,
        task_type: str,
        language: str | None = None,
        framework: str | None = None,
    ) -> list[str]:
        """
        Return provider keys ordered by proficiency for a task.

        Returns:
            Ordered list of provider keys, empty when nothing supports the task
        """
        return [c.key for c in self.candidates(task_type, language, framework)]

    def rank_groups(self, task_type: str) -> list[list[str]]:
        """
        Return the ranking split into equal-proficiency groups.

        The provider manager load-balances inside each group before
        falling through to the next, less proficient one.

        Returns:
            List of key groups, most proficient group first
        """
        ranked = self.candidates(task_type)
        return [
            [c.key for c in group]
            for _, group in groupby(ranked, key=lambda c: c.proficiency)
        ]
