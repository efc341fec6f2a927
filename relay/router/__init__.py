"""
Router module: provider selection logic.

This module contains:
- matcher.py: Capability matcher ranking providers by proficiency
- balancer.py: Least-requests load balancer for equally ranked providers

Public API:
- CapabilityMatcher: Ranks provider keys for a task/language/framework
- RankedCandidate: One entry of a ranking
- LoadBalancer: Picks the least-used key among candidates
"""

from relay.router.balancer import LoadBalancer
from relay.router.matcher import CapabilityMatcher, RankedCandidate

__all__ = [
    "CapabilityMatcher",
    "RankedCandidate",
    "LoadBalancer",
]
