"""
Directory matching: which travelers share a selected priority or style.
"""

from typing import Dict, Iterable, List, Union

from models import CommunityStyle, SafetyPriority, UserProfile


def is_match(candidate: UserProfile, priorities: Iterable[SafetyPriority],
             styles: Iterable[CommunityStyle]) -> bool:
    """A candidate matches on ANY shared priority OR on a selected style."""
    has_priority = any(p in candidate.priorities for p in priorities)
    has_style = candidate.style in set(styles)
    return has_priority or has_style


def filter_profiles(candidates: List[UserProfile], priorities: Iterable[SafetyPriority],
                    styles: Iterable[CommunityStyle]) -> List[UserProfile]:
    """
    Return the candidates that match the selection, keeping input order.

    The selected priorities must be non-empty; that is checked by the caller
    before searching. An empty result is a normal outcome.
    """
    priorities = list(priorities)
    styles = list(styles)
    return [candidate for candidate in candidates if is_match(candidate, priorities, styles)]


def match_reasons(candidate: UserProfile, priorities: Iterable[SafetyPriority],
                  styles: Iterable[CommunityStyle]) -> Dict[str, Union[List[SafetyPriority], bool]]:
    """What a candidate has in common with the selection."""
    selected = list(priorities)
    return {
        "shared_priorities": [p for p in candidate.priorities if p in selected],
        "style_match": candidate.style in set(styles),
    }
