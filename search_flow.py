"""
Match search wizard: INPUT -> LOADING -> RESULTS, with RESULTS -> INPUT on reset.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from directory_filter import filter_profiles, match_reasons
from errors import InvalidTransition, ValidationError
from models import SafetyPriority, SearchForm, UserProfile

logger = logging.getLogger(__name__)


class SearchState(str, Enum):
    INPUT = "INPUT"
    LOADING = "LOADING"
    RESULTS = "RESULTS"


@dataclass
class MatchResult:
    profile: UserProfile
    shared_priorities: List[SafetyPriority] = field(default_factory=list)
    style_match: bool = False


def apply_profile_data(form: SearchForm, profile: Optional[UserProfile]) -> SearchForm:
    """Replace the form selections with the profile's when the toggle is on."""
    if not form.use_profile_data or profile is None:
        return form
    updates = {}
    if profile.priorities:
        updates["priorities"] = list(profile.priorities)
    if profile.style:
        updates["styles"] = [profile.style]
    return form.model_copy(update=updates)


def validate_form(form: SearchForm) -> SearchForm:
    destination = (form.destination or "").strip()
    if not destination:
        raise ValidationError("Please enter a destination.")
    if not form.priorities:
        raise ValidationError("Please select at least one Safety & Justice Priority")
    if form.start_date and form.end_date and form.end_date < form.start_date:
        raise ValidationError("Return date cannot be before the departure date.")
    return form.model_copy(update={"destination": destination})


class SearchFlow:
    """
    Per-user search wizard state. The artificial latency only mimics a real
    search and defaults to zero.
    """

    def __init__(self, simulated_latency: float = 0.0, sleep: Callable[[float], None] = time.sleep):
        self.simulated_latency = simulated_latency
        self._sleep = sleep
        self.state = SearchState.INPUT
        self.form: Optional[SearchForm] = None
        self.results: List[MatchResult] = []
        self.icebreakers: Dict[str, str] = {}
        self.busy: Set[str] = set()
        self._connect_lock = threading.Lock()

    def submit(self, form: SearchForm, profile: Optional[UserProfile] = None) -> SearchForm:
        if self.state != SearchState.INPUT:
            raise InvalidTransition(f"Cannot start a search while in {self.state.value}")
        form = validate_form(apply_profile_data(form, profile))
        self.form = form
        self.state = SearchState.LOADING
        return form

    def complete(self, candidates: List[UserProfile]) -> List[MatchResult]:
        if self.state != SearchState.LOADING:
            raise InvalidTransition(f"No search in progress (state {self.state.value})")
        if self.simulated_latency > 0:
            self._sleep(self.simulated_latency)

        matches = filter_profiles(candidates, self.form.priorities, self.form.styles)
        self.results = []
        for candidate in matches:
            reasons = match_reasons(candidate, self.form.priorities, self.form.styles)
            self.results.append(MatchResult(profile=candidate, **reasons))
        self.state = SearchState.RESULTS
        logger.info(f"Search for {self.form.destination} matched {len(self.results)} of {len(candidates)} travelers")
        return self.results

    def run(self, form: SearchForm, candidates: List[UserProfile],
            profile: Optional[UserProfile] = None) -> List[MatchResult]:
        self.submit(form, profile)
        return self.complete(candidates)

    def abort(self):
        """Back to INPUT when the directory could not be loaded."""
        if self.state == SearchState.LOADING:
            self.state = SearchState.INPUT

    def reset(self):
        if self.state == SearchState.LOADING:
            raise InvalidTransition("Cannot reset while a search is loading")
        self.state = SearchState.INPUT
        self.results = []
        self.icebreakers = {}

    def find_result(self, user_id: str) -> Optional[MatchResult]:
        for result in self.results:
            if user_id in (result.profile.id, result.profile.user_id):
                return result
        return None

    # Icebreaker slots: one busy flag and one result per target
    def begin_connect(self, target_id: str):
        if self.state != SearchState.RESULTS:
            raise InvalidTransition("Connect is only available on search results")
        with self._connect_lock:
            if target_id in self.busy:
                raise InvalidTransition(f"Already drafting a message for {target_id}")
            self.busy.add(target_id)
            self.icebreakers.pop(target_id, None)

    def finish_connect(self, target_id: str, message: Optional[str]):
        with self._connect_lock:
            self.busy.discard(target_id)
            if message is not None:
                self.icebreakers[target_id] = message

    def snapshot(self) -> Dict:
        with self._connect_lock:
            icebreakers = dict(self.icebreakers)
            busy = sorted(self.busy)
        return {
            "state": self.state.value,
            "form": self.form.model_dump(mode="json") if self.form else None,
            "results": [
                {
                    "profile": r.profile.model_dump(mode="json"),
                    "shared_priorities": [p.value for p in r.shared_priorities],
                    "style_match": r.style_match,
                }
                for r in self.results
            ],
            "icebreakers": icebreakers,
            "busy": busy,
        }
