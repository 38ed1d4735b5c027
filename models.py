"""
Shared data models for the Safe Passage backend.
This module contains the closed vocabularies (priorities, community styles,
itinerary types) and the Pydantic models used across the other modules.
"""

import logging
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


# =============================================================================
# TAXONOMY
# =============================================================================
class SafetyPriority(str, Enum):
    SOLO_FEMALE = "solo_female"
    ACCESSIBILITY = "accessibility"
    MINORITY_SUPPORT = "minority_support"
    RELIGIOUS_INCLUSIVE = "religious_inclusive"
    NEURODIVERGENT = "neurodivergent"

    @property
    def label(self) -> str:
        return PRIORITY_LABELS[self]


class CommunityStyle(str, Enum):
    QUIET_OBSERVER = "quiet_observer"
    ACTIVE_ADVOCATE = "active_advocate"
    COMMUNITY_BUILDER = "community_builder"
    CULTURE_SEEKER = "culture_seeker"

    @property
    def label(self) -> str:
        return STYLE_LABELS[self]


class ItineraryType(str, Enum):
    TREKKING = "trekking"
    SIGHTSEEING = "sightseeing"
    FOOD_EXPLORATION = "food_exploration"
    CULTURAL_IMMERSION = "cultural_immersion"
    ADVENTURE_SPORTS = "adventure_sports"
    RELAXATION = "relaxation"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return ITINERARY_TYPE_LABELS[self]


# Display labels live apart from the identifiers so a label can be renamed
# without touching stored data.
PRIORITY_LABELS: Dict[SafetyPriority, str] = {
    SafetyPriority.SOLO_FEMALE: "Solo Female Safety",
    SafetyPriority.ACCESSIBILITY: "Accessible Travel (Mobility)",
    SafetyPriority.MINORITY_SUPPORT: "Minority Community Support",
    SafetyPriority.RELIGIOUS_INCLUSIVE: "Religious Inclusivity",
    SafetyPriority.NEURODIVERGENT: "Neurodivergent Friendly",
}

STYLE_LABELS: Dict[CommunityStyle, str] = {
    CommunityStyle.QUIET_OBSERVER: "Quiet Observer",
    CommunityStyle.ACTIVE_ADVOCATE: "Active Advocate",
    CommunityStyle.COMMUNITY_BUILDER: "Community Builder",
    CommunityStyle.CULTURE_SEEKER: "Culture Seeker",
}

ITINERARY_TYPE_LABELS: Dict[ItineraryType, str] = {
    ItineraryType.TREKKING: "Trekking & Hiking",
    ItineraryType.SIGHTSEEING: "Sightseeing & Landmarks",
    ItineraryType.FOOD_EXPLORATION: "Food Exploration",
    ItineraryType.CULTURAL_IMMERSION: "Cultural Immersion",
    ItineraryType.ADVENTURE_SPORTS: "Adventure Sports",
    ItineraryType.RELAXATION: "Relaxation & Wellness",
    ItineraryType.CUSTOM: "Custom",
}

_LABEL_TABLES: Dict[type, Dict[Any, str]] = {
    SafetyPriority: PRIORITY_LABELS,
    CommunityStyle: STYLE_LABELS,
    ItineraryType: ITINERARY_TYPE_LABELS,
}

ALLOWED_DAY_COUNTS = (1, 2, 3, 5, 7)

REPORT_REASONS = [
    "Unsafe Recommendation",
    "Biased or discriminatory language",
    "Outdated information",
    "Promotes unethical business",
    "Other",
]


def parse_enum(enum_cls: Type[E], raw: Any) -> E:
    """
    Resolve a vocabulary value from its identifier, its enum name or its
    display label. Raises ValueError for anything else.
    """
    if isinstance(raw, enum_cls):
        return raw
    if not isinstance(raw, str):
        raise ValueError(f"{raw!r} is not a valid {enum_cls.__name__}")

    text = raw.strip()
    for member in enum_cls:
        if text == member.value or text == member.name:
            return member
    for member, label in _LABEL_TABLES[enum_cls].items():
        if text.lower() == label.lower():
            return member
    raise ValueError(f"{raw!r} is not a valid {enum_cls.__name__}")


def _unique(values: Iterable[E]) -> List[E]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _coerce_list(enum_cls: Type[E], value: Any) -> List[E]:
    if value is None:
        return []
    if isinstance(value, (str, Enum)):
        value = [value]
    return _unique(parse_enum(enum_cls, item) for item in value)


def taxonomy() -> Dict[str, List[Dict[str, str]]]:
    """The whole closed vocabulary, id + label, for building selectors."""
    return {
        "priorities": [{"id": p.value, "label": p.label} for p in SafetyPriority],
        "styles": [{"id": s.value, "label": s.label} for s in CommunityStyle],
        "itinerary_types": [{"id": t.value, "label": t.label} for t in ItineraryType],
        "day_counts": list(ALLOWED_DAY_COUNTS),
        "report_reasons": list(REPORT_REASONS),
    }


# =============================================================================
# PROFILES
# =============================================================================
class UserProfile(BaseModel):
    """One traveler as shown in the directory and on the profile page."""
    id: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    name: str
    avatar: str = "👤"
    location: str = ""
    priorities: List[SafetyPriority] = []
    style: CommunityStyle = CommunityStyle.QUIET_OBSERVER
    bio: str = ""
    preferred_itinerary_types: List[ItineraryType] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("priorities", mode="before")
    @classmethod
    def _priorities(cls, value):
        return _coerce_list(SafetyPriority, value)

    @field_validator("style", mode="before")
    @classmethod
    def _style(cls, value):
        return parse_enum(CommunityStyle, value)

    @field_validator("preferred_itinerary_types", mode="before")
    @classmethod
    def _types(cls, value):
        # Custom is a free-text style, never a stored preference
        return [t for t in _coerce_list(ItineraryType, value) if t != ItineraryType.CUSTOM]


class ProfileUpdate(BaseModel):
    """Partial profile edit. Only fields that are set get written."""
    name: Optional[str] = None
    avatar: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    priorities: Optional[List[SafetyPriority]] = None
    style: Optional[CommunityStyle] = None
    preferred_itinerary_types: Optional[List[ItineraryType]] = None

    @field_validator("priorities", mode="before")
    @classmethod
    def _priorities(cls, value):
        return None if value is None else _coerce_list(SafetyPriority, value)

    @field_validator("style", mode="before")
    @classmethod
    def _style(cls, value):
        return None if value is None else parse_enum(CommunityStyle, value)

    @field_validator("preferred_itinerary_types", mode="before")
    @classmethod
    def _types(cls, value):
        if value is None:
            return None
        return [t for t in _coerce_list(ItineraryType, value) if t != ItineraryType.CUSTOM]


def default_profile(user_id: str, email: Optional[str] = None) -> UserProfile:
    """Placeholder profile used when no row exists for a signed-in user."""
    return UserProfile(
        id=user_id,
        user_id=user_id,
        email=email,
        name="New User",
        avatar="👤",
        location="",
        priorities=[],
        style=CommunityStyle.QUIET_OBSERVER,
        bio="",
    )


def _lenient_list(enum_cls: Type[E], raw: Any, field_name: str) -> List[E]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = [raw]
    values = []
    for item in raw:
        try:
            values.append(parse_enum(enum_cls, item))
        except ValueError:
            logger.warning(f"Dropping unknown {field_name} value from stored profile: {item!r}")
    return values


def profile_from_record(row: Dict[str, Any]) -> UserProfile:
    """
    Map a loosely typed database row onto a UserProfile.

    `user_id` (or `id`) is required; unknown columns are ignored, unknown
    vocabulary values dropped and missing text fields defaulted.
    """
    if not isinstance(row, dict):
        raise ValueError("Profile record must be a mapping")

    user_id = row.get("user_id") or row.get("id")
    if not user_id:
        raise ValueError("Profile record has neither user_id nor id")

    try:
        style = parse_enum(CommunityStyle, row.get("style"))
    except ValueError:
        logger.warning(f"Unknown style {row.get('style')!r} on profile {user_id}, using default")
        style = CommunityStyle.QUIET_OBSERVER

    return UserProfile(
        id=str(row.get("id") or user_id),
        user_id=str(user_id),
        email=row.get("email"),
        name=row.get("name") or "New User",
        avatar=row.get("avatar") or "👤",
        location=row.get("location") or "",
        priorities=_lenient_list(SafetyPriority, row.get("priorities"), "priority"),
        style=style,
        bio=row.get("bio") or "",
        preferred_itinerary_types=_lenient_list(
            ItineraryType, row.get("preferred_itinerary_types"), "itinerary type"
        ),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def profile_to_record(profile: UserProfile) -> Dict[str, Any]:
    """Database row for a profile. Vocabulary values are stored as identifiers."""
    return {
        "id": profile.id,
        "user_id": profile.user_id or profile.id,
        "email": profile.email,
        "name": profile.name,
        "avatar": profile.avatar,
        "location": profile.location,
        "priorities": [p.value for p in profile.priorities],
        "style": profile.style.value,
        "bio": profile.bio,
        "preferred_itinerary_types": [t.value for t in profile.preferred_itinerary_types],
        "created_at": profile.created_at,
        "updated_at": profile.updated_at,
    }


def update_to_record(update: ProfileUpdate) -> Dict[str, Any]:
    """Only the fields present in the update, in storage form."""
    return update.model_dump(exclude_none=True, mode="json")


# =============================================================================
# GENERATION RESULTS
# =============================================================================
class GroundingSource(BaseModel):
    title: str
    uri: str


class ItineraryResult(BaseModel):
    markdown: str
    sources: List[GroundingSource] = []


class IcebreakerResult(BaseModel):
    message: str


# =============================================================================
# REQUESTS
# =============================================================================
class SignInRequest(BaseModel):
    email: str = ""
    password: str = ""


class SignUpRequest(BaseModel):
    email: str = ""
    password: str = ""
    name: str = ""
    avatar: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    priorities: List[SafetyPriority] = []
    style: Optional[CommunityStyle] = None
    preferred_itinerary_types: List[ItineraryType] = []

    @field_validator("priorities", mode="before")
    @classmethod
    def _priorities(cls, value):
        return _coerce_list(SafetyPriority, value)

    @field_validator("style", mode="before")
    @classmethod
    def _style(cls, value):
        return None if value is None else parse_enum(CommunityStyle, value)

    @field_validator("preferred_itinerary_types", mode="before")
    @classmethod
    def _types(cls, value):
        return [t for t in _coerce_list(ItineraryType, value) if t != ItineraryType.CUSTOM]


class ItineraryRequest(BaseModel):
    """Itinerary form input. Checked by itinerary_planner.validate_request."""
    destination: str = ""
    priorities: List[SafetyPriority] = []
    days: int = 3
    itinerary_types: List[ItineraryType] = []
    custom_type: Optional[str] = None
    use_profile_data: bool = False

    @field_validator("priorities", mode="before")
    @classmethod
    def _priorities(cls, value):
        return _coerce_list(SafetyPriority, value)

    @field_validator("itinerary_types", mode="before")
    @classmethod
    def _types(cls, value):
        return _coerce_list(ItineraryType, value)


class SearchForm(BaseModel):
    """Match search form input. Checked by search_flow.validate_form."""
    destination: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    priorities: List[SafetyPriority] = [SafetyPriority.SOLO_FEMALE]
    styles: List[CommunityStyle] = [CommunityStyle.CULTURE_SEEKER]
    use_profile_data: bool = False

    @field_validator("priorities", mode="before")
    @classmethod
    def _priorities(cls, value):
        return _coerce_list(SafetyPriority, value)

    @field_validator("styles", mode="before")
    @classmethod
    def _styles(cls, value):
        return _coerce_list(CommunityStyle, value)


class ContentReport(BaseModel):
    """A user flag on generated content."""
    reason: str
    details: str = ""
    content: str = ""

    @field_validator("reason")
    @classmethod
    def _reason(cls, value):
        if value not in REPORT_REASONS:
            raise ValueError(f"Unknown report reason: {value!r}")
        return value
