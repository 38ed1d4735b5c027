import pytest
from pydantic import ValidationError as PydanticValidationError

from models import (
    CommunityStyle,
    ContentReport,
    ItineraryType,
    ProfileUpdate,
    SafetyPriority,
    UserProfile,
    default_profile,
    parse_enum,
    profile_from_record,
    profile_to_record,
    taxonomy,
    update_to_record,
)


def test_labels_are_separate_from_identifiers():
    assert SafetyPriority.SOLO_FEMALE.value == "solo_female"
    assert SafetyPriority.SOLO_FEMALE.label == "Solo Female Safety"
    assert SafetyPriority.ACCESSIBILITY.label == "Accessible Travel (Mobility)"
    assert CommunityStyle.CULTURE_SEEKER.label == "Culture Seeker"
    assert ItineraryType.SIGHTSEEING.label == "Sightseeing & Landmarks"


@pytest.mark.parametrize("raw", ["solo_female", "SOLO_FEMALE", "Solo Female Safety", "solo female safety"])
def test_parse_enum_accepts_id_name_and_label(raw):
    assert parse_enum(SafetyPriority, raw) is SafetyPriority.SOLO_FEMALE


def test_parse_enum_rejects_unknown():
    with pytest.raises(ValueError):
        parse_enum(CommunityStyle, "Loud Talker")


def test_profile_priorities_are_unique_and_ordered():
    profile = UserProfile(
        id="1", name="A",
        priorities=["Solo Female Safety", "accessibility", "solo_female"],
        style="Quiet Observer",
    )
    assert profile.priorities == [SafetyPriority.SOLO_FEMALE, SafetyPriority.ACCESSIBILITY]
    assert profile.style is CommunityStyle.QUIET_OBSERVER


def test_profile_drops_custom_preferred_type():
    profile = UserProfile(id="1", name="A", preferred_itinerary_types=["custom", "trekking"])
    assert profile.preferred_itinerary_types == [ItineraryType.TREKKING]


def test_profile_from_record_is_lenient():
    row = {
        "id": "u1",
        "user_id": "u1",
        "name": "Sam",
        "priorities": ["Neurodivergent Friendly", "time_travel"],
        "style": "unknown style",
        "some_new_column": 42,
    }
    profile = profile_from_record(row)
    assert profile.priorities == [SafetyPriority.NEURODIVERGENT]
    assert profile.style is CommunityStyle.QUIET_OBSERVER
    assert profile.avatar == "👤"
    assert profile.location == ""


def test_profile_from_record_requires_identity():
    with pytest.raises(ValueError):
        profile_from_record({"name": "Nobody"})


def test_profile_to_record_stores_identifiers():
    profile = UserProfile(id="u1", user_id="u1", name="Sam", priorities=[SafetyPriority.ACCESSIBILITY],
                          style=CommunityStyle.ACTIVE_ADVOCATE,
                          preferred_itinerary_types=[ItineraryType.RELAXATION])
    record = profile_to_record(profile)
    assert record["priorities"] == ["accessibility"]
    assert record["style"] == "active_advocate"
    assert record["preferred_itinerary_types"] == ["relaxation"]
    assert record["user_id"] == "u1"
    assert profile_from_record(record) == profile


def test_update_to_record_only_contains_set_fields():
    update = ProfileUpdate(bio="Hello", priorities=["Religious Inclusivity"])
    assert update_to_record(update) == {"bio": "Hello", "priorities": ["religious_inclusive"]}


def test_default_profile():
    profile = default_profile("abc")
    assert profile.name == "New User"
    assert profile.priorities == []
    assert profile.style is CommunityStyle.QUIET_OBSERVER


def test_content_report_reason_must_be_known():
    assert ContentReport(reason="Outdated information").reason == "Outdated information"
    with pytest.raises(PydanticValidationError):
        ContentReport(reason="Boring")


def test_taxonomy_lists_everything():
    vocab = taxonomy()
    assert len(vocab["priorities"]) == 5
    assert len(vocab["styles"]) == 4
    assert {"id": "custom", "label": "Custom"} in vocab["itinerary_types"]
    assert vocab["day_counts"] == [1, 2, 3, 5, 7]
