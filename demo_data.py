"""
Fixed traveler directory used in demo mode, when no hosted backend is configured.
"""

from datetime import datetime, timezone
from typing import List

from models import CommunityStyle, ItineraryType, SafetyPriority, UserProfile

DEMO_EMAIL = "demo@safepassage.network"
DEMO_PASSWORD = "DemoPass2024!"


def is_demo_credentials(email: str, password: str) -> bool:
    return email == DEMO_EMAIL and password == DEMO_PASSWORD


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_demo_users() -> List[UserProfile]:
    """A fresh copy of the demo directory. The first entry is the demo account."""
    created = _now()
    return [
        UserProfile(
            id="demo-user-1",
            user_id="demo-auth-1",
            email=DEMO_EMAIL,
            name="Sarah Chen",
            avatar="👩‍💼",
            location="San Francisco, CA",
            priorities=[SafetyPriority.SOLO_FEMALE, SafetyPriority.MINORITY_SUPPORT],
            style=CommunityStyle.ACTIVE_ADVOCATE,
            bio="Solo traveler passionate about supporting local communities and exploring hidden gems. Always ready to share safety tips!",
            preferred_itinerary_types=[ItineraryType.FOOD_EXPLORATION, ItineraryType.CULTURAL_IMMERSION],
            created_at=created,
            updated_at=created,
        ),
        UserProfile(
            id="mock-user-2",
            user_id="mock-auth-2",
            email="alex@example.com",
            name="Alex Rivera",
            avatar="🧑‍🦽",
            location="Austin, TX",
            priorities=[SafetyPriority.ACCESSIBILITY, SafetyPriority.NEURODIVERGENT],
            style=CommunityStyle.COMMUNITY_BUILDER,
            bio="Accessibility advocate making travel inclusive for everyone. Love connecting travelers with similar needs.",
            preferred_itinerary_types=[ItineraryType.RELAXATION, ItineraryType.SIGHTSEEING],
            created_at=created,
            updated_at=created,
        ),
        UserProfile(
            id="mock-user-3",
            user_id="mock-auth-3",
            email="priya@example.com",
            name="Priya Patel",
            avatar="👩‍🎨",
            location="Mumbai, India",
            priorities=[SafetyPriority.RELIGIOUS_INCLUSIVE, SafetyPriority.MINORITY_SUPPORT],
            style=CommunityStyle.CULTURE_SEEKER,
            bio="Cultural explorer seeking authentic experiences. Interested in interfaith dialogue and traditional arts.",
            preferred_itinerary_types=[ItineraryType.CULTURAL_IMMERSION, ItineraryType.FOOD_EXPLORATION],
            created_at=created,
            updated_at=created,
        ),
        UserProfile(
            id="mock-user-4",
            user_id="mock-auth-4",
            email="jordan@example.com",
            name="Jordan Kim",
            avatar="🧗",
            location="Seattle, WA",
            priorities=[SafetyPriority.SOLO_FEMALE, SafetyPriority.ACCESSIBILITY],
            style=CommunityStyle.QUIET_OBSERVER,
            bio="Adventure seeker who loves the outdoors. Prefers small group travels and off-the-beaten-path destinations.",
            preferred_itinerary_types=[ItineraryType.TREKKING, ItineraryType.ADVENTURE_SPORTS],
            created_at=created,
            updated_at=created,
        ),
    ]
