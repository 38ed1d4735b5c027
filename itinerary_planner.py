import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from errors import GenerationFailure, ValidationError
from gemini_client import FailurePolicy, GeminiClient, generate_with_policy
from models import (
    ALLOWED_DAY_COUNTS,
    GroundingSource,
    ItineraryRequest,
    ItineraryResult,
    ItineraryType,
    SafetyPriority,
    UserProfile,
)

logger = logging.getLogger(__name__)

ITINERARY_FAILURE_POLICY = FailurePolicy.PROPAGATE
ITINERARY_TEMPERATURE = 0.4  # lower temperature for more factual safety info
NO_ITINERARY_TEXT = "No itinerary generated."
DEFAULT_TRAVEL_STYLE = "General Sightseeing"
RETRY_MESSAGE = "Failed to generate safe itinerary. Please try again."

STYLE_EMPHASIS = {
    ItineraryType.TREKKING: "Trekking/Hiking: Focus on trails, nature spots, and outdoor activities",
    ItineraryType.SIGHTSEEING: "Sightseeing: Include major landmarks and scenic viewpoints",
    ItineraryType.FOOD_EXPLORATION: "Food Exploration: Highlight local eateries, markets, and culinary experiences",
    ItineraryType.CULTURAL_IMMERSION: "Cultural Immersion: Emphasize museums, historical sites, and cultural events",
    ItineraryType.ADVENTURE_SPORTS: "Adventure Sports: Favour licensed operators with clear safety records and proper equipment",
    ItineraryType.RELAXATION: "Relaxation & Wellness: Suggest calm, low-stimulation spaces, spas, and unhurried pacing",
}

# Shown for free-text styles, where no per-type emphasis applies
GENERIC_STYLE_EXAMPLES = [
    STYLE_EMPHASIS[ItineraryType.TREKKING],
    STYLE_EMPHASIS[ItineraryType.FOOD_EXPLORATION],
    STYLE_EMPHASIS[ItineraryType.CULTURAL_IMMERSION],
    STYLE_EMPHASIS[ItineraryType.SIGHTSEEING],
]


def apply_profile_defaults(request: ItineraryRequest, profile: Optional[UserProfile]) -> ItineraryRequest:
    """Swap in the profile's priorities and preferred types when the user asked for it."""
    if not request.use_profile_data or profile is None:
        return request

    updates: Dict[str, Any] = {}
    if profile.priorities:
        updates["priorities"] = list(profile.priorities)
    if profile.preferred_itinerary_types and not request.custom_type:
        updates["itinerary_types"] = list(profile.preferred_itinerary_types)
    return request.model_copy(update=updates)


def validate_request(request: ItineraryRequest) -> ItineraryRequest:
    """Raise ValidationError unless the request can be sent to the provider."""
    destination = (request.destination or "").strip()
    if not destination:
        raise ValidationError("Please enter a destination.")
    if not request.priorities:
        raise ValidationError("Please select at least one Safety & Justice Priority")
    if request.days not in ALLOWED_DAY_COUNTS:
        allowed = ", ".join(str(d) for d in ALLOWED_DAY_COUNTS)
        raise ValidationError(f"Trip length must be one of {allowed} days.")

    custom = (request.custom_type or "").strip()
    if ItineraryType.CUSTOM in request.itinerary_types:
        if len(request.itinerary_types) > 1:
            raise ValidationError("A custom travel style cannot be combined with other travel styles.")
        if not custom:
            raise ValidationError("Please describe your custom travel style.")
    elif custom and request.itinerary_types:
        raise ValidationError("A custom travel style cannot be combined with other travel styles.")

    return request.model_copy(update={
        "destination": destination,
        "custom_type": custom or None,
        "itinerary_types": [t for t in request.itinerary_types if t != ItineraryType.CUSTOM],
    })


def travel_style_text(request: ItineraryRequest) -> str:
    if request.custom_type:
        return request.custom_type
    if request.itinerary_types:
        return ", ".join(t.label for t in request.itinerary_types)
    return DEFAULT_TRAVEL_STYLE


def build_itinerary_prompt(request: ItineraryRequest) -> str:
    """Create the prompt for Gemini AI from a validated itinerary request"""
    priority_text = ", ".join(p.label for p in request.priorities)
    style_text = travel_style_text(request)

    guidelines = [
        f"SAFETY FIRST: Filter recommendations through the lens of ALL these priorities: {priority_text}. "
        "Identify well-lit areas, safe transport, and specific safety checks (e.g., locking mechanisms, neighborhood reputation).",
        "ETHICAL CONSUMPTION: Prioritize minority-owned, women-owned, or community-run businesses. "
        "Avoid global chains unless they are the only safe option.",
        "COUNTER BIAS: Explicitly avoid stereotypes. Base safety ratings on recent, factual reports.",
    ]
    if SafetyPriority.ACCESSIBILITY in request.priorities:
        guidelines.append(
            "ACCESSIBILITY: Ensure all locations have ramp access and accessible restrooms, "
            "and flag any step-free routes or accessible transport options."
        )
    if len(request.priorities) >= 2:
        guidelines.append(
            "INTERSECTIONAL APPROACH: Consider how these priorities intersect "
            f"({priority_text}). Recommend places that satisfy ALL of them at once, "
            "not each one in isolation."
        )

    selected_types = [t for t in request.itinerary_types if t in STYLE_EMPHASIS]
    emphasis = [STYLE_EMPHASIS[t] for t in selected_types] if selected_types and not request.custom_type else GENERIC_STYLE_EXAMPLES
    style_lines = "\n".join(f"       - {line}" for line in emphasis)
    guidelines.append(
        f"TRAVEL STYLE: Tailor the itinerary to the specified travel style ({style_text}). For example:\n{style_lines}"
    )

    numbered = "\n".join(f"    {i}. {g}" for i, g in enumerate(guidelines, start=1))

    prompt = f"""
    Create a detailed {request.days}-day travel itinerary for {request.destination}.

    CRITICAL USER PRIORITIES: {priority_text}.
    TRAVEL STYLE/TYPE: {style_text}

    MANDATORY GUIDELINES (Responsible AI):
{numbered}

    FORMAT:
    Return the response in clean Markdown.
    Start with a "Safety & Ethics Briefing" specific to {request.destination} and these priorities: {priority_text}.
    Then list Day 1, Day 2, etc. up to Day {request.days}, one section per day.
    For each recommendation, explain *why* it is safe/ethical and how it addresses the selected priorities and aligns with the {style_text} style.
    """

    return prompt


def _host(uri: str) -> Optional[str]:
    parsed = urlparse(uri)
    if not parsed.scheme or not parsed.hostname:
        return None
    return parsed.hostname


def extract_sources(chunks: Optional[List[Dict[str, Any]]]) -> List[GroundingSource]:
    """Grounding chunks → sources, deduplicated by URI, first occurrence wins."""
    sources: List[GroundingSource] = []
    seen = set()
    for chunk in chunks or []:
        web = (chunk or {}).get("web") or {}
        uri = web.get("uri")
        if not uri:
            continue
        host = _host(uri)
        if host is None:
            logger.debug(f"Skipping unresolvable source link: {uri!r}")
            continue
        if uri in seen:
            continue
        seen.add(uri)
        sources.append(GroundingSource(title=web.get("title") or host, uri=uri))
    return sources


def parse_itinerary_response(text: Optional[str], chunks: Optional[List[Dict[str, Any]]] = None) -> ItineraryResult:
    return ItineraryResult(
        markdown=text or NO_ITINERARY_TEXT,
        sources=extract_sources(chunks),
    )


class EthicalItineraryPlanner:
    """
    Generates safety- and ethics-vetted itineraries with search grounding.
    Provider failures are propagated as GenerationFailure.
    """

    failure_policy = ITINERARY_FAILURE_POLICY

    def __init__(self, client: GeminiClient):
        self.client = client

    def generate(self, request: ItineraryRequest) -> ItineraryResult:
        request = validate_request(request)
        logger.info(
            f"Generating itinerary for {request.destination}: {request.days} days, "
            f"{len(request.priorities)} priorities, style '{travel_style_text(request)}'"
        )

        prompt = build_itinerary_prompt(request)
        try:
            response = generate_with_policy(
                self.client,
                prompt,
                self.failure_policy,
                grounding_enabled=True,
                temperature=ITINERARY_TEMPERATURE,
            )
        except GenerationFailure as e:
            logger.error(f"❌ Itinerary generation failed: {e}")
            raise GenerationFailure(RETRY_MESSAGE) from e

        result = parse_itinerary_response(response.text, response.citations)
        logger.info(f"✅ Itinerary generated with {len(result.sources)} sources")
        return result
