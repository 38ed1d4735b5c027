import logging
from typing import Sequence

from gemini_client import FailurePolicy, GeminiClient, generate_with_policy
from models import IcebreakerResult, SafetyPriority

logger = logging.getLogger(__name__)

ICEBREAKER_FAILURE_POLICY = FailurePolicy.FALLBACK
EMPTY_ICEBREAKER_TEXT = "Hi! Let's connect safely."
MAX_WORDS = 50


def primary_priority(priorities: Sequence[SafetyPriority]) -> SafetyPriority:
    """The first selection drives the conversation context."""
    return priorities[0] if priorities else SafetyPriority.SOLO_FEMALE


def fallback_message(recipient_name: str, priority: SafetyPriority) -> str:
    return f"Hi {recipient_name}, I noticed we both care about {priority.label}. Would love to connect!"


def build_icebreaker_prompt(recipient_name: str, priority: SafetyPriority, my_location: str) -> str:
    return f"""
    Draft a short, friendly, and safety-conscious message to start a conversation with a potential travel buddy named {recipient_name}.

    Context:
    - We matched because we both prioritize: {priority.label}.
    - I am currently in: {my_location}.

    Goal:
    - Break the ice warmly.
    - IMMEDIATELY establish a collaborative safety footing (e.g., "Let's vet accommodations together" or "Interested in sharing live locations if we meet?").
    - Keep it under {MAX_WORDS} words.
    """


class IcebreakerGenerator:
    """
    Drafts an opening message between two matched travelers.
    Never raises on provider failure: a templated greeting is returned instead.
    """

    failure_policy = ICEBREAKER_FAILURE_POLICY

    def __init__(self, client: GeminiClient):
        self.client = client

    def generate(self, recipient_name: str, priority: SafetyPriority, my_location: str) -> IcebreakerResult:
        prompt = build_icebreaker_prompt(recipient_name, priority, my_location)
        response = generate_with_policy(self.client, prompt, self.failure_policy, grounding_enabled=False)

        if response is None:
            logger.info(f"Using fallback icebreaker for {recipient_name}")
            return IcebreakerResult(message=fallback_message(recipient_name, priority))

        return IcebreakerResult(message=(response.text or "").strip() or EMPTY_ICEBREAKER_TEXT)
