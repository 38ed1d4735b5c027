import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import google.generativeai as genai

from errors import GenerationFailure

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """What an operation does when the content provider fails."""
    PROPAGATE = "propagate"  # raise GenerationFailure to the caller
    FALLBACK = "fallback"    # substitute a deterministic result


@dataclass
class GenerationResponse:
    text: str
    citations: List[Dict[str, Any]] = field(default_factory=list)


def _response_text(response) -> str:
    # .text raises when the candidate carries no parts (e.g. blocked output)
    try:
        return response.text or ""
    except ValueError:
        return ""


def _grounding_chunks(response) -> List[Dict[str, Any]]:
    """Flatten Gemini grounding chunks into plain {'web': {'uri', 'title'}} dicts."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    citations = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is None:
            continue
        citations.append({
            "web": {
                "uri": getattr(web, "uri", "") or "",
                "title": getattr(web, "title", "") or "",
            }
        })
    return citations


def build_grounded_request(model_name: str, prompt: str,
                           temperature: Optional[float] = None) -> "genai.protos.GenerateContentRequest":
    """
    Request with the Google Search tool attached.

    GenerativeModel's tool conversion only knows the legacy search-retrieval
    tool, which 2.x models reject, so the request is built from protos.
    """
    if not model_name.startswith("models/"):
        model_name = f"models/{model_name}"

    request_fields: Dict[str, Any] = {
        "model": model_name,
        "contents": [genai.protos.Content(role="user", parts=[genai.protos.Part(text=prompt)])],
        "tools": [genai.protos.Tool(google_search=genai.protos.Tool.GoogleSearch())],
    }
    if temperature is not None:
        request_fields["generation_config"] = genai.protos.GenerationConfig(temperature=temperature)
    return genai.protos.GenerateContentRequest(**request_fields)


class GeminiClient:
    """
    Thin wrapper over Gemini text generation.
    Exactly one attempt per call; retries are the caller's business.
    """

    def __init__(self, gemini_key: str = None, model_name: str = "gemini-2.5-flash"):
        """
        Args:
            gemini_key: Google AI (Gemini) API key
            model_name: Gemini model used for both itineraries and icebreakers
        """
        self.gemini_key = gemini_key
        self.model_name = model_name

        if self.gemini_key:
            genai.configure(api_key=self.gemini_key)
            self.gemini_model = genai.GenerativeModel(self.model_name)
        else:
            self.gemini_model = None
            logger.warning("Gemini API key not provided, generation is disabled")

    def generate_text(self, prompt: str, grounding_enabled: bool = False,
                      temperature: Optional[float] = None) -> GenerationResponse:
        if not self.gemini_key or not self.gemini_model:
            raise GenerationFailure("API Key missing")

        try:
            if grounding_enabled:
                response = self._generate_grounded(prompt, temperature)
            else:
                kwargs: Dict[str, Any] = {}
                if temperature is not None:
                    kwargs["generation_config"] = genai.types.GenerationConfig(temperature=temperature)
                response = self.gemini_model.generate_content(prompt, **kwargs)
        except Exception as e:
            logger.error(f"Gemini generation error: {e}")
            raise GenerationFailure(f"Content generation failed: {e}") from e

        return GenerationResponse(
            text=_response_text(response),
            citations=_grounding_chunks(response),
        )

    def _generate_grounded(self, prompt: str, temperature: Optional[float]):
        # Search grounding returns source links alongside the text
        request = build_grounded_request(self.model_name, prompt, temperature)
        service = genai.client.get_default_generative_client()
        return genai.types.GenerateContentResponse.from_response(service.generate_content(request))


def generate_with_policy(client: GeminiClient, prompt: str, policy: FailurePolicy,
                         **options) -> Optional[GenerationResponse]:
    """
    Run one generation under an explicit failure policy.

    PROPAGATE re-raises as GenerationFailure; FALLBACK returns None so the
    caller can substitute its deterministic result.
    """
    try:
        return client.generate_text(prompt, **options)
    except Exception as e:
        if policy is FailurePolicy.FALLBACK:
            logger.warning(f"Generation failed, falling back: {e}")
            return None
        if isinstance(e, GenerationFailure):
            raise
        raise GenerationFailure(f"Content generation failed: {e}") from e
