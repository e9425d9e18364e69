from __future__ import annotations

import base64
import logging
from typing import Any, Optional, Sequence

from google import genai
from google.genai import errors, types
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.app.config import settings
from pipeline.errors import (
    GenerationStoppedError,
    MissingApiKeyError,
    ModelRefusalError,
    NoImageError,
    SafetyBlockedError,
)
from pipeline.io_types import ImageInput

from .base import Part


logger = logging.getLogger(__name__)

TRANSPORT_ATTEMPTS = settings.get_int("gemini.transport_attempts", 2)
TIMEOUT_MS = settings.get_int("gemini.timeout_ms", 120000)

# Loosened so ordinary try-on requests are not blocked
SAFETY_SETTINGS = [
    types.SafetySetting(category=category, threshold=types.HarmBlockThreshold.BLOCK_ONLY_HIGH)
    for category in (
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    )
]


def resolve_api_key(custom_api_key: Optional[str] = None) -> str:
    # UI-supplied key first, then the server's own
    key = custom_api_key or settings.get("gemini.api_key") or settings.get("api_key")
    if not key:
        raise MissingApiKeyError()
    return str(key)


def _enum_name(value: Any) -> str:
    return str(getattr(value, "name", None) or value)


def extract_image_from_response(response: Any) -> str:
    candidates = getattr(response, "candidates", None) if response is not None else None
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None)
        if block_reason:
            raise SafetyBlockedError(f"Request blocked by safety filters: {_enum_name(block_reason)}")
        raise NoImageError("No candidates returned from the model.")

    candidate = candidates[0]
    finish_reason = getattr(candidate, "finish_reason", None)
    if finish_reason and _enum_name(finish_reason) != "STOP":
        raise GenerationStoppedError(
            f"Generation stopped. Reason: {_enum_name(finish_reason)} "
            "(The model likely refused the request due to safety/policy filters)"
        )

    content = getattr(candidate, "content", None)
    parts = list(getattr(content, "parts", None) or [])
    if not parts:
        raise NoImageError("Model returned a candidate but no content parts.")

    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline:
            data = inline.data
            if isinstance(data, (bytes, bytearray)):
                data = base64.b64encode(data).decode("ascii")
            return f"data:{inline.mime_type or 'image/png'};base64,{data}"

    for part in parts:
        text = getattr(part, "text", None)
        if text:
            raise ModelRefusalError(f"Model Refusal: {text[:150]}...")

    raise NoImageError("No valid image data found in the response candidates.")


def to_contents(parts: Sequence[Part]) -> list:
    contents: list = []
    for p in parts:
        if isinstance(p, ImageInput):
            contents.append(types.Part.from_bytes(data=p.data, mime_type=p.mime_type))
        else:
            contents.append(p)
    return contents


def build_image_config(image_config: Optional[dict]) -> Optional[types.ImageConfig]:
    if not image_config:
        return None
    return types.ImageConfig(
        aspect_ratio=image_config.get("aspect_ratio"),
        image_size=image_config.get("image_size"),
    )


class GeminiProvider:
    """
    Hosted Gemini backend built on the google-genai client.
    - Text calls return the raw answer (or None).
    - Image calls return a data URL, or raise a ModelResponseError describing why not.
    - 5xx responses are retried at the transport level only; semantic fallbacks belong to the pipeline.
    """

    def __init__(self, api_key: Optional[str] = None, client: Optional[Any] = None) -> None:
        if client is None:
            client = genai.Client(
                api_key=resolve_api_key(api_key),
                http_options=types.HttpOptions(timeout=TIMEOUT_MS),
            )
        self._client = client

    @retry(
        reraise=True,
        stop=stop_after_attempt(TRANSPORT_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(errors.ServerError),
    )
    def _generate(self, model: str, parts: Sequence[Part], config: Optional[types.GenerateContentConfig] = None):
        return self._client.models.generate_content(model=model, contents=to_contents(parts), config=config)

    def generate_text(self, model: str, parts: Sequence[Part]) -> Optional[str]:
        response = self._generate(model, parts)
        text = getattr(response, "text", None)
        return text.strip() if text else text

    def generate_image(self, model: str, parts: Sequence[Part], image_config: Optional[dict] = None) -> str:
        config = types.GenerateContentConfig(
            response_modalities=["IMAGE", "TEXT"],
            safety_settings=SAFETY_SETTINGS,
            image_config=build_image_config(image_config),
        )
        logger.info("Attempting generation with model: %s", model)
        response = self._generate(model, parts, config)
        return extract_image_from_response(response)
