"""Receipt field extraction using an OpenAI vision model.

This service wraps exactly one call to the inference service: it
preprocesses and base64-encodes the receipt photo, sends it together
with the fixed instructions from :mod:`rewards.utils.prompts`, locates
the JSON object inside the free-text reply and turns it into
``ReceiptFields``. Every failure is raised as an ``ExtractionError``
with a specific kind; there is no retry or model fallback here because
the consensus validator samples twice anyway.

Diagnostic logging can be enabled by setting ``EXTRACTION_DEBUG=1``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Optional

import openai
from openai import AsyncOpenAI
from PIL import Image
from pydantic import ValidationError

from rewards.core.config import settings
from rewards.core.exceptions import ExtractionError
from rewards.models.enums import ExtractionErrorKind
from rewards.models.schemas import ReceiptFields
from rewards.utils.helpers import extract_json_object
from rewards.utils.image_processing import preprocess_image
from rewards.utils.prompts import get_extraction_prompt

logger = logging.getLogger(__name__)

# Keyword fallbacks for refusals that do not use one of the prompt's codes.
# First match wins, so legibility complaints are checked before vendor hints.
_ERROR_KEYWORDS: list[tuple[tuple[str, ...], ExtractionErrorKind]] = [
    (("illegible", "blurry", "unreadable", "can't read", "cannot read"), ExtractionErrorKind.ILLEGIBLE),
    (("obstructed", "covered", "tamper", "obscured"), ExtractionErrorKind.OBSTRUCTED),
    (("not_this_vendor", "vendor", "not from"), ExtractionErrorKind.NOT_THIS_VENDOR),
    (("no_valid_order_number", "order number"), ExtractionErrorKind.NO_VALID_ORDER_NUMBER),
]

_REFUSAL_KINDS = tuple(kind for _, kind in _ERROR_KEYWORDS)

_FIELD_KEYS = ("orderNumber", "orderTotal", "orderDate", "orderTime")


def classify_refusal(message: str) -> ExtractionErrorKind:
    """Map the model's ``error`` string onto an extraction error kind."""
    text = message.strip()
    for kind in _REFUSAL_KINDS:
        if text.upper() == kind.value:
            return kind
    lowered = text.lower()
    for keywords, kind in _ERROR_KEYWORDS:
        if any(kw in lowered for kw in keywords):
            return kind
    return ExtractionErrorKind.ILLEGIBLE


def parse_extraction_response(text: str | None) -> ReceiptFields:
    """Turn the model's raw reply into ``ReceiptFields``.

    Raises ``ExtractionError`` when the reply holds a refusal, misses a
    field, or has no parseable JSON object.
    """
    data = extract_json_object(text)
    if data is None:
        raise ExtractionError(ExtractionErrorKind.MALFORMED, "no JSON object in model response")

    error = data.get("error")
    if error:
        kind = classify_refusal(str(error))
        raise ExtractionError(kind, f"model refused: {error}")

    if data.get("orderNumber") in (None, ""):
        raise ExtractionError(ExtractionErrorKind.NO_VALID_ORDER_NUMBER, "orderNumber missing")
    missing = [key for key in _FIELD_KEYS if data.get(key) in (None, "")]
    if missing:
        # No partial results: a field the model could not read means the photo is not readable
        raise ExtractionError(ExtractionErrorKind.ILLEGIBLE, f"missing fields: {', '.join(missing)}")

    try:
        return ReceiptFields.model_validate({key: data[key] for key in _FIELD_KEYS})
    except ValidationError as exc:
        raise ExtractionError(ExtractionErrorKind.MALFORMED, f"unexpected field shape: {exc.error_count()} errors") from exc


class ExtractionService:
    """Single-shot receipt field extractor."""

    def __init__(
        self,
        client: Optional[Any] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.model: str = model or settings.EXTRACTION_MODEL
        self.timeout: float = timeout if timeout is not None else settings.EXTRACTION_TIMEOUT_SECONDS
        self.debug: bool = settings.EXTRACTION_DEBUG
        self._client = client
        if self.debug:
            logger.info("[extraction:init] model=%s timeout=%.1fs", self.model, self.timeout)

    @property
    def client(self) -> Any:
        # Built on first use so a missing API key surfaces as a SERVICE_ERROR, not at startup
        if self._client is None:
            # Retries are a transport concern; a retried call would not be an independent sample
            self._client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def _image_to_base64(self, data: bytes) -> str:
        """Encode raw image bytes as a base64 string."""
        return base64.b64encode(data).decode("utf-8")

    async def _complete(self, b64: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": get_extraction_prompt()},
                        {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{b64}"}},
                    ],
                }
            ],
            max_tokens=settings.EXTRACTION_MAX_TOKENS,
        )
        content = response.choices[0].message.content
        if isinstance(content, list):
            content = "".join(getattr(p, "text", "") for p in content)
        return content or ""

    async def extract(self, image_bytes: bytes) -> ReceiptFields:
        """Extract receipt fields from a photo with one model call."""
        try:
            processed = preprocess_image(image_bytes, max_size=settings.EXTRACTION_MAX_IMAGE_EDGE)
        except Image.DecompressionBombError as exc:
            logger.warning("[extraction] rejected oversized image: %s", exc)
            raise ExtractionError(ExtractionErrorKind.ILLEGIBLE, "image dimensions too large") from exc
        b64 = self._image_to_base64(processed)
        if self.debug:
            logger.info("[extraction] request model=%s size=%d", self.model, len(processed))

        try:
            text = await asyncio.wait_for(self._complete(b64), timeout=self.timeout)
        except (asyncio.TimeoutError, openai.APITimeoutError) as exc:
            logger.warning("[extraction] timed out after %.1fs model=%s", self.timeout, self.model)
            raise ExtractionError(ExtractionErrorKind.TIMEOUT, "vision model timed out") from exc
        except openai.OpenAIError as exc:
            logger.warning("[extraction] service error model=%s err=%s", self.model, exc)
            raise ExtractionError(ExtractionErrorKind.SERVICE_ERROR, str(exc)) from exc

        if self.debug:
            logger.info("[extraction] raw response: %s", text)
        fields = parse_extraction_response(text)
        if self.debug:
            logger.info("[extraction] parsed %s", fields.model_dump(by_alias=True, mode="json"))
        return fields
