"""Gemini-backed candidate generator."""

import json
import logging
import re
from typing import Any, List, Optional

from google import genai
from google.genai import errors

from ragplaces.core.config import ConfigError, Settings
from ragplaces.etl.transform import candidates_from_payload
from ragplaces.models import Candidate

logger = logging.getLogger(__name__)

GENERATION_TIMEOUT_MS = 90000
_RETRY_HINT = re.compile(r"retry\s+in\s+([\d.]+)\s*s", re.IGNORECASE)
_JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)

SYSTEM_PROMPT = """You are a travel data expert. Output ONLY a JSON array of places for RAG. No other text.
Rules:
- Only list places that likely exist in real life (famous restaurants, landmarks, hotels).
- Use tags to distinguish: 현지인맛집, 가성비, 데이트, 쇼핑, 야경, 아이동반, 혼밥, 역사.
- Output strict JSON array. Each object must have: name_ko (string), name_ja (string, required for verification), type (string), description (string), tags (array of strings). Optional: price_range, typical_duration_min, recommended_time (morning|noon|evening|any)."""


class GeminiError(RuntimeError):
    """Raised when candidate generation fails."""


class RateLimitedError(GeminiError):
    """The generator asked us to slow down; ``retry_after`` is its suggested wait, if any."""

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


def parse_retry_hint(message: Optional[str]) -> Optional[float]:
    if not message:
        return None
    match = _RETRY_HINT.search(message)
    return float(match.group(1)) if match else None


def build_client(settings: Settings) -> genai.Client:
    return genai.Client(
        api_key=settings.gemini_api_key,
        http_options={"timeout": GENERATION_TIMEOUT_MS},
    )


def check_connection(client: genai.Client, model: str) -> None:
    """Fail fast on a bad key or unreachable model before any job starts."""
    try:
        client.models.get(model=model)
    except errors.APIError as exc:
        raise ConfigError(f"Gemini connection test failed ({exc.code}): {exc.message}") from exc


def _parse_array(text: str) -> List[Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_ARRAY.search(text)
        if not match:
            raise GeminiError("Could not parse JSON from Gemini response")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise GeminiError("Could not parse JSON from Gemini response") from exc
    if not isinstance(data, list):
        raise GeminiError("Gemini did not return an array")
    return data


def generate(
    client: genai.Client,
    model: str,
    region: str,
    category: str,
    count: int,
    region_native_label: str,
) -> List[Candidate]:
    """One generator call for ``count`` candidates in ``region``/``category``."""
    prompt = (
        f'List {count} places in {region_native_label} ({region}) for type "{category}". '
        "Mix tourist spots and local favorites where relevant. Return JSON array only."
    )
    try:
        response = client.models.generate_content(
            model=model,
            contents=prompt,
            config={
                "system_instruction": SYSTEM_PROMPT,
                "temperature": 0.3,
                "response_mime_type": "application/json",
            },
        )
    except errors.APIError as exc:
        if exc.code == 429:
            raise RateLimitedError(str(exc), retry_after=parse_retry_hint(exc.message)) from exc
        raise GeminiError(f"Gemini {exc.code}: {exc.message}") from exc

    text = (response.text or "").strip()
    if not text:
        raise GeminiError("Gemini returned empty")
    return candidates_from_payload(_parse_array(text), category)
