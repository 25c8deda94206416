"""Extract and validate a task breakdown from untrusted generator text."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.services.task_set import (
    EMPTY_TASK_SET,
    MALFORMED_RESPONSE,
    GeneratedTaskSet,
    GenerationFailure,
    GenerationOutcome,
)

logger = logging.getLogger(__name__)

_decoder = json.JSONDecoder()
_PROVENANCE_KEYS = {"fallbackUsed", "fallback_used", "fromCache", "from_cache"}


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the first decodable ``{...}`` region of ``text`` as a dict.

    Surrounding prose and markdown fences are skipped. Each opening brace is
    tried in turn so a stray ``{`` in a preamble does not hide the payload.
    """
    position = text.find("{")
    while position != -1:
        try:
            candidate, _ = _decoder.raw_decode(text, position)
        except json.JSONDecodeError:
            candidate = None
        if isinstance(candidate, dict):
            return candidate
        position = text.find("{", position + 1)
    return None


def parse_task_set(text: Any) -> GenerationOutcome:
    """Validate generator output into a GeneratedTaskSet or describe why it is unusable."""
    if not isinstance(text, str) or not text.strip():
        return GenerationFailure(MALFORMED_RESPONSE, "Generator returned no text")

    payload = extract_json_object(text)
    if payload is None:
        return GenerationFailure(MALFORMED_RESPONSE, "No JSON object found in generator response")

    raw_subtasks = payload.get("subtasks")
    if not isinstance(raw_subtasks, list):
        return GenerationFailure(MALFORMED_RESPONSE, "Response is missing a subtasks list")
    if not raw_subtasks:
        return GenerationFailure(EMPTY_TASK_SET, "Response contained an empty subtasks list")

    for index, entry in enumerate(raw_subtasks):
        if not isinstance(entry, dict):
            return GenerationFailure(MALFORMED_RESPONSE, f"Subtask {index + 1} is not an object")

    # Generator-side provenance flags are never trusted.
    payload = {key: value for key, value in payload.items() if key not in _PROVENANCE_KEYS}
    try:
        task_set = GeneratedTaskSet.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        return GenerationFailure(
            MALFORMED_RESPONSE,
            f"Invalid generator data at {location}: {first.get('msg')}",
            error=exc,
        )
    except Exception as exc:
        logger.warning("Generator response could not be coerced: %s", exc)
        return GenerationFailure(MALFORMED_RESPONSE, f"Unusable generator data: {exc}", error=exc)

    logger.debug("Parsed %s subtasks from generator response", len(task_set.subtasks))
    return task_set
