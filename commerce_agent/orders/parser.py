"""
Parsing of the model's JSON-in-text answer.

parse_model_output() never raises: any failure is logged and returns None,
which callers must treat as "extraction failed, do not create an order".
"""

import json
import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from commerce_agent.errors import ParseError
from .models import ExtractionResult

logger = logging.getLogger(__name__)


def extract_json_object(text: Optional[str]) -> dict:
    """
    Locate and decode the JSON object in a model answer.

    Strips ``` fences, then decodes from the first '{' to the last '}'.

    Raises:
        ParseError: no object found or invalid JSON
    """
    if not text or not isinstance(text, str):
        raise ParseError("Empty model output")

    cleaned = text.replace("```json", "").replace("```", "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ParseError("No JSON object in model output")

    try:
        payload = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in model output: {e.msg}") from e

    if not isinstance(payload, dict):
        raise ParseError("Model output JSON is not an object")
    return payload


def parse_model_output(text: Any) -> Optional[ExtractionResult]:
    """
    Parse a model answer into an ExtractionResult.

    Args:
        text: Raw model text, or an object with a `content` attribute

    Returns:
        ExtractionResult, or None when the output is unusable
    """
    if not isinstance(text, str):
        text = getattr(text, "content", None)

    try:
        payload = extract_json_object(text)
        # Engine-owned fields are never taken from the model
        payload.pop("orderCreated", None)
        payload.pop("order_created", None)
        payload.pop("error", None)
        return ExtractionResult.model_validate(payload)
    except ParseError as e:
        logger.warning(f"Could not parse model output: {e}")
        return None
    except PydanticValidationError as e:
        logger.warning(f"Model output does not match the extraction schema: {e.error_count()} errors")
        return None
