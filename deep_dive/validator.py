"""
Parses the engine's raw text into a validated DeepDiveCore.

Flow:
1. Reject absent/blank text (EmptyResponse)
2. Parse the text as JSON; only if that fails, recover the outermost object from prose or a code fence
3. Normalize untrusted values: clamp securityScore into [0, 100], coerce unknown severities to Low
4. Validate the whole structure with pydantic; any failure is a SchemaViolation

The raw payload is logged on failure but never placed in the user-facing message.
"""

import json
import logging
import math
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .errors import EmptyResponse, SchemaViolation
from .schemas import DeepDiveCore, Severity

logger = logging.getLogger(__name__)

SCORE_MIN = 0
SCORE_MAX = 100
DEFAULT_SEVERITY = Severity.LOW

_SEVERITY_BY_NAME = {s.value.lower(): s.value for s in Severity}


def _outermost_object(text: str) -> Any:
    """
    Parse the first balanced {...} in text.
    Braces, quotes and fences inside JSON strings are skipped.
    """
    start = text.find("{")
    if start == -1:
        raise json.JSONDecodeError("No JSON object found", text, 0)

    depth = 0
    in_string = False
    i = start
    end = -1

    while i < len(text):
        char = text[i]

        if in_string:
            if char == "\\" and i + 1 < len(text):
                i += 2
                continue
            elif char == '"':
                in_string = False
        else:
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        i += 1

    if end == -1:
        raise json.JSONDecodeError("Unmatched braces in JSON", text, start)

    return json.loads(text[start:end + 1])


def _strip_fences(text: str) -> str:
    match = re.search(r"```json\s*([\s\S]*?)\s*```", text, re.IGNORECASE)
    if match:
        return match.group(1).strip()
    return re.sub(r"^```\w*[ \t]*$", "", text, flags=re.MULTILINE).strip()


def _extract_json_object(text: str) -> Any:
    """
    Parse an engine reply as JSON.

    Schema-constrained replies are plain JSON and parse as-is. Only when that
    fails is the reply treated as prose: first the outermost balanced object,
    then the contents of a markdown code fence.
    """
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        first_error = e

    try:
        return _outermost_object(text)
    except json.JSONDecodeError:
        pass

    if "```" in text:
        return _outermost_object(_strip_fences(text))
    raise first_error


def clamp_score(value: Any) -> int:
    """Round a numeric score and clamp it into [0, 100]. Raises ValueError for non-numbers."""
    if isinstance(value, bool):
        raise ValueError(f"securityScore must be a number, got {value!r}")
    if isinstance(value, str):
        value = float(value.strip())
    if not isinstance(value, (int, float)):
        raise ValueError(f"securityScore must be a number, got {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"securityScore must be finite, got {value!r}")

    score = int(round(value))
    clamped = max(SCORE_MIN, min(SCORE_MAX, score))
    if clamped != score:
        logger.warning("validator.score_clamped original=%s clamped=%d", value, clamped)
    return clamped


def coerce_severity(value: Any) -> str:
    if isinstance(value, str):
        known = _SEVERITY_BY_NAME.get(value.strip().lower())
        if known:
            return known
    logger.warning("validator.severity_coerced original=%r default=%s", value, DEFAULT_SEVERITY.value)
    return DEFAULT_SEVERITY.value


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(data)

    if data.get("scenarioSummary") is None:
        data.pop("scenarioSummary", None)

    verdict = data.get("verdict")
    if isinstance(verdict, dict) and "securityScore" in verdict:
        verdict = dict(verdict)
        verdict["securityScore"] = clamp_score(verdict["securityScore"])
        data["verdict"] = verdict

    risks = data.get("specificRisks")
    if isinstance(risks, list):
        normalized = []
        for item in risks:
            if isinstance(item, dict) and "severity" in item:
                item = dict(item)
                item["severity"] = coerce_severity(item["severity"])
            normalized.append(item)
        data["specificRisks"] = normalized

    return data


def _violation(raw_text: str, reason: str) -> SchemaViolation:
    logger.error("validator.schema_violation reason=%s", reason[:500])
    logger.error("validator.raw_response %s", raw_text[:1000])
    return SchemaViolation(raw_text, reason=reason)


def validate_response(raw_text: Optional[str]) -> DeepDiveCore:
    if raw_text is None or not raw_text.strip():
        raise EmptyResponse()

    try:
        data = _extract_json_object(raw_text)
    except json.JSONDecodeError as e:
        raise _violation(raw_text, f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise _violation(raw_text, f"expected a JSON object, got {type(data).__name__}")

    try:
        data = _normalize(data)
    except ValueError as e:
        raise _violation(raw_text, str(e)) from e

    try:
        core = DeepDiveCore.model_validate(data)
    except ValidationError as e:
        raise _violation(raw_text, str(e)) from e

    if core.safety_settings.is_anomalous:
        logger.warning(
            "validator.safety_settings_anomaly available=false configurations=%d",
            len(core.safety_settings.configurations),
        )
    return core
