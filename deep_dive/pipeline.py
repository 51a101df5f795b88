"""
Core orchestration / pipeline.

Flow:
1. Validate the request locally (no remote cost for an incomplete form)
2. Build the structured query (instructions + fixed output schema)
3. Single remote call to the research engine
4. Validate the raw text into a DeepDiveCore
5. Extract and deduplicate cited sources from the grounding metadata
6. Merge request echoes + sources into the final DeepDiveResult

No retries: a failed run is terminal for this invocation.
"""

import logging
import os
import time
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from .errors import DeepDiveError, EngineUnavailable, InvalidRequest
from .evidence import extract_sources
from .llm_client import call_engine
from .request_builder import build_query
from .schemas import AnalysisRequest, DeepDiveResult
from .validator import validate_response

logger = logging.getLogger(__name__)

# Configuration from environment
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-3-pro-preview")
DEEP_DIVE_TEMPERATURE = float(os.getenv("DEEP_DIVE_TEMPERATURE", "0.2"))
DEEP_DIVE_MAX_TOKENS = int(os.getenv("DEEP_DIVE_MAX_TOKENS", "8192"))

_REQUIRED_TEXT_FIELDS = (
    ("tool_name", "toolName"),
    ("website", "website"),
    ("scenario", "scenario"),
)


def validate_request(request: Union[AnalysisRequest, Mapping[str, Any]]) -> AnalysisRequest:
    """Return a complete AnalysisRequest or raise InvalidRequest naming the missing fields."""
    if not isinstance(request, AnalysisRequest):
        try:
            request = AnalysisRequest.model_validate(dict(request))
        except (TypeError, ValueError) as e:
            missing = []
            if isinstance(e, ValidationError):
                missing = [str(err["loc"][0]) for err in e.errors() if err.get("loc")]
            raise InvalidRequest(missing) from e

    missing = [alias for attr, alias in _REQUIRED_TEXT_FIELDS if not getattr(request, attr).strip()]
    if missing:
        raise InvalidRequest(missing)
    return request


async def run_deep_dive(
    request: Union[AnalysisRequest, Mapping[str, Any]],
    *,
    model_name: Optional[str] = None,
    temperature: Optional[float] = None,
) -> DeepDiveResult:
    """
    Run one deep dive audit end to end.

    Raises InvalidRequest, EngineUnavailable, EmptyResponse or SchemaViolation.
    """
    request = validate_request(request)
    model_name = model_name or GEMINI_MODEL
    temperature = DEEP_DIVE_TEMPERATURE if temperature is None else temperature

    logger.info(
        "deep_dive.start tool=%s tier=%s model=%s",
        request.tool_name,
        request.license_tier.value,
        model_name,
    )
    started = time.monotonic()

    payload = build_query(request)

    try:
        reply = await call_engine(
            payload,
            model_name=model_name,
            temperature=temperature,
            max_tokens=DEEP_DIVE_MAX_TOKENS,
        )
    except DeepDiveError:
        raise
    except Exception as e:
        logger.warning("deep_dive.engine_failed error=%s detail=%s", type(e).__name__, str(e)[:200])
        raise EngineUnavailable() from e

    core = validate_response(reply.text)
    sources = extract_sources(reply.grounding_metadata)

    merged: Dict[str, Any] = dict(core)
    if not merged["scenario_summary"].strip():
        merged["scenario_summary"] = request.scenario
    result = DeepDiveResult(
        **merged,
        tool_name=request.tool_name,
        license_tier=request.license_tier,
        scenario=request.scenario,
        sources=sources,
    )

    logger.info(
        "deep_dive.finish tool=%s tier=%s duration=%.2fs score=%d risks=%d sources=%d",
        result.tool_name,
        result.license_tier.value,
        time.monotonic() - started,
        result.verdict.security_score,
        len(result.specific_risks),
        len(result.sources),
    )
    return result
