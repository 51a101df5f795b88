"""
FastAPI entrypoint with a single /deep-dive route.

Stateless: one audit per request, nothing kept between requests.
The request/in-flight/result lifecycle lives on the client (see lifecycle.py).
"""

import os
import logging
from dotenv import load_dotenv, find_dotenv

# Load environment variables from .env file (optional).
# Hosted deployments should provide secrets via real environment variables.
# Some editors on Windows save .env as UTF-16, so fall back to that encoding.
_dotenv_path = find_dotenv(usecwd=True) or None
if _dotenv_path:
    try:
        load_dotenv(_dotenv_path)
    except UnicodeError:
        load_dotenv(_dotenv_path, encoding="utf-16")
else:
    load_dotenv()

# Configure logging with environment-based level
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)
logger.info("Deep dive service starting with LOG_LEVEL=%s", LOG_LEVEL)

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .errors import DeepDiveError, InvalidRequest, to_http_exception
from .pipeline import run_deep_dive
from .schemas import AnalysisRequest, DeepDiveResult, ErrorDetail

app = FastAPI(title="Tool Deep Dive Audit")

_ERROR_RESPONSES = {
    400: {"model": ErrorDetail, "description": "Required request fields missing or empty"},
    502: {"model": ErrorDetail, "description": "Engine returned an empty or malformed answer"},
    503: {"model": ErrorDetail, "description": "Research engine unreachable"},
}


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies share the 400 INVALID_REQUEST shape with blank-field rejections
    missing = []
    for err in exc.errors():
        loc = err.get("loc") or ()
        field = str(loc[-1]) if len(loc) > 1 else "body"
        if field not in missing:
            missing.append(field)
    error = InvalidRequest(missing)
    logger.warning("deep_dive.invalid_body fields=%s", ",".join(missing))
    return JSONResponse(
        status_code=error.status_code,
        content={"detail": {"code": error.code, "message": error.user_message}},
    )


@app.get("/")
def root():
    return {"ok": True, "service": "deep_dive"}


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.post("/deep-dive", response_model=DeepDiveResult, responses=_ERROR_RESPONSES)
async def deep_dive_endpoint(request: Request, payload: AnalysisRequest):
    session_id = request.headers.get("x-session-id")
    logger.info(
        "deep_dive.request session_id=%s tool=%s tier=%s",
        session_id,
        payload.tool_name,
        payload.license_tier.value,
    )

    try:
        result = await run_deep_dive(payload)
    except DeepDiveError as e:
        logger.warning("deep_dive.error session_id=%s code=%s", session_id, e.code)
        raise to_http_exception(e)
    except Exception:
        logger.error("deep_dive.unexpected_error session_id=%s", session_id, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={"code": DeepDiveError.code, "message": DeepDiveError.user_message},
        )

    logger.info(
        "deep_dive.response session_id=%s tool=%s score=%d risks=%d sources=%d settings_available=%s",
        session_id,
        result.tool_name,
        result.verdict.security_score,
        len(result.specific_risks),
        len(result.sources),
        result.safety_settings.available,
    )
    return result
