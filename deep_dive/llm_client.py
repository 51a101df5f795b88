"""
Gemini client wrapper for the deep dive research call.

Rationale:
- Use google-genai SDK (supported) for Gemini access, through its async surface.
- Keep interface tiny: call_engine(payload) -> EngineReply(text, grounding_metadata).
- One request per call. No retries / no fallback.
- An empty reply is returned as text=None; deciding what that means is the caller's job.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from google import genai
from google.genai import types

from .request_builder import QueryPayload

logger = logging.getLogger(__name__)


@dataclass
class EngineReply:
    text: Optional[str]
    grounding_metadata: Any = None


def _reply_text(response: Any) -> Optional[str]:
    # Prefer the SDK's convenience property
    text = getattr(response, "text", None)
    if text:
        return text

    # Fallback: join text parts of the first candidate (SDK shape can vary across versions)
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) if content else None
    texts = [p.text for p in parts or [] if getattr(p, "text", None)]
    return "".join(texts) or None


def _grounding_metadata(response: Any) -> Any:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    return getattr(candidates[0], "grounding_metadata", None)


async def call_engine(
    payload: QueryPayload,
    *,
    model_name: str,
    temperature: float = 0.2,
    max_tokens: int = 8192,
) -> EngineReply:
    """
    Ask Gemini for a schema-constrained JSON answer grounded with Google Search.
    """
    # Load API key lazily (after main.py loads .env)
    api_key = os.getenv("GEMINI_API_KEY") or os.getenv("LLM_API_KEY")
    if not api_key:
        raise RuntimeError("GEMINI_API_KEY or LLM_API_KEY must be set in environment")

    try:
        client = genai.Client(api_key=api_key)

        response = await client.aio.models.generate_content(
            model=model_name,
            contents=payload.query,
            config=types.GenerateContentConfig(
                system_instruction=payload.instructions,
                temperature=temperature,
                max_output_tokens=max_tokens,
                response_mime_type="application/json",
                response_schema=payload.schema,
                tools=[types.Tool(google_search=types.GoogleSearch())],
            ),
        )
    except Exception as e:
        raise RuntimeError(f"Gemini API error: {e}") from e

    reply = EngineReply(text=_reply_text(response), grounding_metadata=_grounding_metadata(response))
    logger.debug(
        "llm.reply model=%s text_len=%d grounded=%s",
        model_name,
        len(reply.text or ""),
        reply.grounding_metadata is not None,
    )
    return reply
