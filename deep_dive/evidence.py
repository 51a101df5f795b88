"""
Turns the engine's grounding metadata into a deduplicated list of Sources.

Accepts the google-genai GroundingMetadata object, its JSON/dict form
(camelCase or snake_case keys), or a plain sequence of citation records.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .schemas import Source

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE = "Reference Source"


def _field(obj: Any, *names: str) -> Any:
    for name in names:
        if isinstance(obj, Mapping):
            value = obj.get(name)
        else:
            value = getattr(obj, name, None)
        if value is not None:
            return value
    return None


def _iter_records(grounding_metadata: Any) -> Iterable[Any]:
    if grounding_metadata is None:
        return []
    chunks = _field(grounding_metadata, "grounding_chunks", "groundingChunks")
    if chunks is not None:
        return chunks
    if isinstance(grounding_metadata, (list, tuple)):
        return grounding_metadata
    return []


def _citation(record: Any) -> Tuple[Optional[str], Optional[str]]:
    # Search grounding nests the citation under "web"; bare records carry it directly
    web = _field(record, "web")
    target = web if web is not None else record
    return _field(target, "title"), _field(target, "uri")


def extract_sources(grounding_metadata: Any) -> List[Source]:
    sources: List[Source] = []
    seen = set()
    dropped = 0

    for record in _iter_records(grounding_metadata):
        if record is None:
            continue
        title, uri = _citation(record)
        if not isinstance(uri, str) or not uri.strip():
            dropped += 1
            continue
        if uri in seen:
            continue
        seen.add(uri)
        if not isinstance(title, str) or not title.strip():
            title = PLACEHOLDER_TITLE
        sources.append(Source(title=title, uri=uri))

    logger.debug("evidence.extracted sources=%d dropped_unlocated=%d", len(sources), dropped)
    return sources
