import asyncio
import json
from types import SimpleNamespace

import pytest

from deep_dive import pipeline as pipeline_mod
from deep_dive.errors import EmptyResponse, EngineUnavailable, InvalidRequest, SchemaViolation
from deep_dive.llm_client import EngineReply
from deep_dive.schemas import LicenseTier


def _grounding(*records):
    return SimpleNamespace(
        grounding_chunks=[SimpleNamespace(web=SimpleNamespace(title=t, uri=u)) for t, u in records]
    )


def _install_engine(monkeypatch, reply=None, error=None):
    calls = []

    async def fake_call_engine(payload, *args, **kwargs):
        calls.append(payload)
        if error is not None:
            raise error
        return reply

    monkeypatch.setattr(pipeline_mod, "call_engine", fake_call_engine)
    return calls


@pytest.mark.asyncio
async def test_scenario_settings_unavailable_and_echoes(monkeypatch, acme_request, engine_text):
    calls = _install_engine(monkeypatch, EngineReply(text=engine_text, grounding_metadata=None))

    result = await pipeline_mod.run_deep_dive(acme_request)

    assert len(calls) == 1
    assert "Acme Notes" in calls[0].query
    assert result.safety_settings.available is False
    assert result.safety_settings.configurations == []
    assert result.tool_name == "Acme Notes"
    assert result.license_tier is LicenseTier.FREE
    assert result.scenario == "Uploading meeting recordings"
    assert result.sources == []


@pytest.mark.asyncio
async def test_scenario_duplicate_citations_collapse(monkeypatch, acme_request, engine_text):
    metadata = _grounding(
        ("Acme Privacy Policy", "https://acme.example/privacy"),
        ("Privacy | Acme", "https://acme.example/privacy"),
    )
    _install_engine(monkeypatch, EngineReply(text=engine_text, grounding_metadata=metadata))

    result = await pipeline_mod.run_deep_dive(acme_request)

    assert [s.uri for s in result.sources] == ["https://acme.example/privacy"]
    assert result.sources[0].title == "Acme Privacy Policy"


@pytest.mark.asyncio
async def test_result_serializes_with_camel_case_keys(monkeypatch, acme_request, engine_text):
    _install_engine(monkeypatch, EngineReply(text=engine_text))

    result = await pipeline_mod.run_deep_dive(acme_request)
    dumped = json.loads(result.model_dump_json(by_alias=True))

    assert dumped["toolName"] == "Acme Notes"
    assert dumped["licenseTier"] == "Free"
    assert dumped["verdict"]["securityScore"] == 42
    assert dumped["safetySettings"] == {"available": False, "configurations": []}


@pytest.mark.asyncio
async def test_missing_scenario_summary_falls_back_to_scenario(monkeypatch, acme_request, engine_answer):
    del engine_answer["scenarioSummary"]
    _install_engine(monkeypatch, EngineReply(text=json.dumps(engine_answer)))

    result = await pipeline_mod.run_deep_dive(acme_request)

    assert result.scenario_summary == "Uploading meeting recordings"


@pytest.mark.asyncio
@pytest.mark.parametrize("blank_field", ["toolName", "website", "scenario"])
async def test_invalid_request_never_reaches_engine(monkeypatch, blank_field):
    calls = _install_engine(monkeypatch, EngineReply(text="{}"))
    payload = {
        "toolName": "Acme Notes",
        "website": "https://acme.example",
        "licenseTier": "Free",
        "scenario": "Uploading meeting recordings",
    }
    payload[blank_field] = "   "

    with pytest.raises(InvalidRequest) as exc_info:
        await pipeline_mod.run_deep_dive(payload)

    assert exc_info.value.missing == [blank_field]
    assert calls == []


@pytest.mark.asyncio
async def test_unknown_tier_is_invalid_request(monkeypatch):
    calls = _install_engine(monkeypatch, EngineReply(text="{}"))

    with pytest.raises(InvalidRequest) as exc_info:
        await pipeline_mod.run_deep_dive(
            {"toolName": "Acme", "website": "https://acme.example", "licenseTier": "Gold", "scenario": "x"}
        )

    assert exc_info.value.missing == ["licenseTier"]
    assert calls == []


@pytest.mark.asyncio
async def test_transport_failure_becomes_engine_unavailable(monkeypatch, acme_request):
    _install_engine(monkeypatch, error=asyncio.TimeoutError("read timed out after 600s"))

    with pytest.raises(EngineUnavailable) as exc_info:
        await pipeline_mod.run_deep_dive(acme_request)

    assert "timed out" not in exc_info.value.user_message
    assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)


@pytest.mark.asyncio
async def test_missing_api_key_becomes_engine_unavailable(monkeypatch, acme_request):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("LLM_API_KEY", raising=False)

    with pytest.raises(EngineUnavailable):
        await pipeline_mod.run_deep_dive(acme_request)


@pytest.mark.asyncio
async def test_empty_reply_propagates_as_empty_response(monkeypatch, acme_request):
    _install_engine(monkeypatch, EngineReply(text=None))

    with pytest.raises(EmptyResponse):
        await pipeline_mod.run_deep_dive(acme_request)


@pytest.mark.asyncio
async def test_malformed_reply_propagates_as_schema_violation(monkeypatch, acme_request):
    _install_engine(monkeypatch, EngineReply(text='{"verdict": {"summary": "ok"}}'))

    with pytest.raises(SchemaViolation):
        await pipeline_mod.run_deep_dive(acme_request)
