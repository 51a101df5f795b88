from __future__ import annotations

import copy
import json

import pytest

from deep_dive.schemas import AnalysisRequest, DeepDiveResult, LicenseTier
from deep_dive.validator import validate_response

_ENGINE_ANSWER = {
    "scenarioSummary": "Uploading recorded team meetings for automatic transcription.",
    "dataFlowAnalysis": [
        {
            "step": "Upload",
            "description": "Recording is uploaded over TLS to the vendor's storage.",
            "dataTypes": ["audio", "participant names"],
        },
        {
            "step": "Transcription",
            "description": "Audio is processed by a third-party speech model.",
            "dataTypes": ["audio", "transcript"],
        },
    ],
    "specificRisks": [
        {
            "category": "Model training",
            "risk": "Free tier content may be used to improve models.",
            "mitigation": "Use an Enterprise workspace with training disabled.",
            "severity": "High",
        },
    ],
    "safetySettings": {"available": False, "configurations": []},
    "verdict": {
        "summary": "Not suitable for confidential meetings on the Free tier.",
        "securityScore": 42,
        "recommendation": "Upgrade or avoid uploading sensitive recordings.",
    },
    "truthBomb": "Your board meeting is now somebody's training data.",
}


@pytest.fixture
def engine_answer() -> dict:
    return copy.deepcopy(_ENGINE_ANSWER)


@pytest.fixture
def engine_text(engine_answer) -> str:
    return json.dumps(engine_answer)


@pytest.fixture
def acme_request() -> AnalysisRequest:
    return AnalysisRequest(
        tool_name="Acme Notes",
        website="https://acme.example",
        license_tier=LicenseTier.FREE,
        scenario="Uploading meeting recordings",
    )


@pytest.fixture
def deep_dive_result(engine_text, acme_request) -> DeepDiveResult:
    core = validate_response(engine_text)
    return DeepDiveResult(
        **dict(core),
        tool_name=acme_request.tool_name,
        license_tier=acme_request.license_tier,
        scenario=acme_request.scenario,
        sources=[],
    )
