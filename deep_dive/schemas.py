"""
Pydantic models for the deep dive audit.

Rationale:
- One explicit contract for what the engine must return and what callers receive.
- Wire names are camelCase (toolName, securityScore, ...); Python attributes stay snake_case.
- Models are frozen: a result exists whole or not at all and is never patched in place.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictBool
from pydantic.alias_generators import to_camel


class LicenseTier(str, Enum):
    FREE = "Free"
    PRO = "Pro/Paid"
    ENTERPRISE = "Enterprise"


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class AnalysisRequest(CamelModel):
    tool_name: str
    website: str
    license_tier: LicenseTier
    scenario: str


class DataFlowStep(CamelModel):
    step: str
    description: str
    data_types: List[str]


class Risk(CamelModel):
    category: str
    risk: str
    mitigation: str
    severity: Severity


class SafetyConfiguration(CamelModel):
    title: str
    steps: List[str]


class SafetySettingsBlock(CamelModel):
    available: StrictBool
    configurations: List[SafetyConfiguration]

    @property
    def is_anomalous(self) -> bool:
        """Settings reported unavailable yet configurations were still listed."""
        return not self.available and bool(self.configurations)


class Verdict(CamelModel):
    summary: str
    security_score: int
    recommendation: str


class Source(CamelModel):
    title: str
    uri: str


class DeepDiveCore(CamelModel):
    """The engine's validated answer, before request echoes and sources are attached."""

    scenario_summary: str = ""
    data_flow_analysis: List[DataFlowStep]
    specific_risks: List[Risk]
    safety_settings: SafetySettingsBlock
    verdict: Verdict
    truth_bomb: str


class DeepDiveResult(DeepDiveCore):
    tool_name: str
    license_tier: LicenseTier
    scenario: str
    sources: List[Source]


class ErrorDetail(BaseModel):
    code: str
    message: str


class LifecycleSnapshot(CamelModel):
    state: str
    status_message: Optional[str] = None
    request: Optional[Union[AnalysisRequest, Dict[str, Any]]] = None
    result: Optional[DeepDiveResult] = None
    error: Optional[str] = None
