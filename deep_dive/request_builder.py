"""
Builds the structured query sent to the research engine.

The output schema is fixed and versioned; only the instruction and query text
vary per request. Pure functions, no I/O.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict

from .schemas import AnalysisRequest

SCHEMA_VERSION = "1"

_STRING = {"type": "STRING"}
_STRING_LIST = {"type": "ARRAY", "items": _STRING}

OUTPUT_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "scenarioSummary": _STRING,
        "dataFlowAnalysis": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "step": _STRING,
                    "description": _STRING,
                    "dataTypes": _STRING_LIST,
                },
                "required": ["step", "description", "dataTypes"],
            },
        },
        "specificRisks": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "category": _STRING,
                    "risk": _STRING,
                    "mitigation": _STRING,
                    "severity": {"type": "STRING", "enum": ["Low", "Medium", "High", "Critical"]},
                },
                "required": ["category", "risk", "mitigation", "severity"],
            },
        },
        "safetySettings": {
            "type": "OBJECT",
            "properties": {
                "available": {"type": "BOOLEAN"},
                "configurations": {
                    "type": "ARRAY",
                    "items": {
                        "type": "OBJECT",
                        "properties": {
                            "title": _STRING,
                            "steps": _STRING_LIST,
                        },
                        "required": ["title", "steps"],
                    },
                },
            },
            "required": ["available", "configurations"],
        },
        "verdict": {
            "type": "OBJECT",
            "properties": {
                "summary": _STRING,
                "securityScore": {"type": "NUMBER"},
                "recommendation": _STRING,
            },
            "required": ["summary", "securityScore", "recommendation"],
        },
        "truthBomb": _STRING,
    },
    "required": ["dataFlowAnalysis", "specificRisks", "safetySettings", "verdict", "truthBomb"],
}

_INSTRUCTIONS_TEMPLATE = """\
You are a world-class Corporate Security & Data Privacy Architect and Tech Researcher.
Your task is to conduct a "Deep Dive" audit into a specific software tool, focusing on a specific user scenario and license tier.

CRITICAL VERIFICATION INSTRUCTIONS:
1. Research the Tool: {tool_name} ({website}) using Google Search.
2. Focus on Tier: {tier}. Privacy terms and UI options often differ significantly between Free and Enterprise.
3. Analyze Scenario: {scenario}. Map exactly how data moves, where it is stored, and who has access.
4. DATA SAFETY SETTINGS VERIFICATION (MANDATORY):
   - Search for the actual "Settings" or "Privacy" documentation of the tool.
   - DO NOT invent UI paths (e.g. 'Settings > Privacy > Opt-out').
   - ONLY list settings that you can verify exist for the {tier} tier.
   - If no user-toggleable data safety settings exist for this scenario/tier, set 'available' to false and return an empty array for configurations.
   - If they do exist, provide the EXACT verified steps from current documentation.

JSON STRUCTURE REQUIREMENTS:
- scenarioSummary: One or two sentences restating the scenario being audited.
- dataFlowAnalysis: Array of steps (step name, description, data types involved), in the order data moves.
- specificRisks: Array of risks unique to this tier + scenario combination, each with severity Low, Medium, High or Critical.
- safetySettings: {{ available: boolean, configurations: [{{ title: string, steps: string[] }}] }}.
- verdict: summary, securityScore (integer 0-100), and a clear recommendation.
- truthBomb: A brutally honest, creative, "no-corporate-speak" warning.

Return ONLY a valid JSON object with exactly these fields. No extra text.
"""

_QUERY_TEMPLATE = """\
Perform a high-accuracy security audit. Use Google Search to find the latest documentation.
Tool: {tool_name}
Website: {website}
License Tier: {tier}
Specific Scenario: {scenario}

Focus especially on verifying whether there are ACTUAL settings to opt out of data training or to increase privacy for this specific scenario. If none are found in the documentation, mark them as not available.
"""


@dataclass(frozen=True)
class QueryPayload:
    instructions: str
    query: str
    schema: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(OUTPUT_SCHEMA))
    schema_version: str = SCHEMA_VERSION


def build_query(request: AnalysisRequest) -> QueryPayload:
    values = {
        "tool_name": request.tool_name.strip(),
        "website": request.website.strip(),
        "tier": request.license_tier.value,
        "scenario": request.scenario.strip(),
    }
    return QueryPayload(
        instructions=_INSTRUCTIONS_TEMPLATE.format(**values),
        query=_QUERY_TEMPLATE.format(**values),
    )
