"""
Extraction of scheduling preferences and discovery answers from call payloads.
Best-effort: nothing here affects reservation or booking correctness.
"""

import json
from typing import Any

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Phrases the agent uses when asking each discovery question, in question order
DISCOVERY_PHRASES = [
    "hear about",
    "business",
    "product",
    "running ads",
    "crm",
    "problems",
]
MIN_DISCOVERY_ANSWERS = 4


def _analysis_data(call: dict[str, Any]) -> dict[str, Any]:
    custom_data = (call.get("analysis") or {}).get("custom_data")
    if isinstance(custom_data, str):
        try:
            custom_data = json.loads(custom_data)
        except ValueError:
            logger.warning("Unparseable analysis custom_data", call_id=call.get("call_id"))
            return {}
    return custom_data if isinstance(custom_data, dict) else {}


def extract_preferred_day(call: dict[str, Any]) -> str:
    """First preferredDay found in call variables, custom data or analysis."""
    for source in (call.get("variables"), call.get("custom_data")):
        if isinstance(source, dict) and source.get("preferredDay"):
            return source["preferredDay"]

    analysis = _analysis_data(call)
    if analysis.get("preferredDay"):
        return analysis["preferredDay"]
    scheduling = analysis.get("scheduling")
    if isinstance(scheduling, dict) and scheduling.get("day"):
        return scheduling["day"]
    return ""


def extract_discovery_from_transcript(transcript: list[dict[str, Any]]) -> dict[str, str]:
    """Pair each assistant discovery question with the user reply that follows it."""
    answers: dict[str, str] = {}
    for message, reply in zip(transcript, transcript[1:]):
        if message.get("role") != "assistant" or reply.get("role") != "user":
            continue
        question_text = (message.get("content") or "").lower()
        for index, phrase in enumerate(DISCOVERY_PHRASES):
            if phrase in question_text:
                answers[f"question_{index}"] = reply.get("content", "")
    return answers


def extract_discovery_data(call: dict[str, Any]) -> dict[str, Any]:
    """Merge discovery answers from analysis data, variables and, if sparse, the transcript."""
    analysis = _analysis_data(call)
    discovery: dict[str, Any] = dict(
        analysis.get("discovery_data") or analysis.get("discoveryData") or {}
    )

    variables = call.get("variables")
    if isinstance(variables, dict):
        for key, value in variables.items():
            if "question" in key or "discovery" in key:
                discovery[key] = value

    transcript = call.get("transcript")
    if len(discovery) < MIN_DISCOVERY_ANSWERS and isinstance(transcript, list):
        for key, value in extract_discovery_from_transcript(transcript).items():
            discovery.setdefault(key, value)

    return discovery
