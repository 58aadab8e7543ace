"""
Prompt building and response cleanup for the text-generation backend.
"""
import json
from typing import Any, Dict, Optional

from ...exceptions import MalformedGenerationOutput


RECENT_INTERACTIONS_IN_PROMPT = 5
INTERACTION_PREVIEW_CHARS = 100


def _format_amount(value) -> str:
    return f"{value:,.0f}" if isinstance(value, (int, float)) else str(value)


def build_memory_prompt(context: Optional[Dict[str, Any]]) -> str:
    """
    System prompt carrying the user's memory.

    `context` is a MemoryContext.to_dict() snapshot. Missing parts fall back
    to a stranger with no history.
    """
    context = context or {}
    core = context.get("core") or {}
    interactions = context.get("recent_interactions") or []

    goals = core.get("active_goals") or []
    lines = [
        "You are NeuroShop's symbiotic shopping assistant. You learn and evolve together with the user.",
        "",
        "USER MEMORY:",
        f"- Relationship state: {core.get('relationship_state') or 'stranger'}",
        f"- Trust score: {core.get('trust_score') or 0}/100",
        f"- Active goals: {', '.join(goals) if goals else 'none yet'}",
    ]

    price_range = core.get("price_range")
    if price_range:
        lines.append(
            f"- Price range: {_format_amount(price_range.get('min'))} - {_format_amount(price_range.get('max'))}"
        )
    if core.get("favorite_categories"):
        lines.append(f"- Favorite categories: {', '.join(core['favorite_categories'])}")
    if core.get("idiosyncrasies"):
        lines.append(f"- Idiosyncrasies: {', '.join(core['idiosyncrasies'])}")

    if interactions:
        lines.append("")
        lines.append("RECENT INTERACTIONS:")
        for interaction in interactions[:RECENT_INTERACTIONS_IN_PROMPT]:
            data = json.dumps(interaction.get("event_data", {}), ensure_ascii=False)
            lines.append(f"- {interaction.get('event_type')}: {data[:INTERACTION_PREVIEW_CHARS]}")

    lines.append("")
    lines.append(
        "Take the user's memory and history into account. Be personal, context-aware and helpful."
    )
    return "\n".join(lines)


def clean_json_response(response: str) -> str:
    """Strip markdown code fences from an LLM response."""
    response = response.strip()

    if response.startswith("```json"):
        response = response[7:]
    elif response.startswith("```"):
        response = response[3:]

    if response.endswith("```"):
        response = response[:-3]

    return response.strip()


def parse_json_object(response: str) -> Dict[str, Any]:
    """Parse a JSON object out of an LLM response, tolerating code fences."""
    try:
        parsed = json.loads(clean_json_response(response))
    except json.JSONDecodeError as e:
        raise MalformedGenerationOutput(f"Response is not valid JSON: {e}")
    if not isinstance(parsed, dict):
        raise MalformedGenerationOutput(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
