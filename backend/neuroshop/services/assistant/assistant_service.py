"""
Assistant Service

AUTHORITY: ADVISORY
Memory-aware calls to the text-generation backend. Nothing produced here is
persisted by this module and nothing here raises on a backend failure:
    - GenerationUnavailable      -> empty/neutral result of the same shape
    - MalformedGenerationOutput  -> best-effort fallback of the same shape
Callers treat an empty result as "no data".
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

from ...exceptions import GenerationUnavailable, MalformedGenerationOutput
from ...models.memory_models import MemoryContext
from .ollama_client import OllamaClient
from .prompt_builder import build_memory_prompt, parse_json_object


logger = logging.getLogger(__name__)


ContextLike = Union[MemoryContext, Dict[str, Any], None]

# Sampling temperature per task
TEMPERATURES = {
    "analysis": 0.3,
    "recommendation": 0.3,
    "reasoning": 0.2,
    "chat": 0.6,
}


@dataclass
class SearchInsight:
    insights: str = ""
    personality_indicators: Dict[str, float] = field(default_factory=dict)
    suggested_preferences: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Recommendation:
    product_id: Any
    score: float
    reasoning: str = ""
    factors: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ReasoningStep:
    step: int
    factor: str
    evidence: str = ""
    weight: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def _context_dict(context: ContextLike) -> Dict[str, Any]:
    if isinstance(context, MemoryContext):
        return context.to_dict()
    return context or {}


def _numbers(value) -> Dict[str, float]:
    if not isinstance(value, dict):
        return {}
    return {str(k): v for k, v in value.items() if isinstance(v, (int, float)) and not isinstance(v, bool)}


def _pick(item: dict, *keys, default=None):
    for key in keys:
        if key in item:
            return item[key]
    return default


class AssistantService:
    """
    Usage:
        assistant = AssistantService()
        insight = assistant.analyze_search_query("gaming laptop", context)
    """

    def __init__(self, client: Optional[OllamaClient] = None):
        self.client = client or OllamaClient()

    def _ask(self, context: ContextLike, prompt: str, task: str) -> str:
        return self.client.generate(
            [
                {"role": "system", "content": build_memory_prompt(_context_dict(context))},
                {"role": "user", "content": prompt},
            ],
            temperature=TEMPERATURES[task],
        )

    def analyze_search_query(self, query: str, context: ContextLike = None) -> SearchInsight:
        """Personality and preference hints from a search query."""
        prompt = (
            f'The user searched for: "{query}"\n\n'
            "From this query:\n"
            "1. Infer the user's personality (Big Five: openness, conscientiousness, "
            "extraversion, agreeableness, neuroticism)\n"
            "2. Identify preference patterns\n"
            "3. Answer in JSON:\n"
            '{"insights": "overall assessment", '
            '"personalityIndicators": {"openness": 0-100, "conscientiousness": 0-100, '
            '"extraversion": 0-100, "agreeableness": 0-100, "neuroticism": 0-100}, '
            '"suggestedPreferences": ["preference", ...]}'
        )
        try:
            response = self._ask(context, prompt, "analysis")
        except GenerationUnavailable as e:
            logger.warning(f"Search analysis unavailable: {e}")
            return SearchInsight()

        try:
            parsed = parse_json_object(response)
        except MalformedGenerationOutput as e:
            logger.warning(f"Search analysis returned free text: {e}")
            return SearchInsight(insights=response.strip())

        preferences = _pick(parsed, "suggestedPreferences", "suggested_preferences", default=[])
        return SearchInsight(
            insights=str(parsed.get("insights", "")),
            personality_indicators=_numbers(
                _pick(parsed, "personalityIndicators", "personality_indicators", default={})
            ),
            suggested_preferences=[str(p) for p in preferences] if isinstance(preferences, list) else [],
        )

    def recommend_products(self, products: List[Dict[str, Any]], context: ContextLike = None) -> List[Recommendation]:
        """Score candidate products against the user's memory. [] on any failure."""
        if not products:
            return []

        listing = "\n".join(
            f"- [{p.get('id')}] {p.get('name')} ({p.get('price')}): {p.get('description') or ''}"
            for p in products
        )
        prompt = (
            "Score and recommend the following products using the user's memory:\n\n"
            f"{listing}\n\n"
            "Answer in JSON:\n"
            '{"recommendations": [{"productId": "id", "score": 0-100, '
            '"reasoning": "why this product fits the memory and personality", '
            '"factors": {"personalityMatch": 0-100, "budgetFit": 0-100, "memoryAlignment": 0-100}}]}'
        )
        try:
            parsed = parse_json_object(self._ask(context, prompt, "recommendation"))
        except (GenerationUnavailable, MalformedGenerationOutput) as e:
            logger.warning(f"Product recommendation unavailable: {e}")
            return []

        recommendations = []
        for item in parsed.get("recommendations") or []:
            if not isinstance(item, dict):
                continue
            score = item.get("score")
            if not isinstance(score, (int, float)):
                continue
            recommendations.append(Recommendation(
                product_id=_pick(item, "productId", "product_id"),
                score=score,
                reasoning=str(item.get("reasoning", "")),
                factors=_numbers(item.get("factors")),
            ))
        return recommendations

    def generate_reasoning(self, product_name: str, score: float, context: ContextLike = None) -> List[ReasoningStep]:
        """Step-by-step explanation of a recommendation. [] on any failure."""
        prompt = (
            f'Product: "{product_name}" (score: {score}/100)\n\n'
            "Explain step by step why this product was recommended. Answer in JSON:\n"
            '{"reasoning": [{"step": 1, "factor": "factor name", '
            '"evidence": "evidence from the user\'s memory", "weight": 0-100}]}'
        )
        try:
            parsed = parse_json_object(self._ask(context, prompt, "reasoning"))
        except (GenerationUnavailable, MalformedGenerationOutput) as e:
            logger.warning(f"Reasoning unavailable for '{product_name}': {e}")
            return []

        steps = []
        for index, item in enumerate(parsed.get("reasoning") or [], start=1):
            if not isinstance(item, dict) or not item.get("factor"):
                continue
            weight = item.get("weight")
            steps.append(ReasoningStep(
                step=item.get("step") if isinstance(item.get("step"), int) else index,
                factor=str(item["factor"]),
                evidence=str(item.get("evidence", "")),
                weight=weight if isinstance(weight, (int, float)) else 0.0,
            ))
        return steps

    def chat(
        self,
        message: str,
        context: ContextLike = None,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """Memory-aware reply. Empty string when the backend is down."""
        messages = [{"role": "system", "content": build_memory_prompt(_context_dict(context))}]
        messages.extend(history or [])
        messages.append({"role": "user", "content": message})

        try:
            return self.client.generate(messages, temperature=TEMPERATURES["chat"])
        except GenerationUnavailable as e:
            logger.warning(f"Chat unavailable: {e}")
            return ""
