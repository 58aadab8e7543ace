"""
NeuroShop - Assistant

Memory-aware text generation over a local Ollama server.
"""
from .ollama_client import OllamaClient, AvailabilityStatus
from .prompt_builder import build_memory_prompt, clean_json_response
from .assistant_service import AssistantService, SearchInsight, Recommendation, ReasoningStep

__all__ = [
    "OllamaClient",
    "AvailabilityStatus",
    "build_memory_prompt",
    "clean_json_response",
    "AssistantService",
    "SearchInsight",
    "Recommendation",
    "ReasoningStep",
]
