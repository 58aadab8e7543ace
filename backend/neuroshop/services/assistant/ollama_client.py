"""
Ollama Client

Thin wrapper over the Ollama HTTP API:
    POST /api/chat  - non-streaming chat completion
    GET  /api/tags  - locally available models
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from ...exceptions import GenerationUnavailable


logger = logging.getLogger(__name__)


OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2:3b")
OLLAMA_TIMEOUT_SECONDS = float(os.getenv("OLLAMA_TIMEOUT_SECONDS", "60"))

MESSAGE_ROLES = ("system", "user", "assistant")


@dataclass
class AvailabilityStatus:
    available: bool
    models: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"available": self.available, "models": list(self.models)}


class OllamaClient:
    """
    Usage:
        client = OllamaClient()
        text = client.generate([{"role": "user", "content": "hi"}])
    """

    def __init__(
        self,
        base_url: str = OLLAMA_BASE_URL,
        model: str = OLLAMA_MODEL,
        timeout: float = OLLAMA_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    def check_availability(self) -> AvailabilityStatus:
        """Report whether the server answers and which models it has."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Ollama availability check failed: {e}")
            return AvailabilityStatus(available=False)

        return AvailabilityStatus(
            available=True,
            models=[m["name"] for m in data.get("models", []) if "name" in m],
        )

    def generate(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.4,
        num_ctx: int = 8192,
        top_p: float = 0.9,
        model: Optional[str] = None,
    ) -> str:
        """
        Run one chat completion and return the assistant text.

        Raises GenerationUnavailable when the server cannot be reached or
        answers with an error or an unexpected body.
        """
        for message in messages:
            if message.get("role") not in MESSAGE_ROLES:
                raise ValueError(f"Unsupported message role: {message.get('role')!r}")

        payload = {
            "model": model or self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_ctx": num_ctx,
                "top_p": top_p,
            },
        }

        try:
            response = requests.post(f"{self.base_url}/api/chat", json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()["message"]["content"]
        except requests.exceptions.Timeout:
            raise GenerationUnavailable(f"Ollama timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise GenerationUnavailable(f"Ollama request failed: {e}")
        except (ValueError, KeyError, TypeError) as e:
            raise GenerationUnavailable(f"Unexpected Ollama response: {e}")
