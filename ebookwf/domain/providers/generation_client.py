from abc import ABC, abstractmethod
from typing import Any

from ebookwf.domain.models.generation import GenerationParams


class GenerationClient(ABC):
    """Abstract interface for text-generation backends (Strategy pattern)."""

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        """Return client metadata for discovery.

        Returns:
            dict with keys: name, description, requires_config, config_keys,
                           default_timeout
        """
        return {
            "name": "unknown",
            "description": "No description available",
            "requires_config": False,
            "config_keys": [],
            "default_timeout": 30,  # seconds
        }

    @abstractmethod
    def validate(self) -> None:
        """Verify the client is configured correctly.

        Called when the engine is wired, before any generation.

        Raises:
            GenerationError: If the client is misconfigured
        """
        ...

    @abstractmethod
    def generate(self, prompt: str, model: str, params: GenerationParams) -> str:
        """Generate text for the given prompt.

        Retries, backoff and timeouts are the client's concern; the engine
        calls this exactly once per generation.

        Args:
            prompt: The user prompt
            model: Backend model identifier
            params: Sampling parameters

        Returns:
            Generated text

        Raises:
            GenerationError: If the call fails (network, auth, timeout, etc.)
        """
        ...
