from typing import Any

from .generation_client import GenerationClient


class GenerationClientFactory:
    """Factory for creating generation client instances (Factory pattern).

    The registry holds classes, not live clients; every ``create`` call
    returns a fresh instance.
    """

    _registry: dict[str, type[GenerationClient]] = {}

    @classmethod
    def register(cls, key: str, client_class: type[GenerationClient]) -> None:
        """
        Register a client implementation.

        Args:
            key: Client identifier (e.g., "openrouter")
            client_class: The client class to register
        """
        cls._registry[key] = client_class

    @classmethod
    def create(cls, client_key: str, config: dict[str, Any] | None = None) -> GenerationClient:
        """
        Create a client instance.

        Args:
            client_key: Registered client identifier
            config: Optional keyword arguments for the client constructor

        Returns:
            Instantiated GenerationClient

        Raises:
            KeyError: If client_key is not registered
        """
        if client_key not in cls._registry:
            available = ", ".join(cls._registry.keys())
            raise KeyError(
                f"Generation client: '{client_key}' not found. "
                f"Available clients: {available}"
            )

        client_class = cls._registry[client_key]
        config = config or {}
        return client_class(**config)

    @classmethod
    def list_clients(cls) -> list[str]:
        return list(cls._registry.keys())

    @classmethod
    def get_metadata(cls, client_key: str) -> dict[str, Any] | None:
        """
        Get metadata for a specific client.

        Returns:
            Metadata dict if found, None otherwise
        """
        if client_key not in cls._registry:
            return None
        return cls._registry[client_key].get_metadata()
