from .generation_client import GenerationClient
from .client_factory import GenerationClientFactory
from .openrouter_client import OpenRouterClient

# Register built-in clients
GenerationClientFactory.register("openrouter", OpenRouterClient)

__all__ = ["GenerationClient", "GenerationClientFactory", "OpenRouterClient"]
