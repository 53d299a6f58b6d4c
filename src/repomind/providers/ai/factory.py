import os
from logging import Logger, getLogger

from repomind.providers.ai.anthropic import AnthropicProvider
from repomind.providers.ai.cluster import ClusterAIProvider
from repomind.providers.ai.gemini import GeminiProvider
from repomind.providers.ai.interface import AIProvider
from repomind.providers.ai.openai import OpenAIProvider
from repomind.providers.holder import ProviderHolder

logger: Logger = getLogger(__name__)

DEFAULT_AI_PROVIDER = "gemini"


def is_cluster_ai_enabled() -> bool:
    return (os.getenv("CLUSTER_AI_ENABLED") or "").lower() == "true"


def get_ai_provider_name() -> str:
    return (os.getenv("AI_PROVIDER") or DEFAULT_AI_PROVIDER).lower()


def create_ai_provider() -> AIProvider:
    """Create the AI provider selected by the environment.

    `CLUSTER_AI_ENABLED=true` takes precedence over `AI_PROVIDER`, which defaults to Gemini. Unknown providers fall
    back to Gemini with a warning.

    Raises:
        MissingCredentialsError: If the selected provider needs an API key that is not set.
    """

    if is_cluster_ai_enabled():
        return ClusterAIProvider()

    provider_name: str = get_ai_provider_name()

    match provider_name:
        case "gemini":
            return GeminiProvider()
        case "openai" | "openai-compatible":
            return OpenAIProvider()
        case "anthropic":
            return AnthropicProvider()
        case "cluster-ai" | "cluster-mcp":
            return ClusterAIProvider()
        case _:
            logger.warning(f"Unknown AI_PROVIDER: {provider_name}. Falling back to Gemini.")
            return GeminiProvider()


ai_provider_holder: ProviderHolder[AIProvider] = ProviderHolder(factory=create_ai_provider)


def get_ai_provider() -> AIProvider:
    return ai_provider_holder.get()


def reset_ai_provider() -> None:
    ai_provider_holder.reset()
