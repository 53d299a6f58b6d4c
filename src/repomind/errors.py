ExtraInfoType = dict[str, str | None]


class RepoMindError(Exception):
    """Base error for RepoMind."""

    def __init__(self, message: str, extra_info: ExtraInfoType | None = None):
        msg = message
        if extra_info:
            msg += " (" + ", ".join([f"{key}: {value}" for key, value in extra_info.items() if value is not None]) + ")"
        super().__init__(msg)


# Configuration


class ConfigurationError(RepoMindError):
    """A required setting is missing or invalid. Raised when a client or provider is constructed."""

    def __init__(self, setting: str, message: str):
        super().__init__(message=message, extra_info={"setting": setting})


class MissingCredentialsError(ConfigurationError):
    def __init__(self, provider: str, env_var: str):
        super().__init__(setting=env_var, message=f"{env_var} environment variable is not set, {provider} cannot be used.")


class CacheConfigurationError(ConfigurationError):
    pass


# GitHub


class RequestError(RepoMindError):
    """A request to GitHub failed."""

    def __init__(self, action: str, message: str | None = None, extra_info: ExtraInfoType | None = None):
        super().__init__(message="A request error occured.", extra_info={"action": action, "message": message, **(extra_info or {})})


class ResourceNotFoundError(RequestError):
    """The requested GitHub resource does not exist or is not visible to the token."""

    def __init__(self, action: str, resource: str | None = None):
        super().__init__(action=action, message="The resource could not be found.", extra_info={"resource": resource})


class ResourceTypeMismatchError(RequestError):
    def __init__(self, action: str, resource: str, expected_type: str, actual_type: str):
        super().__init__(action=action, message=f"{resource}: Expected {expected_type}, got {actual_type}")


# AI providers


class AIProviderError(RepoMindError):
    """A generation request failed after the provider classified the failure."""

    def __init__(self, provider: str, message: str, extra_info: ExtraInfoType | None = None):
        self.provider: str = provider
        super().__init__(message=message, extra_info=extra_info)


class EmptyResponseError(AIProviderError):
    def __init__(self, provider: str):
        super().__init__(provider=provider, message=f"No response from {provider}")


class ModelNotFoundError(AIProviderError):
    def __init__(self, provider: str, model: str, base_url: str | None = None):
        self.model: str = model
        super().__init__(
            provider=provider,
            message=f"{provider} model not found: {model}. Check available models.",
            extra_info={"base_url": base_url},
        )


class ServiceUnavailableError(AIProviderError):
    def __init__(self, provider: str):
        super().__init__(provider=provider, message=f"{provider} service unavailable. Check if the service is running.")


class ProviderTimeoutError(AIProviderError):
    def __init__(self, provider: str, timeout: float):
        self.timeout: float = timeout
        super().__init__(
            provider=provider,
            message=f"{provider} request timed out after {timeout:g} seconds. The service may be slow or unavailable.",
        )


# Cache


class CacheCommandError(RepoMindError):
    """The cache backend answered a command with an error."""

    def __init__(self, command: str, message: str):
        super().__init__(message="A cache command failed.", extra_info={"command": command, "message": message})
