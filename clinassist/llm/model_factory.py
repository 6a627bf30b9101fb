from abc import ABC, abstractmethod
from typing import Any

from clinassist.config.logger import get_logger
from clinassist.config.settings import settings

_logger = get_logger(__name__)


class BaseModelProvider(ABC):
    """Abstract provider contract for chat model creation."""

    name: str = "base"

    @abstractmethod
    def is_available(self, model: str) -> bool:
        """Whether this provider can serve the given model."""

    @abstractmethod
    def create(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        json_mode: bool,
    ) -> Any:
        """Create provider-specific langchain chat model instance."""


class OpenAIProvider(BaseModelProvider):
    name = "openai"

    def is_available(self, model: str) -> bool:
        return settings.has_openai_creds()

    def create(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        json_mode: bool,
    ) -> Any:
        from langchain_openai import ChatOpenAI

        kwargs: dict[str, Any] = {
            "model": model,
            "api_key": settings.OPENAI_API_KEY,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "timeout": timeout,
            # The inference gateway owns the retry budget.
            "max_retries": 0,
        }
        base_url = settings.get_base_url(self.name)
        if base_url:
            kwargs["base_url"] = base_url
        llm = ChatOpenAI(**kwargs)
        if json_mode:
            return llm.bind(response_format={"type": "json_object"})
        return llm


class OllamaProvider(BaseModelProvider):
    name = "ollama"

    def _base_url(self) -> str:
        return settings.get_base_url(self.name)

    def is_available(self, model: str) -> bool:
        # A local daemon is assumed; connection failures surface as UNREACHABLE when the model is called.
        return True

    def create(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        json_mode: bool,
    ) -> Any:
        from langchain_ollama import ChatOllama

        kwargs: dict[str, Any] = {
            "model": model,
            "base_url": self._base_url(),
            "temperature": temperature,
            "num_predict": max_tokens,
            "client_kwargs": {"timeout": timeout},
        }
        if json_mode:
            kwargs["format"] = "json"
        return ChatOllama(**kwargs)


class ModelFactory:
    """Provider registry + resolution strategy."""

    def __init__(self) -> None:
        self.providers: dict[str, BaseModelProvider] = {
            OpenAIProvider.name: OpenAIProvider(),
            OllamaProvider.name: OllamaProvider(),
        }

    def resolve_provider(self, model: str, explicit_provider: str) -> BaseModelProvider:
        provider_name = (explicit_provider or "").strip().lower()
        if provider_name and provider_name != "auto":
            provider = self.providers.get(provider_name)
            if provider is None:
                raise ValueError(f"Unknown provider: {provider_name}")
            return provider

        # Auto strategy: hosted OpenAI-compatible API when credentials exist, else local Ollama.
        if self.providers["openai"].is_available(model):
            return self.providers["openai"]
        return self.providers["ollama"]

    def create_chat_model(
        self,
        use_case_key: str,
        default_model: str = "",
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        json_mode: bool = True,
    ) -> Any:
        model = settings.get_model(use_case_key, default_model)
        provider = self.resolve_provider(model, settings.get_provider(use_case_key))
        _logger.info(
            "[model_factory] use_case=%s provider=%s model=%s json_mode=%s",
            use_case_key,
            provider.name,
            model,
            json_mode,
        )
        return provider.create(
            model=model,
            temperature=settings.INFERENCE_TEMPERATURE if temperature is None else temperature,
            max_tokens=settings.INFERENCE_MAX_OUTPUT_TOKENS if max_tokens is None else max_tokens,
            timeout=settings.INFERENCE_TIMEOUT_SECONDS if timeout is None else timeout,
            json_mode=json_mode,
        )


_FACTORY = ModelFactory()


def get_chat_model(
    use_case_key: str,
    default_model: str = "",
    temperature: float | None = None,
    max_tokens: int | None = None,
    timeout: float | None = None,
    json_mode: bool = True,
) -> Any | None:
    """Return a configured chat model, or None when the provider cannot be built."""
    try:
        return _FACTORY.create_chat_model(
            use_case_key=use_case_key,
            default_model=default_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            json_mode=json_mode,
        )
    except (ImportError, ValueError) as exc:
        _logger.warning("[model_factory] chat model unavailable for %s: %s", use_case_key, exc)
        return None
