"""
Provider adapters for Codora.

Each adapter turns a ProviderRequest into one backend's wire format and
maps the reply back to a GenerationResult with token counts and cost.
Any failure surfaces as ProviderError. Adapters hold credentials and a
lazily created SDK client, nothing else.
"""

import logging
import time
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable, Optional

import anthropic
import openai

from codora.config import RetryPolicy, TierConfig
from codora.errors import ProviderError
from codora.pricing import calculate_cost, get_pricing
from codora.schemas import (
    GenerationResult,
    ProviderName,
    ProviderProfile,
    ProviderRequest,
)

logger = logging.getLogger("codora.providers")

DEFAULT_TIMEOUT_SECONDS = 30.0


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str = "base"
    models: tuple[str, ...] = ()
    _default_model: str = ""

    @abstractmethod
    def generate(self, request: ProviderRequest) -> GenerationResult:
        """Call the backend. Raises ProviderError on any failure."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """True iff required credentials are present and non-empty."""
        pass

    def list_models(self) -> list[str]:
        return list(self.models)

    def default_model(self) -> str:
        return self._default_model

    @property
    def profile(self) -> ProviderProfile:
        table = get_pricing()
        return ProviderProfile(
            name=self.name,
            models=tuple(self.models),
            default_model=self.default_model(),
            pricing={m: table[m] for m in self.models if m in table},
        )


class OpenAIProvider(LLMProvider):
    """
    OpenAI API provider.

    Requires an API key, passed in or read from OPENAI_API_KEY by the config loader.
    """

    name = ProviderName.OPENAI.value
    models = (
        "gpt-4o-mini",
        "gpt-4o",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
        "gpt-3.5-turbo-16k",
    )
    _default_model = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client=None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = openai.OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def generate(self, request: ProviderRequest) -> GenerationResult:
        """Execute request via the chat completions API."""
        model = request.model or self.default_model()
        messages = [{"role": m.role, "content": m.content} for m in request.messages]

        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )
        except openai.APIStatusError as e:
            raise ProviderError(self.name, e.status_code, e.message) from e
        except openai.APITimeoutError as e:
            raise ProviderError(self.name, None, f"timed out after {self.timeout}s") from e
        except openai.OpenAIError as e:
            raise ProviderError(self.name, None, str(e)) from e

        if not response.choices:
            raise ProviderError(self.name, 200, "response contained no choices")

        text = response.choices[0].message.content or ""
        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0
        total_tokens = usage.total_tokens if usage else prompt_tokens + completion_tokens

        return GenerationResult(
            text=text,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            cost=self._bill(model, prompt_tokens, completion_tokens, total_tokens),
            model=model,
            provider=self.name,
        )

    def _bill(self, model: str, prompt_tokens: int, completion_tokens: int, total_tokens: int) -> Decimal:
        return calculate_cost(model, prompt_tokens, completion_tokens, total_tokens)


class AnthropicProvider(LLMProvider):
    """
    Anthropic API provider.

    Requires an API key, passed in or read from ANTHROPIC_API_KEY by the config loader.
    """

    name = ProviderName.ANTHROPIC.value
    models = (
        "claude-3-haiku-20240307",
        "claude-3-sonnet-20240229",
        "claude-3-5-sonnet-20241022",
        "claude-3-opus-20240229",
    )
    _default_model = "claude-3-haiku-20240307"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client=None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def generate(self, request: ProviderRequest) -> GenerationResult:
        """Execute request via the messages API."""
        model = request.model or self.default_model()
        kwargs = {
            "model": model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [
                {"role": m.role, "content": m.content} for m in request.chat_messages
            ],
        }
        if request.system_prompt:
            kwargs["system"] = request.system_prompt

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            raise ProviderError(self.name, e.status_code, e.message) from e
        except anthropic.APITimeoutError as e:
            raise ProviderError(self.name, None, f"timed out after {self.timeout}s") from e
        except anthropic.AnthropicError as e:
            raise ProviderError(self.name, None, str(e)) from e

        text = "".join(
            block.text for block in response.content or []
            if getattr(block, "type", None) == "text"
        )
        if not text and not response.content:
            raise ProviderError(self.name, 200, "response contained no content")

        prompt_tokens = response.usage.input_tokens
        completion_tokens = response.usage.output_tokens
        total_tokens = prompt_tokens + completion_tokens

        return GenerationResult(
            text=text,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            cost=calculate_cost(model, prompt_tokens, completion_tokens),
            model=model,
            provider=self.name,
        )


class LocalProvider(OpenAIProvider):
    """
    Self-hosted models behind Ollama's OpenAI-compatible endpoint.

    Always free: cost and token usage are reported as zero.
    """

    name = ProviderName.LOCAL.value
    models = ("llama2", "codellama", "mistral", "phi")
    _default_model = "llama2"

    def __init__(
        self,
        base_url: str = "http://localhost:11434/v1",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client=None,
    ):
        # Ollama ignores the key but the SDK requires one.
        super().__init__(api_key="ollama", base_url=base_url, timeout=timeout, client=client)

    def is_configured(self) -> bool:
        return bool(self.base_url)

    def generate(self, request: ProviderRequest) -> GenerationResult:
        result = super().generate(request)
        result.prompt_tokens = 0
        result.completion_tokens = 0
        result.total_tokens = 0
        return result

    def _bill(self, model: str, prompt_tokens: int, completion_tokens: int, total_tokens: int) -> Decimal:
        return Decimal("0")


class MockProvider(LLMProvider):
    """
    Mock provider for testing and dry runs.

    Returns a fixed response and records every request it receives.
    """

    name = ProviderName.MOCK.value
    models = ("mock-small", "mock-large")
    _default_model = "mock-small"

    def __init__(
        self,
        response_text: str = "[Mock explanation]",
        prompt_tokens: int = 100,
        completion_tokens: int = 50,
        cost: Decimal = Decimal("0.001"),
        latency_ms: int = 0,
        error: Optional[Exception] = None,
        configured: bool = True,
        name: Optional[str] = None,
    ):
        self.response_text = response_text
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.cost = Decimal(str(cost))
        self.latency_ms = latency_ms
        self.error = error
        self.configured = configured
        if name:
            self.name = name
        self.calls: list[ProviderRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def is_configured(self) -> bool:
        return self.configured

    def generate(self, request: ProviderRequest) -> GenerationResult:
        self.calls.append(request)
        if self.latency_ms:
            time.sleep(self.latency_ms / 1000)
        if self.error is not None:
            raise self.error
        return GenerationResult(
            text=self.response_text,
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
            total_tokens=self.prompt_tokens + self.completion_tokens,
            cost=self.cost,
            model=request.model or self.default_model(),
            provider=self.name,
        )


def build_provider(tier: TierConfig, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> LLMProvider:
    """Instantiate the adapter a tier configuration names."""
    provider = ProviderName(tier.provider)
    if provider == ProviderName.OPENAI:
        return OpenAIProvider(api_key=tier.api_key, base_url=tier.base_url, timeout=timeout)
    if provider == ProviderName.ANTHROPIC:
        return AnthropicProvider(api_key=tier.api_key, timeout=timeout)
    if provider == ProviderName.LOCAL:
        return LocalProvider(base_url=tier.base_url or "http://localhost:11434/v1", timeout=timeout)
    return MockProvider()


def generate_with_retry(
    provider: LLMProvider,
    request: ProviderRequest,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> GenerationResult:
    """
    Call provider.generate with bounded exponential backoff.

    Only retryable failures (network, 429, 5xx) are retried. With the
    default policy (no retries) this is a single call.
    """
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return provider.generate(request)
        except ProviderError as e:
            if not e.retryable or attempt >= policy.max_retries:
                raise
            attempt += 1
            delay_ms = min(
                policy.base_delay_ms * (2 ** (attempt - 1)),
                policy.max_delay_ms,
            )
            logger.warning(
                "%s call failed (%s); retry %d/%d in %dms",
                provider.name, e.status, attempt, policy.max_retries, delay_ms,
            )
            sleep(delay_ms / 1000)
