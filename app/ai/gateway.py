"""
Case Study Builder
LLM Gateway — last-resort translation engine.

Routes a single system-prompt + text completion to the first configured
provider (Anthropic Claude, OpenAI, Gemini).  A provider counts as
configured when its API key is set; with no key at all the gateway refuses
to run instead of producing placeholder output.

LLM_DEFAULT_CHAT_MODEL picks the provider by model-name prefix
(``claude-*``, ``gpt-*``, ``gemini-*``).  When that provider has no key the
first configured provider's default model is used instead.

Each call is a single attempt; SDK errors propagate to the caller.

Usage:
    from app.ai.gateway import LLMGateway
    gw = LLMGateway()
    if gw.has_real_provider:
        result = gw.complete("Translate into English.", "Текст", purpose="translation")
"""

import logging
import os
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

PROVIDER_ORDER = ("anthropic", "openai", "gemini")

MODEL_PREFIXES = {
    "claude": "anthropic",
    "gpt": "openai",
    "gemini": "gemini",
}


class LLMUnavailableError(RuntimeError):
    """No provider has an API key, or its SDK is not installed."""


def provider_for_model(model: str | None) -> str | None:
    prefix = (model or "").split("-", 1)[0].lower()
    return MODEL_PREFIXES.get(prefix)


# ── Providers ─────────────────────────────────────────────────────────────────

class LLMProvider(ABC):
    """One vendor SDK, created lazily on first use."""

    name = ""
    env_key = ""
    default_model = ""
    package = ""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key if api_key is not None else os.getenv(self.env_key, "")
        self._client = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def client(self):
        if self._client is None:
            try:
                self._client = self._make_client()
            except ImportError as exc:
                raise LLMUnavailableError(
                    f"{self.package} package not installed. Run: pip install {self.package}"
                ) from exc
        return self._client

    @abstractmethod
    def _make_client(self):
        ...

    @abstractmethod
    def complete(self, system: str, text: str, model: str, temperature: float, max_tokens: int) -> dict:
        """Return {content, prompt_tokens, completion_tokens}."""


class AnthropicProvider(LLMProvider):
    name = "anthropic"
    env_key = "ANTHROPIC_API_KEY"
    default_model = "claude-3-5-haiku-20241022"
    package = "anthropic"

    def _make_client(self):
        import anthropic
        return anthropic.Anthropic(api_key=self.api_key)

    def complete(self, system, text, model, temperature, max_tokens):
        response = self.client().messages.create(
            model=model,
            system=system,
            messages=[{"role": "user", "content": text}],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return {
            "content": "".join(block.text for block in response.content if hasattr(block, "text")),
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
        }


class OpenAIProvider(LLMProvider):
    name = "openai"
    env_key = "OPENAI_API_KEY"
    default_model = "gpt-4o-mini"
    package = "openai"

    def _make_client(self):
        import openai
        return openai.OpenAI(api_key=self.api_key)

    def complete(self, system, text, model, temperature, max_tokens):
        response = self.client().chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": text},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        usage = response.usage
        return {
            "content": response.choices[0].message.content or "",
            "prompt_tokens": usage.prompt_tokens if usage else 0,
            "completion_tokens": usage.completion_tokens if usage else 0,
        }


class GeminiProvider(LLMProvider):
    name = "gemini"
    env_key = "GEMINI_API_KEY"
    default_model = "gemini-2.5-flash"
    package = "google-genai"

    def _make_client(self):
        from google import genai
        return genai.Client(api_key=self.api_key)

    def complete(self, system, text, model, temperature, max_tokens):
        from google.genai import types

        response = self.client().models.generate_content(
            model=model,
            contents=text,
            config=types.GenerateContentConfig(
                system_instruction=system,
                temperature=temperature,
                max_output_tokens=max_tokens,
            ),
        )
        usage = response.usage_metadata
        return {
            "content": response.text or "",
            "prompt_tokens": getattr(usage, "prompt_token_count", 0) or 0,
            "completion_tokens": getattr(usage, "candidates_token_count", 0) or 0,
        }


# ── Gateway ───────────────────────────────────────────────────────────────────

class LLMGateway:
    """Pick a configured provider and run one completion."""

    def __init__(self, providers: list | None = None, model: str | None = None):
        if providers is None:
            providers = [AnthropicProvider(), OpenAIProvider(), GeminiProvider()]
        self._providers = {p.name: p for p in providers if p.configured}
        self.model = model if model is not None else os.getenv("LLM_DEFAULT_CHAT_MODEL", "")

    @property
    def has_real_provider(self) -> bool:
        return bool(self._providers)

    @property
    def provider_names(self) -> list[str]:
        return [name for name in PROVIDER_ORDER if name in self._providers]

    def _resolve(self) -> tuple[LLMProvider, str]:
        if not self._providers:
            raise LLMUnavailableError("No LLM provider configured")
        wanted = provider_for_model(self.model)
        if wanted in self._providers:
            return self._providers[wanted], self.model
        provider = self._providers[self.provider_names[0]]
        if self.model:
            logger.warning(
                "Model '%s' has no configured provider; using %s/%s",
                self.model, provider.name, provider.default_model,
            )
        return provider, provider.default_model

    def complete(
        self,
        system: str,
        text: str,
        *,
        purpose: str = "",
        temperature: float = 0.1,
        max_tokens: int = 4096,
    ) -> dict:
        """
        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, provider, latency_ms}

        Raises:
            LLMUnavailableError when nothing is configured; otherwise whatever
            the provider SDK raises.
        """
        provider, model = self._resolve()
        start_time = time.time()
        result = provider.complete(system, text, model, temperature, max_tokens)
        latency_ms = int((time.time() - start_time) * 1000)

        result.update(model=model, provider=provider.name, latency_ms=latency_ms)
        logger.info(
            "LLM call purpose=%s provider=%s model=%s tokens=%d latency=%dms",
            purpose or "-", provider.name, model,
            result["prompt_tokens"] + result["completion_tokens"], latency_ms,
        )
        return result
