"""OpenAI-compatible LLM client for the AI steps of the paper pipeline.

Question extraction sends one prompt per chunk of paper text and reads the
reply as free text (a JSON array, usually fenced). Answer comparison asks for
a single JSON object. Both go through ``LLMClient``, which speaks the
chat-completions API of any of these providers:

- lmstudio: local LM Studio server
- openai: OpenAI API
- gemini: Google Gemini through its OpenAI-compatible endpoint

Provider failures are mapped onto ``LLMError`` subclasses; extraction stops
early on ``LLMRateLimitError`` and ``LLMQuotaError``.
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Literal

import structlog
import yaml
from openai import OpenAI

from pyqlab.config.app_config import get_provider_config
from pyqlab.utils.text_utils import strip_code_fences, strip_think

logger = structlog.get_logger(__name__)

Provider = Literal["lmstudio", "openai", "gemini"]

DEFAULT_CONFIG_PATH = Path("configs/models.yaml")

JSON_REPAIR_PROMPT = """Your previous reply was not a valid JSON object:
<<<
{invalid_output}
>>>

Reply with the same content as ONE valid JSON object. No markdown, no comments."""


# =============================================================================
# PROVIDERS
# =============================================================================


@dataclass(frozen=True)
class ProviderSpec:
    """Endpoint and credentials of an OpenAI-compatible provider."""

    base_url: str
    api_key_env: str | None = None
    static_api_key: str | None = None
    json_object: bool = False

    def api_key(self) -> str | None:
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return self.static_api_key


PROVIDERS: dict[str, ProviderSpec] = {
    # LM Studio accepts any key
    "lmstudio": ProviderSpec("http://localhost:1234/v1", static_api_key="lm-studio"),
    "openai": ProviderSpec(
        "https://api.openai.com/v1", api_key_env="OPENAI_API_KEY", json_object=True
    ),
    "gemini": ProviderSpec(
        "https://generativelanguage.googleapis.com/v1beta/openai/",
        api_key_env="GEMINI_API_KEY",
        json_object=True,
    ),
}


class LLMError(Exception):
    """Error during LLM interaction."""

    pass


class LLMConnectionError(LLMError):
    """The provider endpoint could not be reached."""

    pass


class LLMResponseError(LLMError):
    """The provider answered with something unusable."""

    pass


class LLMRateLimitError(LLMError):
    """Provider rejected the request with HTTP 429."""

    pass


class LLMQuotaError(LLMError):
    """Provider rejected the request because credits are exhausted (HTTP 402)."""

    pass


def _provider_spec(provider: str) -> ProviderSpec:
    try:
        return PROVIDERS[provider]
    except KeyError:
        raise LLMError(
            f"Unknown LLM provider '{provider}' (choose from {', '.join(PROVIDERS)})"
        ) from None


def _classify_failure(config: LLMConfig, error: Exception) -> LLMError:
    """Map an exception from the OpenAI SDK onto the LLMError hierarchy."""
    status_code = getattr(error, "status_code", None)
    if status_code == 429:
        return LLMRateLimitError(f"Rate limit exceeded on {config.provider}: {error}")
    if status_code == 402:
        return LLMQuotaError(f"Credits exhausted on {config.provider}: {error}")
    if "connect" in str(error).lower():
        return LLMConnectionError(
            f"Could not reach {config.provider} at {config.base_url}: {error}"
        )
    return LLMError(f"{config.provider} request failed: {error}")


def _parse_json_object(content: str) -> dict[str, Any] | None:
    """Parse the first JSON object in a reply, ignoring think blocks and fences."""
    cleaned = strip_code_fences(strip_think(content))

    candidates = [cleaned]
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if 0 <= start < end:
        candidates.append(cleaned[start : end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


# =============================================================================
# CONFIG
# =============================================================================


@dataclass
class LLMConfig:
    """Connection and sampling settings (configs/models.yaml, section ``llm``)."""

    provider: Provider = "lmstudio"
    base_url: str = PROVIDERS["lmstudio"].base_url
    model: str = "default"
    temperature: float = 0.7
    max_tokens: int = 4096
    timeout: int = 120
    api_key: str | None = None
    supports_json_object: bool | None = None

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> LLMConfig:
        """Load the ``llm`` section; defaults when the file is missing.

        Raises:
            LLMError: If the configured provider is unknown
        """
        path = config_path or DEFAULT_CONFIG_PATH
        if not path.exists():
            logger.warning("llm.config_not_found", path=str(path))
            return cls()

        with open(path, encoding="utf-8") as f:
            section = (yaml.safe_load(f) or {}).get("llm") or {}

        provider = section.get("provider", "lmstudio")
        spec = _provider_spec(provider)

        return cls(
            provider=provider,
            base_url=section.get("base_url", spec.base_url),
            model=section.get("model", "default"),
            temperature=section.get("temperature", 0.7),
            max_tokens=section.get("max_tokens", 4096),
            timeout=section.get("timeout", 120),
            api_key=spec.api_key(),
            supports_json_object=section.get("supports_json_object"),
        )

    @property
    def json_object_enabled(self) -> bool:
        if self.supports_json_object is not None:
            return self.supports_json_object
        spec = PROVIDERS.get(self.provider)
        return spec.json_object if spec else False


# =============================================================================
# CLIENT
# =============================================================================


class LLMClient:
    """Single-turn chat client used by extraction and answer comparison."""

    def __init__(
        self,
        config: LLMConfig | None = None,
        provider: str | None = None,
        model: str | None = None,
    ):
        """Create the client.

        Args:
            config: Settings; loaded from configs/models.yaml when omitted
            provider: Switch provider (endpoint and key follow the provider;
                the model becomes the provider's default_model unless given)
            model: Override the model name

        Raises:
            LLMError: If the provider is unknown
        """
        self.config = replace(config) if config is not None else LLMConfig.from_yaml()

        if provider is not None:
            spec = _provider_spec(provider)
            self.config.provider = provider
            self.config.base_url = spec.base_url
            self.config.api_key = spec.api_key()
            provider_config = get_provider_config(provider)
            if model is None and provider_config is not None:
                self.config.model = provider_config.default_model

        if model is not None:
            self.config.model = model

        self._client = OpenAI(
            base_url=self.config.base_url,
            api_key=self.config.api_key or "not-needed",
            timeout=self.config.timeout,
        )

        logger.info(
            "llm.client_ready",
            provider=self.config.provider,
            model=self.config.model,
            base_url=self.config.base_url,
        )

    def _complete(
        self,
        messages: list[dict[str, str]],
        temperature: float | None,
        max_tokens: int | None,
        json_mode: bool = False,
    ) -> str:
        """Run one chat completion and return the reply text.

        Raises:
            LLMRateLimitError: HTTP 429
            LLMQuotaError: HTTP 402
            LLMConnectionError: Endpoint unreachable
            LLMResponseError: No choices in the reply
            LLMError: Any other failure
        """
        request: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }
        if json_mode and self.config.json_object_enabled:
            request["response_format"] = {"type": "json_object"}

        started = time.perf_counter()
        try:
            response = self._client.chat.completions.create(**request)
        except Exception as e:
            raise _classify_failure(self.config, e) from e

        if not response.choices:
            raise LLMResponseError(f"Empty response from {self.config.provider}")

        logger.debug(
            "llm.completion",
            provider=self.config.provider,
            model=response.model,
            tokens=response.usage.total_tokens if response.usage else 0,
            latency_ms=int((time.perf_counter() - started) * 1000),
        )

        return response.choices[0].message.content or ""

    def simple_chat(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Single-turn chat; returns the raw reply."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]
        return self._complete(messages, temperature, max_tokens)

    def simple_json(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """Single-turn chat expecting a JSON object; one repair round on bad JSON.

        Raises:
            LLMResponseError: If no JSON object could be obtained
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]
        content = self._complete(messages, temperature, max_tokens, json_mode=True)
        parsed = _parse_json_object(content)
        if parsed is not None:
            return parsed

        logger.warning(
            "llm.json_invalid_retrying",
            provider=self.config.provider,
            preview=content[:100],
        )
        messages += [
            {"role": "assistant", "content": content},
            {"role": "user", "content": JSON_REPAIR_PROMPT.format(invalid_output=content[:1000])},
        ]
        repaired = self._complete(messages, temperature, max_tokens, json_mode=True)
        parsed = _parse_json_object(repaired)
        if parsed is not None:
            logger.info("llm.json_recovered")
            return parsed

        raise LLMResponseError(f"Could not obtain valid JSON: {content[:200]}")
