"""
AI providers behind a uniform describe/tag interface.

Providers are looked up by name in a static registry. Every built-in entry is backed by
a pydantic-ai `Agent`; the registry only knows how to build the chat model for a given
model name and the shared HTTP client.
"""

import json
import os
import time
import urllib.parse
from collections.abc import Callable
from dataclasses import dataclass, field
from http import HTTPStatus
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger
from pydantic_ai import Agent, BinaryContent, ModelSettings
from pydantic_ai.models import Model
from pydantic_ai.models.anthropic import AnthropicModel
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.mistral import MistralModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.anthropic import AnthropicProvider
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.mistral import MistralProvider
from pydantic_ai.providers.ollama import OllamaProvider
from pydantic_ai.providers.openai import OpenAIProvider

from exif_ai.config import (
    DEFAULT_LMSTUDIO_API_KEY,
    DEFAULT_LMSTUDIO_BASE_URL,
    DEFAULT_MAX_TOKENS,
    DEFAULT_OLLAMA_API_KEY,
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_COMPATIBLE_BASE_URL,
    DEFAULT_TEMPERATURE,
)
from exif_ai.errors import ProviderConfigError, UnsupportedProviderError


ModelFactory = Callable[[str, httpx.AsyncClient | None], Model]

SYSTEM_PROMPT = (
    "You are a photo archivist. You look at one image at a time and answer the user's "
    "request about it in plain text, without markdown, without lists unless asked, and "
    "without commentary about yourself."
)


@dataclass(frozen=True)
class ProviderRequest:
    """Everything a provider needs to answer one prompt about one image."""

    buffer: bytes
    prompt: str
    model: str | None = None
    provider_args: list[str] = field(default_factory=list)
    path: Path | None = None
    file_id: str | None = None
    provider: str | None = None
    media_type: str = "image/jpeg"


@runtime_checkable
class ImageProvider(Protocol):
    """Describe/tag capability. Providers may also expose `async upload_file(path) -> str`."""

    async def get_description(self, request: ProviderRequest) -> str: ...

    async def get_tags(self, request: ProviderRequest) -> str | list[str]: ...


def _parse_arg_value(raw: str) -> Any:  # noqa: ANN401
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def parse_provider_args(provider_args: list[str]) -> dict[str, Any]:
    """
    Turn `key=value` strings into model settings, decoding JSON values when possible.

    Examples:
        >>> parse_provider_args(["temperature=0.7", "seed=3", "stop=END"])
        {'temperature': 0.7, 'seed': 3, 'stop': 'END'}

    """
    settings: dict[str, Any] = {}
    for entry in provider_args:
        key, sep, value = entry.partition("=")
        key = key.strip().lstrip("-").replace("-", "_")
        if not sep or not key:
            logger.warning("provider_arg_ignored", arg=entry)
            continue
        settings[key] = _parse_arg_value(value.strip())
    return settings


class AgentProvider:
    """Provider implementation that talks to a chat model through pydantic-ai."""

    def __init__(
        self,
        name: str,
        model_factory: ModelFactory,
        default_model: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self.name = name
        self.default_model = default_model
        self._model_factory = model_factory
        self._http_client = http_client
        self._system_prompt = system_prompt
        self._agents: dict[str, Agent[None, str]] = {}

    def agent_for(self, model_name: str) -> Agent[None, str]:
        if model_name not in self._agents:
            logger.debug("setting_up_llm_agent", provider=self.name, model=model_name)
            chat_model = self._model_factory(model_name, self._http_client)
            self._agents[model_name] = Agent(chat_model, system_prompt=self._system_prompt)
        return self._agents[model_name]

    async def _generate(self, request: ProviderRequest) -> str:
        model_name = request.model or self.default_model
        agent = self.agent_for(model_name)
        settings: dict[str, Any] = {
            "temperature": DEFAULT_TEMPERATURE,
            "max_tokens": DEFAULT_MAX_TOKENS,
        }
        settings.update(parse_provider_args(request.provider_args))

        logger.debug("prompt_sent", provider=self.name, model=model_name, prompt=request.prompt)
        _t0 = time.perf_counter()
        result = await agent.run(
            [
                request.prompt,
                BinaryContent(data=request.buffer, media_type=request.media_type),
            ],
            model_settings=ModelSettings(**settings),  # type: ignore[typeddict-item]
        )
        logger.debug(
            "ai_inference_completed",
            provider=self.name,
            model=model_name,
            seconds=round(time.perf_counter() - _t0, 3),
            response=result.output,
        )
        return result.output or ""

    async def get_description(self, request: ProviderRequest) -> str:
        return await self._generate(request)

    async def get_tags(self, request: ProviderRequest) -> str | list[str]:
        return await self._generate(request)


def validate_lmstudio_model(api_base_url: str, model_name: str, api_key: str | None) -> None:
    """Fail fast when LM Studio cannot resolve the requested model name."""
    url = urllib.parse.urljoin(api_base_url.rstrip("/") + "/", "models")
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        msg = f"LM Studio URL must use http or https: {url}"
        raise ProviderConfigError(msg)
    if not parsed.netloc:
        msg = f"LM Studio URL has no host: {url}"
        raise ProviderConfigError(msg)
    headers = {"Accept": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    try:
        response = httpx.get(url, headers=headers, timeout=5.0)
    except httpx.HTTPError as exc:
        msg = f"Cannot list LM Studio models at {url}: {exc}"
        raise ProviderConfigError(msg) from exc

    if response.status_code != HTTPStatus.OK:
        msg = f"LM Studio model listing failed with status {response.status_code}: {response.text}"
        raise ProviderConfigError(msg)

    try:
        listing = response.json()
    except ValueError as exc:
        msg = f"LM Studio model listing is not JSON: {exc}"
        raise ProviderConfigError(msg) from exc

    models = [
        str(entry["id"])
        for entry in listing.get("data", [])
        if isinstance(entry, dict) and "id" in entry
    ]
    if model_name not in models:
        msg = f"Model {model_name!r} is not available in LM Studio (available: {models})"
        raise ProviderConfigError(msg)

    logger.debug("lmstudio_model_validated", model=model_name)


def _openai_compatible(
    base_url: str | None,
    api_key_env: str | None,
    *,
    api_key: str | None = None,
) -> ModelFactory:
    def build(model_name: str, http_client: httpx.AsyncClient | None) -> Model:
        key = api_key or (os.getenv(api_key_env) if api_key_env else None)
        provider = OpenAIProvider(base_url=base_url, api_key=key, http_client=http_client)
        return OpenAIChatModel(model_name=model_name, provider=provider)

    return build


def _ollama(model_name: str, http_client: httpx.AsyncClient | None) -> Model:
    provider = OllamaProvider(
        base_url=DEFAULT_OLLAMA_BASE_URL,
        api_key=DEFAULT_OLLAMA_API_KEY,
        http_client=http_client,
    )
    return OpenAIChatModel(model_name=model_name, provider=provider)


def _lmstudio(model_name: str, http_client: httpx.AsyncClient | None) -> Model:
    validate_lmstudio_model(DEFAULT_LMSTUDIO_BASE_URL, model_name, DEFAULT_LMSTUDIO_API_KEY)
    provider = OpenAIProvider(
        base_url=DEFAULT_LMSTUDIO_BASE_URL,
        api_key=DEFAULT_LMSTUDIO_API_KEY,
        http_client=http_client,
    )
    return OpenAIChatModel(model_name=model_name, provider=provider)


def _google(model_name: str, http_client: httpx.AsyncClient | None) -> Model:
    api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("API_KEY")
    provider = GoogleProvider(api_key=api_key, http_client=http_client)
    return GoogleModel(model_name, provider=provider)


def _anthropic(model_name: str, http_client: httpx.AsyncClient | None) -> Model:
    provider = AnthropicProvider(api_key=os.getenv("ANTHROPIC_API_KEY"), http_client=http_client)
    return AnthropicModel(model_name, provider=provider)


def _mistral(model_name: str, http_client: httpx.AsyncClient | None) -> Model:
    provider = MistralProvider(api_key=os.getenv("MISTRAL_API_KEY"), http_client=http_client)
    return MistralModel(model_name, provider=provider)


@dataclass(frozen=True)
class ProviderEntry:
    default_model: str
    build_model: ModelFactory


PROVIDERS: dict[str, ProviderEntry] = {
    "openai": ProviderEntry(
        "gpt-4o",
        _openai_compatible(DEFAULT_OPENAI_BASE_URL, "OPENAI_API_KEY"),
    ),
    "google": ProviderEntry("gemini-2.5-flash", _google),
    "anthropic": ProviderEntry("claude-3-5-sonnet-latest", _anthropic),
    "mistral": ProviderEntry("pixtral-large-latest", _mistral),
    "ollama": ProviderEntry("llama3.2-vision", _ollama),
    "lmstudio": ProviderEntry("qwen/qwen3-vl-30b", _lmstudio),
    "openrouter": ProviderEntry(
        "openai/gpt-4o",
        _openai_compatible("https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"),
    ),
    "deepinfra": ProviderEntry(
        "meta-llama/Llama-3.2-90B-Vision-Instruct",
        _openai_compatible("https://api.deepinfra.com/v1/openai", "DEEPINFRA_API_KEY"),
    ),
    "fireworks": ProviderEntry(
        "accounts/fireworks/models/llama4-maverick-instruct-basic",
        _openai_compatible("https://api.fireworks.ai/inference/v1", "FIREWORKS_API_KEY"),
    ),
    "together": ProviderEntry(
        "meta-llama/Llama-Vision-Free",
        _openai_compatible("https://api.together.xyz/v1", "TOGETHER_API_KEY"),
    ),
    "xai": ProviderEntry(
        "grok-2-vision-latest",
        _openai_compatible("https://api.x.ai/v1", "XAI_API_KEY"),
    ),
    "openai-compatible": ProviderEntry(
        "default",
        _openai_compatible(DEFAULT_OPENAI_COMPATIBLE_BASE_URL, "OPENAI_COMPATIBLE_API_KEY"),
    ),
}
PROVIDER_ALIASES = {"togetherai": "together"}

# Ready-made providers registered at runtime; they take precedence over PROVIDERS.
_CUSTOM_PROVIDERS: dict[str, ImageProvider] = {}


def register_provider(name: str, provider: ImageProvider) -> None:
    """Install a ready-made provider under `name` (overrides a built-in entry)."""
    _CUSTOM_PROVIDERS[name.lower()] = provider


def unregister_provider(name: str) -> None:
    _CUSTOM_PROVIDERS.pop(name.lower(), None)


def available_providers() -> list[str]:
    return sorted({*PROVIDERS, *PROVIDER_ALIASES, *_CUSTOM_PROVIDERS})


def get_provider(
    name: str,
    *,
    model: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ImageProvider:
    """
    Resolve a provider by name and build its chat model up front.

    Building eagerly surfaces configuration problems (missing API key, unknown LM Studio
    model) once per run instead of once per attempt.

    Raises:
        UnsupportedProviderError: when the name is neither registered nor built in.

    """
    key = name.lower()
    if key in _CUSTOM_PROVIDERS:
        return _CUSTOM_PROVIDERS[key]
    key = PROVIDER_ALIASES.get(key, key)
    entry = PROVIDERS.get(key)
    if entry is None:
        raise UnsupportedProviderError(name, available_providers())
    logger.debug("provider_resolved", provider=key, default_model=entry.default_model)
    provider = AgentProvider(key, entry.build_model, entry.default_model, http_client=http_client)
    provider.agent_for(model or entry.default_model)
    return provider
