# chatmemory/client/azure/builder/openai_client_async.py
from __future__ import annotations

from typing import Any, Mapping, Optional

from chatmemory.client.azure.builder.search_client_async import (
    _filter_kwargs_for_ctor,
    _get,
    _to_plain_secret,
)

DEFAULT_OPENAI_MAX_RETRIES = 3
_COGS_SCOPE = "https://cognitiveservices.azure.com/.default"


def _normalize_openai_client_options(opts: Mapping[str, Any] | None) -> dict[str, Any]:
    """Canonicalize the `retries` alias and apply the default `max_retries`."""
    out = dict(opts or {})
    if "max_retries" not in out and "retries" in out:
        out["max_retries"] = out.pop("retries")
    out.setdefault("max_retries", DEFAULT_OPENAI_MAX_RETRIES)
    out["max_retries"] = int(out["max_retries"])
    if out["max_retries"] < 0:
        raise ValueError("max_retries must be >= 0")
    return out


class AsyncAzureOpenAIClientBuilder:
    """
    Builder for `openai.AsyncAzureOpenAI`, used for memory embeddings.

    Auth: the configured `openai_key` when present, otherwise an AAD bearer
    token provider over `DefaultAzureCredential`.
    """

    def __init__(self, config: Any, client_options: dict[str, Any] | None = None):
        self._cfg = config
        self._client_options = dict(client_options or {})

    @classmethod
    def from_config(
        cls, config: Any, client_options: Mapping[str, Any] | None = None
    ) -> "AsyncAzureOpenAIClientBuilder":
        return cls(config, client_options=_normalize_openai_client_options(client_options))

    def build(self) -> Any:
        azure_endpoint = _get(self._cfg, "openai_endpoint", "azure_endpoint")
        if not azure_endpoint:
            raise ValueError("Azure OpenAI endpoint is required")
        api_version = _get(self._cfg, "openai_version", "api_version")
        if not api_version:
            raise ValueError("Azure OpenAI api_version is required")

        kwargs: dict[str, Any] = {
            "azure_endpoint": azure_endpoint,
            "api_version": api_version,
        }
        kwargs.update(self._client_options)

        api_key: Optional[str] = _to_plain_secret(_get(self._cfg, "openai_key"))
        if api_key:
            kwargs["api_key"] = api_key
        else:
            from azure.identity.aio import DefaultAzureCredential, get_bearer_token_provider

            kwargs["azure_ad_token_provider"] = get_bearer_token_provider(
                DefaultAzureCredential(exclude_interactive_browser_credential=True),
                _COGS_SCOPE,
            )

        from openai import AsyncAzureOpenAI  # import here to keep builders import-light

        return AsyncAzureOpenAI(**_filter_kwargs_for_ctor(AsyncAzureOpenAI, kwargs))
