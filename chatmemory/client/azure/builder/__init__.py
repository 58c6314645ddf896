from __future__ import annotations

from typing import Any

__all__ = (
    "AzureSearchAsyncClientBuilder",
    "AsyncAzureOpenAIClientBuilder",
)


def __getattr__(name: str) -> Any:
    # Import on first access; keeps import-time side effects minimal.
    if name == "AzureSearchAsyncClientBuilder":
        from .search_client_async import AzureSearchAsyncClientBuilder

        return AzureSearchAsyncClientBuilder

    if name == "AsyncAzureOpenAIClientBuilder":
        from .openai_client_async import AsyncAzureOpenAIClientBuilder

        return AsyncAzureOpenAIClientBuilder

    raise AttributeError(name)
