"""Central factory for the Azure clients used by the memory stores.

Call sites (and tests, which patch this class) go through `AzureClientFactory`
instead of touching SDK constructors directly. Builders are imported lazily so
a missing optional SDK only fails when the corresponding client is requested.
"""

from __future__ import annotations

import importlib
from typing import Any, Mapping, Optional

_PKG_BASE = "chatmemory.client.azure"


def _ensure_builder(module_path: str, attr: str, install_hint: str) -> Any:
    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise ImportError(install_hint) from exc
    return getattr(module, attr)


class AzureClientFactory:
    """Factory class for creating Azure service clients with proper authentication."""

    @staticmethod
    def create_async_search_builder(
        config: Optional[Mapping[str, Any] | Any] = None, **client_options: Any
    ) -> Any:
        """Return a builder that mints per-index async `SearchClient`s."""
        builder_cls = _ensure_builder(
            f"{_PKG_BASE}.builder.search_client_async",
            "AzureSearchAsyncClientBuilder",
            "azure-search-documents is required to create async search clients",
        )
        return builder_cls.from_config(config, client_options=client_options)

    @staticmethod
    def create_async_openai_client(
        config: Optional[Mapping[str, Any] | Any] = None, **client_options: Any
    ) -> Any:
        builder_cls = _ensure_builder(
            f"{_PKG_BASE}.builder.openai_client_async",
            "AsyncAzureOpenAIClientBuilder",
            "openai is required to create an async Azure OpenAI client",
        )
        return builder_cls.from_config(config, client_options=client_options).build()
