# chatmemory/client/azure/builder/search_client_async.py
from __future__ import annotations

import inspect
from typing import Any, Mapping, Optional, Union

from azure.core.credentials import AzureKeyCredential
from azure.core.credentials_async import AsyncTokenCredential
from azure.search.documents.aio import SearchClient as AsyncSearchClient
from azure.search.documents.indexes.aio import SearchIndexClient as AsyncSearchIndexClient


def _get(obj: Any, *names: str) -> Any:
    """Return first non-empty attribute / mapping value by any of the given names."""
    for n in names:
        if isinstance(obj, Mapping):
            if n in obj and obj[n] not in (None, ""):
                return obj[n]
        else:
            v = getattr(obj, n, None)
            if v not in (None, ""):
                return v
    return None


def _to_plain_secret(value: Any) -> Optional[str]:
    """Unwrap pydantic SecretStr or return the string directly."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    getter = getattr(value, "get_secret_value", None)
    if callable(getter):
        return getter()
    return None


def _filter_kwargs_for_ctor(cls: type, kwargs: dict[str, Any]) -> dict[str, Any]:
    """Only pass kwargs the constructor actually accepts."""
    try:
        sig = inspect.signature(cls.__init__)
    except (ValueError, TypeError):
        return kwargs

    params = sig.parameters.values()
    if any(p.kind is inspect.Parameter.VAR_KEYWORD for p in params):
        return kwargs

    allowed = {
        p.name
        for p in params
        if p.kind
        in (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)
    }
    return {k: v for k, v in kwargs.items() if k in allowed}


class AzureSearchAsyncClientBuilder:
    """
    Builder for async Azure AI Search clients, one per index plus an index client.

    The memory store addresses many indexes (one per legacy chat/memory type),
    so the builder resolves the endpoint and credential once and then mints
    `SearchClient`s per index name on demand, all sharing that credential.

    Credential precedence: client secret (AAD) > managed identity > admin key >
    `DefaultAzureCredential`.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        credential: Union[AsyncTokenCredential, AzureKeyCredential],
        **client_options: Any,
    ) -> None:
        self._endpoint = endpoint
        self._credential = credential
        self._client_options: dict[str, Any] = dict(client_options or {})

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def credential(self) -> Union[AsyncTokenCredential, AzureKeyCredential]:
        return self._credential

    @classmethod
    def from_config(
        cls,
        config: Optional[Mapping[str, Any] | Any],
        *,
        client_options: Optional[Mapping[str, Any]] = None,
    ) -> "AzureSearchAsyncClientBuilder":
        """
        Resolve endpoint and credentials from a config mapping/object.

        Recognized fields:
        - endpoint, search_endpoint or service (-> https://{service}.search.windows.net)
        - tenant_id + client_id + client_secret -> ClientSecretCredential
        - managed_identity_client_id           -> ManagedIdentityCredential
        - key, search_key or api_key           -> AzureKeyCredential
        """
        cfg = config or {}

        endpoint = _get(cfg, "endpoint", "search_endpoint")
        if not endpoint:
            service = _get(cfg, "service")
            if service:
                endpoint = f"https://{service}.search.windows.net"
        if not endpoint:
            raise ValueError(
                "Azure Search endpoint is required (use 'endpoint' or 'service')."
            )

        tenant_id = _get(cfg, "tenant_id")
        client_id = _get(cfg, "client_id")
        client_secret = _to_plain_secret(_get(cfg, "client_secret"))
        msi_client_id = _get(cfg, "managed_identity_client_id")
        key = _to_plain_secret(_get(cfg, "key", "search_key", "api_key"))

        cred: Union[AsyncTokenCredential, AzureKeyCredential]
        if tenant_id and client_id and client_secret:
            from azure.identity.aio import ClientSecretCredential

            cred = ClientSecretCredential(
                tenant_id=str(tenant_id),
                client_id=str(client_id),
                client_secret=str(client_secret),
            )
        elif msi_client_id:
            from azure.identity.aio import ManagedIdentityCredential

            cred = ManagedIdentityCredential(client_id=str(msi_client_id))
        elif key:
            cred = AzureKeyCredential(str(key))
        else:
            from azure.identity.aio import DefaultAzureCredential

            cred = DefaultAzureCredential(exclude_interactive_browser_credential=True)

        return cls(
            endpoint=str(endpoint), credential=cred, **dict(client_options or {})
        )

    def build(self, index_name: str) -> AsyncSearchClient:
        filtered_opts = _filter_kwargs_for_ctor(AsyncSearchClient, self._client_options)
        return AsyncSearchClient(
            endpoint=self._endpoint,
            index_name=index_name,
            credential=self._credential,
            **filtered_opts,
        )

    def build_index_client(self) -> AsyncSearchIndexClient:
        filtered_opts = _filter_kwargs_for_ctor(
            AsyncSearchIndexClient, self._client_options
        )
        return AsyncSearchIndexClient(
            endpoint=self._endpoint,
            credential=self._credential,
            **filtered_opts,
        )
