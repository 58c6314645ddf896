"""Tests for the async Azure Search / Azure OpenAI client builders.

Only credential and option resolution is exercised; the SDK clients are
constructed but never used, so no network access happens.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from azure.core.credentials import AzureKeyCredential
from pydantic import SecretStr

from chatmemory.client.azure import AzureClientFactory
from chatmemory.client.azure.builder.openai_client_async import (
    DEFAULT_OPENAI_MAX_RETRIES,
    AsyncAzureOpenAIClientBuilder,
    _normalize_openai_client_options,
)
from chatmemory.client.azure.builder.search_client_async import (
    AzureSearchAsyncClientBuilder,
    _filter_kwargs_for_ctor,
    _get,
    _to_plain_secret,
)
from chatmemory.config.settings import AzureSearchStoreOptions


def test_get_prefers_first_non_empty_name() -> None:
    cfg = {"endpoint": "", "search_endpoint": "https://x"}
    assert _get(cfg, "endpoint", "search_endpoint") == "https://x"
    assert _get(object(), "missing") is None


def test_to_plain_secret_unwraps_secretstr() -> None:
    assert _to_plain_secret(SecretStr("s3cret")) == "s3cret"
    assert _to_plain_secret("plain") == "plain"
    assert _to_plain_secret(None) is None


def test_filter_kwargs_drops_unknown_constructor_args() -> None:
    class _Ctor:
        def __init__(self, endpoint: str, *, retry_total: int = 3) -> None: ...

    assert _filter_kwargs_for_ctor(_Ctor, {"retry_total": 1, "bogus": True}) == {"retry_total": 1}


def test_search_builder_uses_admin_key() -> None:
    options = AzureSearchStoreOptions(
        endpoint="https://svc.search.windows.net", key=SecretStr("admin-key")
    )

    builder = AzureSearchAsyncClientBuilder.from_config(options)

    assert builder.endpoint == "https://svc.search.windows.net"
    assert isinstance(builder.credential, AzureKeyCredential)
    assert builder.credential.key == "admin-key"


def test_search_builder_derives_endpoint_from_service_name() -> None:
    builder = AzureSearchAsyncClientBuilder.from_config({"service": "svc", "key": "k"})

    assert builder.endpoint == "https://svc.search.windows.net"


def test_search_builder_requires_endpoint() -> None:
    with pytest.raises(ValueError, match="endpoint"):
        AzureSearchAsyncClientBuilder.from_config({"key": "k"})


def test_search_builder_prefers_client_secret_over_key() -> None:
    options = AzureSearchStoreOptions(
        endpoint="https://svc.search.windows.net",
        key=SecretStr("admin-key"),
        tenant_id="tenant",
        client_id="client",
        client_secret=SecretStr("secret"),
    )

    with patch("azure.identity.aio.ClientSecretCredential") as csc:
        builder = AzureSearchAsyncClientBuilder.from_config(options)

    csc.assert_called_once_with(tenant_id="tenant", client_id="client", client_secret="secret")
    assert builder.credential is csc.return_value


def test_search_builder_uses_managed_identity() -> None:
    with patch("azure.identity.aio.ManagedIdentityCredential") as mic:
        AzureSearchAsyncClientBuilder.from_config(
            {"endpoint": "https://svc.search.windows.net", "managed_identity_client_id": "mi"}
        )

    mic.assert_called_once_with(client_id="mi")


def test_search_builder_builds_per_index_clients() -> None:
    builder = AzureSearchAsyncClientBuilder(
        endpoint="https://svc.search.windows.net", credential=AzureKeyCredential("k")
    )

    with patch(
        "chatmemory.client.azure.builder.search_client_async.AsyncSearchClient"
    ) as client_cls:
        builder.build("chat-1-longtermmemory")

    assert client_cls.call_args.kwargs["index_name"] == "chat-1-longtermmemory"


def test_openai_options_normalization() -> None:
    assert _normalize_openai_client_options(None) == {"max_retries": DEFAULT_OPENAI_MAX_RETRIES}
    assert _normalize_openai_client_options({"retries": "5"}) == {"max_retries": 5}
    with pytest.raises(ValueError):
        _normalize_openai_client_options({"max_retries": -1})


def test_openai_builder_requires_endpoint() -> None:
    with pytest.raises(ValueError, match="endpoint"):
        AsyncAzureOpenAIClientBuilder.from_config({"openai_version": "2024-02-01"}).build()


def test_openai_builder_passes_key_and_version() -> None:
    options = AzureSearchStoreOptions(
        endpoint="https://svc.search.windows.net",
        openai_endpoint="https://aoai.openai.azure.com",
        openai_key=SecretStr("openai-key"),
    )

    with patch("openai.AsyncAzureOpenAI") as aoai:
        AsyncAzureOpenAIClientBuilder.from_config(options).build()

    kwargs = aoai.call_args.kwargs
    assert kwargs["azure_endpoint"] == "https://aoai.openai.azure.com"
    assert kwargs["api_key"] == "openai-key"
    assert kwargs["api_version"] == options.openai_version


def test_factory_creates_async_search_builder() -> None:
    builder = AzureClientFactory.create_async_search_builder(
        {"endpoint": "https://svc.search.windows.net", "key": "k"}
    )

    assert isinstance(builder, AzureSearchAsyncClientBuilder)
