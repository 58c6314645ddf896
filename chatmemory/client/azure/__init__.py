from __future__ import annotations

import importlib
from typing import Any

__all__ = ("AzureClientFactory", "builder")


def __getattr__(name: str) -> Any:
    # Lazy export so importing the package does not pull the Azure SDKs.
    if name == "AzureClientFactory":
        mod = importlib.import_module(".azure_client_builder_factory", __name__)
        return getattr(mod, "AzureClientFactory")
    if name == "builder":
        return importlib.import_module(".builder", __name__)
    raise AttributeError(name)
