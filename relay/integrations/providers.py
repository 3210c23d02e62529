"""
Call provider registry - adapters keyed by provider name.
"""
from relay.integrations.call_provider_base import CallProviderAdapter
from relay.integrations.retell import RetellAdapter

_ADAPTERS: dict[str, CallProviderAdapter] = {
    RetellAdapter.provider: RetellAdapter(),
}


def get_adapter(provider: str) -> CallProviderAdapter:
    """Look up the adapter registered for a provider name."""
    try:
        return _ADAPTERS[provider]
    except KeyError:
        raise ValueError(f"No call provider adapter registered for {provider!r}")


def register_adapter(adapter: CallProviderAdapter) -> None:
    _ADAPTERS[adapter.provider] = adapter
