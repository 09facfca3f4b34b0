"""External catalog adapters."""

from src.providers.catalog.steam_store_provider import SteamStoreProvider

__all__ = ["SteamStoreProvider"]
