"""Asset proxy package."""

from archiver.proxy.assets import (
    CACHE_CONTROL,
    AssetProxy,
    AssetType,
    ProxiedAsset,
    classify_asset,
)

__all__ = ["CACHE_CONTROL", "AssetProxy", "AssetType", "ProxiedAsset", "classify_asset"]
