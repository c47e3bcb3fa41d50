"""Acquisition of CLIProxyAPI release binaries."""

from .compatibility import PlatformTarget, check_disk_space, resolve_platform
from .manager import (
    AssetInfo,
    BinaryManager,
    build_asset_info,
    ensure_binary,
    find_binary,
)

__all__ = [
    "AssetInfo",
    "BinaryManager",
    "PlatformTarget",
    "build_asset_info",
    "check_disk_space",
    "ensure_binary",
    "find_binary",
    "resolve_platform",
]
