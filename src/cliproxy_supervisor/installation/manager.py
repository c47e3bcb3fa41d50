"""Download, unpack and cache CLIProxyAPI release binaries."""

import asyncio
import os
import stat
import tarfile
import tempfile
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles
import aiohttp
import structlog

from ..config.settings import SupervisorSettings, get_settings
from ..exceptions import BinaryDownloadError
from .compatibility import PlatformTarget, check_disk_space, resolve_platform

logger = structlog.get_logger(__name__)

BINARY_NAMES = frozenset(
    {
        "cliproxyapi",
        "cliproxyapi.exe",
        "CLIProxyAPI",
        "CLIProxyAPI.exe",
        "cli-proxy-api",
        "cli-proxy-api.exe",
    }
)

DOWNLOAD_CHUNK_SIZE = 256 * 1024


@dataclass(frozen=True)
class AssetInfo:
    """Location of a release archive."""

    url: str
    archive_name: str
    is_zip: bool


def build_asset_info(
    version: str,
    target: PlatformTarget,
    base_url: str = SupervisorSettings.model_fields["release_base_url"].default,
) -> AssetInfo:
    """Compute the release archive name and URL for a version and platform.

    Args:
        version: Release tag such as ``v6.1.0`` or ``latest``
        target: Platform coordinates
        base_url: Release download base URL

    Returns:
        AssetInfo: Archive URL, name and format
    """
    is_zip = target.is_windows
    bare_version = version[1:] if version.startswith("v") else version
    extension = ".zip" if is_zip else ".tar.gz"
    archive_name = f"CLIProxyAPI_{bare_version}_{target.os}_{target.arch}{extension}"
    url = f"{base_url.rstrip('/')}/{version}/{archive_name}"
    return AssetInfo(url=url, archive_name=archive_name, is_zip=is_zip)


def find_binary(root: Path) -> Optional[Path]:
    """Search a directory tree for the proxy executable."""
    if not root.is_dir():
        return None
    for path in sorted(root.rglob("*")):
        if path.name in BINARY_NAMES and path.is_file():
            return path
    return None


def chmod_executable(binary: Path) -> None:
    """Add execute permission bits (no-op on Windows)."""
    if os.name == "nt":
        return
    mode = binary.stat().st_mode
    binary.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


async def download_to_file(
    url: str,
    dest: Path,
    session: Optional[aiohttp.ClientSession] = None,
    timeout: float = 300.0,
) -> None:
    """Stream a URL to ``dest``; the file appears only once complete.

    Raises:
        BinaryDownloadError: On HTTP errors or network failures
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, partial_name = tempfile.mkstemp(dir=dest.parent, suffix=".part")
    os.close(fd)
    partial = Path(partial_name)

    owns_session = session is None
    if owns_session:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout))

    try:
        async with session.get(url) as response:
            if response.status != 200:
                raise BinaryDownloadError(
                    f"Failed to download {url}: {response.status} {response.reason}",
                    url=url,
                    status=response.status,
                    archive_name=dest.name,
                )
            async with aiofiles.open(partial, "wb") as f:
                async for chunk in response.content.iter_chunked(DOWNLOAD_CHUNK_SIZE):
                    await f.write(chunk)
        partial.replace(dest)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise BinaryDownloadError(
            f"Failed to download {url}: {e}", url=url, archive_name=dest.name
        ) from e
    finally:
        partial.unlink(missing_ok=True)
        if owns_session:
            await session.close()


def _extract(archive: Path, dest: Path, is_zip: bool) -> None:
    if is_zip:
        with zipfile.ZipFile(archive) as bundle:
            bundle.extractall(dest)
        return
    with tarfile.open(archive, "r:gz") as bundle:
        if hasattr(tarfile, "data_filter"):
            bundle.extractall(dest, filter="data")
        else:
            bundle.extractall(dest)


async def extract_archive(archive: Path, dest: Path, is_zip: bool) -> None:
    """Unpack a release archive into ``dest`` in a worker thread.

    Raises:
        BinaryDownloadError: If the archive is corrupt or unsafe
    """
    dest.mkdir(parents=True, exist_ok=True)
    try:
        await asyncio.to_thread(_extract, archive, dest, is_zip)
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        raise BinaryDownloadError(
            f"Failed to extract {archive.name}: {e}", archive_name=archive.name
        ) from e


class BinaryManager:
    """Resolves a runnable proxy binary, downloading it when not cached."""

    def __init__(
        self,
        settings: Optional[SupervisorSettings] = None,
        target: Optional[PlatformTarget] = None,
    ):
        self.settings = settings or get_settings()
        self.target = target or resolve_platform()

    def version_dir(self, version: str) -> Path:
        """Cache directory for one version on this platform."""
        return self.settings.get_cache_dir() / version / self.target.key

    def find_cached(self, version: str) -> Optional[Path]:
        base_dir = self.version_dir(version)
        # Fall back to the version dir itself in case the archive unpacked flat.
        return find_binary(base_dir / "extracted") or find_binary(base_dir)

    async def ensure(self, version: Optional[str] = None) -> Path:
        """Return the path of the proxy binary for ``version``.

        Args:
            version: Release tag (default: settings.default_version)

        Returns:
            Path: Executable path

        Raises:
            BinaryDownloadError: If the binary cannot be obtained
        """
        version = version or self.settings.default_version
        cached = self.find_cached(version)
        if cached is not None:
            logger.debug("Using cached binary", path=str(cached), version=version)
            return cached

        start_time = time.time()
        base_dir = self.version_dir(version)
        asset = build_asset_info(version, self.target, self.settings.release_base_url)

        disk = check_disk_space(base_dir)
        if not disk["sufficient"]:
            logger.warning("Low disk space for binary download", message=disk["message"])

        logger.info("Downloading CLIProxyAPI", version=version, url=asset.url)
        archive_path = base_dir / asset.archive_name
        await download_to_file(
            asset.url, archive_path, timeout=self.settings.download_timeout
        )

        extract_dest = base_dir / "extracted"
        await extract_archive(archive_path, extract_dest, asset.is_zip)

        binary = find_binary(extract_dest)
        if binary is None:
            raise BinaryDownloadError(
                f"Failed to locate CLIProxyAPI binary after extracting {asset.archive_name}",
                url=asset.url,
                archive_name=asset.archive_name,
            )
        chmod_executable(binary)

        logger.info(
            "Binary installed",
            path=str(binary),
            version=version,
            duration_ms=round((time.time() - start_time) * 1000, 1),
        )
        return binary


async def ensure_binary(
    version: Optional[str] = None, settings: Optional[SupervisorSettings] = None
) -> Path:
    """Return a cached or freshly downloaded proxy binary for ``version``."""
    return await BinaryManager(settings).ensure(version)
