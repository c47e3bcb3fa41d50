"""Host platform detection for selecting a CLIProxyAPI release asset."""

import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import psutil

# Release assets exist for these only; other systems fall back to linux/amd64.
_OS_MAP = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "win32": "windows",
    "cygwin": "windows",
    "aix": "linux",
    "freebsd": "linux",
    "openbsd": "linux",
    "netbsd": "linux",
    "sunos": "linux",
    "android": "linux",
    "haiku": "linux",
}

_ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "arm64": "arm64",
    "aarch64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "ia32": "386",
}


@dataclass(frozen=True)
class PlatformTarget:
    """Release asset coordinates for a host."""

    os: str
    arch: str

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    @property
    def key(self) -> str:
        """Cache directory name, e.g. ``linux-amd64``."""
        return f"{self.os}-{self.arch}"


def resolve_platform(
    system: Optional[str] = None, machine: Optional[str] = None
) -> PlatformTarget:
    """Map the host (or the given identifiers) to release asset coordinates.

    Args:
        system: Operating system name (default: platform.system())
        machine: Machine architecture (default: platform.machine())

    Returns:
        PlatformTarget: Supported os/arch pair
    """
    system_name = (system or platform.system()).lower()
    machine_name = (machine or platform.machine()).lower()
    return PlatformTarget(
        os=_OS_MAP.get(system_name, "linux"),
        arch=_ARCH_MAP.get(machine_name, "amd64"),
    )


def check_disk_space(path: Path, required_mb: int = 100) -> Dict[str, Any]:
    """Check free space on the filesystem holding ``path``.

    The nearest existing parent is inspected, so the path need not exist yet.
    """
    target = Path(path)
    while not target.exists() and target.parent != target:
        target = target.parent

    try:
        usage = psutil.disk_usage(str(target))
    except OSError:
        return {
            "sufficient": True,  # Assume sufficient if can't check
            "message": "Could not check disk space",
        }

    available_mb = usage.free / (1024 * 1024)
    if available_mb >= required_mb:
        return {
            "sufficient": True,
            "available_mb": int(available_mb),
            "required_mb": required_mb,
            "message": f"{int(available_mb)}MB available (>={required_mb}MB required)",
        }
    return {
        "sufficient": False,
        "available_mb": int(available_mb),
        "required_mb": required_mb,
        "message": (
            f"Insufficient disk space: {int(available_mb)}MB available, "
            f"{required_mb}MB required"
        ),
    }
