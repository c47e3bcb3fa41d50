"""TCP port selection for the proxy listener.

A port is proven free by binding a throwaway listener and releasing it. Another
process can still take the port before the proxy binds it; that race is not
prevented here and shows up as a premature exit of the proxy.
"""

import socket
from typing import Optional

import structlog

from ..exceptions import PortAllocationError

logger = structlog.get_logger(__name__)

# Empty host binds all interfaces, matching how the proxy listens.
BIND_HOST = ""


def _bind_probe(port: int, host: str = BIND_HOST) -> int:
    """Bind and immediately release a listener, returning the bound port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, port))
        sock.listen(1)
        return sock.getsockname()[1]


def is_port_available(port: int, host: str = BIND_HOST) -> bool:
    """Check whether a port can currently be bound.

    Args:
        port: Port number to check
        host: Interface to bind (default: all interfaces)

    Returns:
        bool: True if the port is free
    """
    if not 1 <= port <= 65535:
        return False
    try:
        _bind_probe(port, host)
        return True
    except OSError:
        return False


async def allocate_port(preferred: Optional[int] = None, host: str = BIND_HOST) -> int:
    """Pick a port, preferring the caller's choice when it is free.

    Args:
        preferred: Port to use if available; 0 or None means no preference
        host: Interface to bind (default: all interfaces)

    Returns:
        int: A port that was bindable at the time of the call

    Raises:
        PortAllocationError: If no port could be bound
    """
    if preferred:
        if is_port_available(preferred, host):
            logger.debug("Using preferred port", port=preferred)
            return preferred
        logger.info("Preferred port unavailable, using ephemeral port", port=preferred)

    try:
        port = _bind_probe(0, host)
    except OSError as e:
        raise PortAllocationError(preferred, e) from e

    logger.debug("Allocated ephemeral port", port=port)
    return port
