"""Splitting child process output into lines."""

import asyncio
from typing import Callable, Iterable, Optional

import structlog

from .events import LogLine

logger = structlog.get_logger(__name__)

READ_CHUNK_SIZE = 64 * 1024
DRAIN_TIMEOUT = 2.0


def _emit(sink: Callable[[LogLine], None], source: str, raw: bytes) -> None:
    text = raw.decode("utf-8", errors="replace").rstrip()
    try:
        sink(LogLine(source=source, text=text))
    except Exception as e:
        logger.warning("Log sink failed", source=source, error=str(e))


async def pipe_lines(
    stream: Optional[asyncio.StreamReader],
    source: str,
    sink: Optional[Callable[[LogLine], None]] = None,
) -> int:
    """Forward each line of a stream to a sink until EOF.

    Lines are split on LF and trailing whitespace is trimmed. A partial line
    left at EOF is flushed as a final line. Without a sink the stream is
    still read to the end so the child never blocks on a full pipe.

    Args:
        stream: Stream to read; None is treated as already closed
        source: Label attached to each line ("stdout" or "stderr")
        sink: Callable receiving LogLine entries

    Returns:
        int: Number of lines delivered
    """
    if stream is None:
        return 0

    buffer = bytearray()
    delivered = 0

    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        if sink is None:
            continue

        buffer.extend(chunk)
        while True:
            index = buffer.find(b"\n")
            if index < 0:
                break
            raw = bytes(buffer[:index])
            del buffer[: index + 1]
            _emit(sink, source, raw)
            delivered += 1

    if sink is not None and buffer:
        _emit(sink, source, bytes(buffer))
        delivered += 1

    return delivered


async def drain(tasks: Iterable["asyncio.Task[int]"], timeout: float = DRAIN_TIMEOUT) -> None:
    """Wait for output pumps to reach EOF, cancelling any that do not.

    A pipe stays open while any descendant of the child holds it, so the
    wait is bounded.
    """
    tasks = list(tasks)
    pending = [t for t in tasks if not t.done()]
    if pending:
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.debug("Cancelled output pumps after timeout", count=len(still_running))
    await asyncio.gather(*tasks, return_exceptions=True)
