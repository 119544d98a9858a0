"""
Writes a relayed upstream stream to disk without buffering the whole file.
"""

import logging
import os
from contextlib import suppress
from collections.abc import Callable

import aiofiles

from .relay import RelayStream

log = logging.getLogger(__name__)


async def save_stream(
    stream: RelayStream,
    destination_path: str,
    chunk_size: int = 65536,
    on_progress: Callable[[int, int | None], None] | None = None,
) -> int:
    """
    Copies ``stream`` into ``destination_path`` chunk by chunk.

    A partially written file is removed if the copy fails. The stream is
    closed in every case.

    Args:
        stream: An opened relay stream.
        destination_path: Target file; parent directories must exist.
        chunk_size: Read size for each chunk.
        on_progress: Called with (bytes written so far, expected total or None).

    Returns:
        The number of bytes written.
    """
    total = stream.content_length
    written = 0
    try:
        async with aiofiles.open(destination_path, "wb") as f:
            async for chunk in stream.iter_chunks(chunk_size):
                await f.write(chunk)
                written += len(chunk)
                if on_progress:
                    on_progress(written, total)
    except BaseException:
        log.debug(
            f"Removing partial download '{os.path.basename(destination_path)}' "
            f"after {written} bytes"
        )
        with suppress(OSError):
            os.remove(destination_path)
        raise
    finally:
        stream.close()

    log.debug(f"Saved {written} bytes to '{destination_path}'")
    return written
