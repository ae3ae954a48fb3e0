"""Per-conversation execution state.

A Session belongs to exactly one connection. ``busy`` and
``descriptor_path`` are only touched by the process supervisor, under
``lock``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from schemabridge import descriptor

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """One logical conversation."""

    session_id: str
    busy: bool = False
    process: asyncio.subprocess.Process | None = None
    descriptor_path: Path | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def try_acquire(self) -> bool:
        """Mark the session busy. Returns False if a query is already in flight."""
        async with self.lock:
            if self.busy:
                return False
            self.busy = True
            return True

    async def release(self) -> None:
        """Drop the descriptor and mark the session idle."""
        async with self.lock:
            descriptor.discard(self.descriptor_path)
            self.descriptor_path = None
            self.process = None
            self.busy = False

    def close(self) -> None:
        """Session end: remove any descriptor still on disk."""
        if self.descriptor_path is not None:
            descriptor.discard(self.descriptor_path)
            self.descriptor_path = None
        logger.debug("Session %s closed", self.session_id)
