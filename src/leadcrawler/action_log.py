"""Fire-and-forget audit log of crawl and export actions."""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ActionLogger:
    """
    Writes action entries through `store.log_action` in background tasks.

    A failed write is logged and dropped; callers never wait on it except
    through `flush()`, which the scheduler and exporter call before
    returning so that short-lived processes do not lose entries.
    """

    def __init__(self, store):
        self.store = store
        self._tasks: set[asyncio.Task] = set()

    def log(self, action: str, user_id: Optional[str] = None, dataset_id: Optional[str] = None,
            result_summary: Optional[str] = None, gated: bool = False, error: Optional[str] = None,
            metadata: Optional[Dict[str, Any]] = None) -> None:
        entry = {
            "action": action,
            "user_id": user_id,
            "dataset_id": dataset_id,
            "result_summary": result_summary,
            "gated": gated,
            "error": error,
            "metadata": metadata or {},
        }
        task = asyncio.get_running_loop().create_task(self._write(entry))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _write(self, entry: Dict[str, Any]) -> None:
        try:
            await self.store.log_action(entry)
        except Exception as e:
            logger.warning("Failed to write action log entry %s: %s", entry["action"], e)

    async def flush(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
