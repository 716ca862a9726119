"""
Persistence for businesses, crawl jobs, crawl results, plans and exports.

`Store` is the interface the scheduler and exporter depend on;
`SqliteStore` implements it over aiosqlite. Every operation opens its own
connection, which keeps workers independent of each other.
"""
from __future__ import annotations
import json
import os
import re
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite

from .config import DB_PATH
from .crawl import CrawlResult
from .schema import LEADS_SCHEMA

RECENT_JOB_WINDOW = 24 * 3600  # seconds


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Business:
    id: str
    dataset_id: str
    name: str
    website_url: Optional[str]


@dataclass
class CrawlJob:
    id: int
    business_id: str
    dataset_id: str
    status: JobStatus
    pages_limit: int
    pages_crawled: int = 0
    attempts: int = 0
    error_message: Optional[str] = None
    created_at: Optional[int] = None
    started_at: Optional[int] = None
    finished_at: Optional[int] = None


@dataclass
class UserPermissions:
    user_id: str
    plan: str = "demo"
    is_internal: bool = False


class Store(ABC):
    """Collaborator interface used by the scheduler and the exporter."""

    @abstractmethod
    async def list_businesses_with_website(self, dataset_id: str) -> List[Business]: ...

    @abstractmethod
    async def list_businesses(self, dataset_id: str) -> List[Business]: ...

    @abstractmethod
    async def upsert_crawl_result(self, result: CrawlResult) -> None: ...

    @abstractmethod
    async def get_crawl_results(self, dataset_id: str) -> Dict[str, CrawlResult]: ...

    @abstractmethod
    async def save_crawl_summary(self, summary) -> None: ...

    @abstractmethod
    async def create_crawl_job(self, business_id: str, dataset_id: str, pages_limit: int) -> int: ...

    @abstractmethod
    async def has_recent_crawl_job(self, business_id: str, window: int = RECENT_JOB_WINDOW) -> bool: ...

    @abstractmethod
    async def get_queued_crawl_jobs(self, dataset_id: str) -> List[CrawlJob]: ...

    @abstractmethod
    async def mark_crawl_job_running(self, job_id: int) -> bool: ...

    @abstractmethod
    async def mark_crawl_job_success(self, job_id: int, pages_crawled: int) -> None: ...

    @abstractmethod
    async def mark_crawl_job_failed(self, job_id: int, error_message: str) -> None: ...

    @abstractmethod
    async def get_user_permissions(self, user_id: str) -> UserPermissions: ...

    @abstractmethod
    async def record_export(self, entry: Dict[str, Any]) -> int: ...

    @abstractmethod
    async def log_action(self, entry: Dict[str, Any]) -> None: ...

    async def claim_crawl_job(self, job_id: int) -> bool:
        """Atomically move a job from queued to running. False if another worker got it first."""
        return await self.mark_crawl_job_running(job_id)


def _row_to_job(row) -> CrawlJob:
    return CrawlJob(
        id=row["id"],
        business_id=row["business_id"],
        dataset_id=row["dataset_id"],
        status=JobStatus(row["status"]),
        pages_limit=row["pages_limit"],
        pages_crawled=row["pages_crawled"] or 0,
        attempts=row["attempts"] or 0,
        error_message=row["error_message"],
        created_at=row["created_at"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
    )


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")


async def optimize_connection(conn: aiosqlite.Connection):
    """Apply performance optimizations to a database connection."""
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA synchronous=NORMAL")
    await conn.execute("PRAGMA cache_size=10000")
    await conn.execute("PRAGMA temp_store=MEMORY")
    await conn.execute("PRAGMA busy_timeout=5000")


class SqliteStore(Store):
    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path

    def _connect(self):
        return aiosqlite.connect(self.db_path)

    async def init(self) -> None:
        os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
        async with self._connect() as db:
            await optimize_connection(db)
            schema_clean = re.sub(r"--.*$", "", LEADS_SCHEMA, flags=re.MULTILINE)
            for stmt in (s.strip() for s in schema_clean.split(";")):
                if stmt:
                    await db.execute(stmt)
            await db.commit()

    # ------------------ datasets & businesses ------------------

    async def create_dataset(self, dataset_id: str, name: str | None = None, user_id: str | None = None) -> str:
        async with self._connect() as db:
            await db.execute(
                "INSERT OR IGNORE INTO datasets (id, name, user_id, created_at) VALUES (?, ?, ?, ?)",
                (dataset_id, name or dataset_id, user_id, int(time.time())),
            )
            await db.commit()
        return dataset_id

    async def get_dataset(self, dataset_id: str) -> Optional[Dict[str, Any]]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM datasets WHERE id = ?", (dataset_id,)) as cur:
                row = await cur.fetchone()
        return dict(row) if row else None

    async def add_businesses(self, dataset_id: str, rows: Iterable[Dict[str, Any]]) -> int:
        """Insert or update businesses; rows carry name, website_url and optionally business_id."""
        now = int(time.time())
        values = []
        for row in rows:
            business_id = (row.get("business_id") or "").strip() or f"{_slug(row.get('name', ''))[:40] or 'business'}-{uuid.uuid4().hex[:8]}"
            values.append((business_id, dataset_id, row.get("name"), (row.get("website_url") or "").strip() or None, now))
        async with self._connect() as db:
            await db.executemany(
                """INSERT INTO businesses (id, dataset_id, name, website_url, created_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                     dataset_id = excluded.dataset_id,
                     name = excluded.name,
                     website_url = excluded.website_url""",
                values,
            )
            await db.commit()
        return len(values)

    async def _select_businesses(self, sql: str, params: tuple) -> List[Business]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cur:
                rows = await cur.fetchall()
        return [Business(id=r["id"], dataset_id=r["dataset_id"], name=r["name"] or "", website_url=r["website_url"])
                for r in rows]

    async def list_businesses(self, dataset_id: str) -> List[Business]:
        return await self._select_businesses(
            "SELECT * FROM businesses WHERE dataset_id = ? ORDER BY rowid", (dataset_id,))

    async def list_businesses_with_website(self, dataset_id: str) -> List[Business]:
        return await self._select_businesses(
            "SELECT * FROM businesses WHERE dataset_id = ? AND website_url IS NOT NULL AND website_url != '' ORDER BY rowid",
            (dataset_id,),
        )

    # ------------------ crawl results ------------------

    async def upsert_crawl_result(self, result: CrawlResult) -> None:
        payload = json.dumps(result.to_dict(), ensure_ascii=False)
        async with self._connect() as db:
            await db.execute(
                """INSERT INTO crawl_results
                     (business_id, dataset_id, website_url, status, pages_visited, emails_count, phones_count,
                      result_json, started_at, finished_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(business_id) DO UPDATE SET
                     dataset_id = excluded.dataset_id,
                     website_url = excluded.website_url,
                     status = excluded.status,
                     pages_visited = excluded.pages_visited,
                     emails_count = excluded.emails_count,
                     phones_count = excluded.phones_count,
                     result_json = excluded.result_json,
                     started_at = excluded.started_at,
                     finished_at = excluded.finished_at,
                     updated_at = excluded.updated_at""",
                (result.business_id, result.dataset_id, result.website_url, result.status, result.pages_visited,
                 len(result.emails), len(result.phones), payload, result.started_at, result.finished_at,
                 int(time.time())),
            )
            await db.commit()

    async def get_crawl_results(self, dataset_id: str) -> Dict[str, CrawlResult]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT business_id, result_json FROM crawl_results WHERE dataset_id = ?", (dataset_id,)
            ) as cur:
                rows = await cur.fetchall()
        return {business_id: CrawlResult.from_dict(json.loads(payload)) for business_id, payload in rows}

    async def save_crawl_summary(self, summary) -> None:
        data = summary.to_dict()
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO crawl_summaries (dataset_id, summary_json, started_at, finished_at) VALUES (?, ?, ?, ?)",
                (data["dataset_id"], json.dumps(data, ensure_ascii=False), data.get("started_at"), data.get("finished_at")),
            )
            await db.commit()

    async def get_latest_crawl_summary(self, dataset_id: str) -> Optional[Dict[str, Any]]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT summary_json FROM crawl_summaries WHERE dataset_id = ? ORDER BY id DESC LIMIT 1", (dataset_id,)
            ) as cur:
                row = await cur.fetchone()
        return json.loads(row[0]) if row else None

    # ------------------ crawl jobs ------------------

    async def create_crawl_job(self, business_id: str, dataset_id: str, pages_limit: int) -> int:
        async with self._connect() as db:
            cur = await db.execute(
                """INSERT INTO crawl_jobs (business_id, dataset_id, status, pages_limit, created_at)
                   VALUES (?, ?, 'queued', ?, ?)""",
                (business_id, dataset_id, pages_limit, int(time.time())),
            )
            await db.commit()
            return cur.lastrowid

    async def has_recent_crawl_job(self, business_id: str, window: int = RECENT_JOB_WINDOW) -> bool:
        cutoff = int(time.time()) - window
        async with self._connect() as db:
            async with db.execute(
                """SELECT 1 FROM crawl_jobs
                   WHERE business_id = ? AND status IN ('queued', 'running') AND created_at >= ?
                   LIMIT 1""",
                (business_id, cutoff),
            ) as cur:
                return await cur.fetchone() is not None

    async def get_queued_crawl_jobs(self, dataset_id: str) -> List[CrawlJob]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM crawl_jobs WHERE dataset_id = ? AND status = 'queued' ORDER BY id", (dataset_id,)
            ) as cur:
                rows = await cur.fetchall()
        return [_row_to_job(r) for r in rows]

    async def list_crawl_jobs(self, dataset_id: str) -> List[CrawlJob]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM crawl_jobs WHERE dataset_id = ? ORDER BY id", (dataset_id,)) as cur:
                rows = await cur.fetchall()
        return [_row_to_job(r) for r in rows]

    async def get_crawl_job(self, job_id: int) -> Optional[CrawlJob]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM crawl_jobs WHERE id = ?", (job_id,)) as cur:
                row = await cur.fetchone()
        return _row_to_job(row) if row else None

    async def mark_crawl_job_running(self, job_id: int) -> bool:
        async with self._connect() as db:
            cur = await db.execute(
                """UPDATE crawl_jobs SET status = 'running', attempts = attempts + 1, started_at = ?
                   WHERE id = ? AND status = 'queued'""",
                (int(time.time()), job_id),
            )
            await db.commit()
            return cur.rowcount == 1

    async def mark_crawl_job_success(self, job_id: int, pages_crawled: int) -> None:
        async with self._connect() as db:
            await db.execute(
                """UPDATE crawl_jobs SET status = 'completed', pages_crawled = ?, error_message = NULL, finished_at = ?
                   WHERE id = ? AND status = 'running'""",
                (pages_crawled, int(time.time()), job_id),
            )
            await db.commit()

    async def mark_crawl_job_failed(self, job_id: int, error_message: str) -> None:
        async with self._connect() as db:
            await db.execute(
                """UPDATE crawl_jobs SET status = 'failed', error_message = ?, finished_at = ?
                   WHERE id = ? AND status IN ('queued', 'running')""",
                ((error_message or "")[:1000], int(time.time()), job_id),
            )
            await db.commit()

    # ------------------ users, exports, action log ------------------

    async def set_user_plan(self, user_id: str, plan: str, is_internal: bool = False) -> None:
        async with self._connect() as db:
            await db.execute(
                """INSERT INTO users (id, plan, is_internal) VALUES (?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET plan = excluded.plan, is_internal = excluded.is_internal""",
                (user_id, plan, 1 if is_internal else 0),
            )
            await db.commit()

    async def get_user_permissions(self, user_id: str) -> UserPermissions:
        """Unknown users get the demo plan."""
        async with self._connect() as db:
            async with db.execute("SELECT plan, is_internal FROM users WHERE id = ?", (user_id,)) as cur:
                row = await cur.fetchone()
        if row is None:
            return UserPermissions(user_id=user_id)
        return UserPermissions(user_id=user_id, plan=row[0], is_internal=bool(row[1]))

    async def record_export(self, entry: Dict[str, Any]) -> int:
        async with self._connect() as db:
            cur = await db.execute(
                """INSERT INTO exports (dataset_id, user_id, tier, format, row_count, total_rows, truncated,
                                        watermark, file_path, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (entry["dataset_id"], entry.get("user_id"), entry["tier"], entry["format"], entry["row_count"],
                 entry.get("total_rows", entry["row_count"]), 1 if entry.get("truncated") else 0,
                 entry.get("watermark"), entry["file_path"], int(time.time())),
            )
            await db.commit()
            return cur.lastrowid

    async def list_exports(self, dataset_id: str) -> List[Dict[str, Any]]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM exports WHERE dataset_id = ? ORDER BY id", (dataset_id,)) as cur:
                rows = await cur.fetchall()
        return [dict(r) for r in rows]

    async def log_action(self, entry: Dict[str, Any]) -> None:
        async with self._connect() as db:
            await db.execute(
                """INSERT INTO action_log (user_id, action, dataset_id, result_summary, gated, error,
                                           metadata_json, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (entry.get("user_id"), entry["action"], entry.get("dataset_id"), entry.get("result_summary"),
                 1 if entry.get("gated") else 0, entry.get("error"),
                 json.dumps(entry.get("metadata") or {}, ensure_ascii=False), int(time.time())),
            )
            await db.commit()

    async def list_actions(self, dataset_id: str) -> List[Dict[str, Any]]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM action_log WHERE dataset_id = ? ORDER BY id", (dataset_id,)) as cur:
                rows = await cur.fetchall()
        return [dict(r) for r in rows]
