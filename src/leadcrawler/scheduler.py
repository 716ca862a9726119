"""
Dataset-wide crawl: enqueue one job per business, then drain the queue
with a fixed-size worker pool.

Jobs move `queued -> running -> completed|failed`. A worker claims a job
with a conditional update, so two workers never run the same business.
A failure in one job is recorded on that job and the batch carries on.
"""
from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .action_log import ActionLogger
from .config import MAX_CONCURRENT_CRAWLS, CrawlOptions
from .crawl import STATUS_NOT_CRAWLED, CrawlTarget, utcnow, crawl_business
from .fetch import build_fetcher
from .gate import ActionType, enforce
from .store import Business, CrawlJob, Store

logger = logging.getLogger(__name__)


@dataclass
class EnqueueResult:
    total_businesses: int = 0
    jobs_created: int = 0
    jobs_skipped: int = 0
    skipped_business_ids: List[str] = field(default_factory=list)


@dataclass
class DatasetCrawlSummary:
    dataset_id: str
    total: int = 0
    crawled: int = 0
    failed: int = 0
    skipped: int = 0
    total_pages: int = 0
    total_emails: int = 0
    total_phones: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    gate: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def enqueue_crawl_jobs(store: Store, dataset_id: str, pages_limit: int) -> EnqueueResult:
    """Queue a crawl job for every business with a website, skipping recent duplicates."""
    businesses = await store.list_businesses_with_website(dataset_id)
    result = EnqueueResult(total_businesses=len(businesses))
    for business in businesses:
        if await store.has_recent_crawl_job(business.id):
            result.jobs_skipped += 1
            result.skipped_business_ids.append(business.id)
            continue
        await store.create_crawl_job(business.id, dataset_id, pages_limit)
        result.jobs_created += 1
    return result


def effective_concurrency(requested: int | None) -> int:
    return min(max(1, requested or 1), MAX_CONCURRENT_CRAWLS)


async def crawl_dataset(dataset_id: str, user_id: str, options: CrawlOptions | None, store: Store,
                        fetcher=None, action_logger: ActionLogger | None = None) -> DatasetCrawlSummary:
    """
    Crawl every business of a dataset that has a website.

    The page budget per business is the user's plan allowance for the
    requested `options.max_pages`; the safety ceilings are applied again
    inside each crawl. Never raises for per-business failures.
    """
    options = options or CrawlOptions()
    summary = DatasetCrawlSummary(dataset_id=dataset_id, started_at=utcnow())
    action_logger = action_logger or ActionLogger(store)

    permissions = await store.get_user_permissions(user_id)
    gate = enforce(permissions.plan, ActionType.CRAWL, options.max_pages, permissions.is_internal)
    summary.gate = gate.to_dict()
    pages_limit = gate.actual
    if gate.gated:
        logger.info("Crawl pages gated for user %s (%s): %s", user_id, permissions.plan, gate.reason)

    enqueued = await enqueue_crawl_jobs(store, dataset_id, pages_limit)
    jobs = await store.get_queued_crawl_jobs(dataset_id)
    # a leftover queued job is skipped at enqueue time but still runs below
    queued_ids = {job.business_id for job in jobs}
    summary.skipped = sum(1 for b in enqueued.skipped_business_ids if b not in queued_ids)
    businesses = {b.id: b for b in await store.list_businesses_with_website(dataset_id)}

    workers = effective_concurrency(options.concurrency)
    logger.info(
        "Starting crawl for dataset %s (user=%s, plan=%s, internal=%s): %d queued jobs, "
        "%d created, %d skipped, pages_limit=%d, workers=%d",
        dataset_id, user_id, permissions.plan, permissions.is_internal, len(jobs),
        enqueued.jobs_created, summary.skipped, pages_limit, workers,
    )

    if jobs:
        owns_fetcher = fetcher is None
        if owns_fetcher:
            fetcher = build_fetcher(options.fetch_config(), options.render_fallback)
            await fetcher.open()
        try:
            queue: asyncio.Queue[CrawlJob] = asyncio.Queue()
            for job in jobs:
                queue.put_nowait(job)
            ctx = _BatchContext(store, fetcher, options, user_id, gate.gated, businesses, summary, action_logger)
            await asyncio.gather(*(_worker(queue, ctx) for _ in range(min(workers, len(jobs)))))
        finally:
            if owns_fetcher:
                await fetcher.close()

    summary.finished_at = utcnow()
    try:
        await store.save_crawl_summary(summary)
    except Exception:
        logger.exception("Could not save crawl summary for dataset %s", dataset_id)
    await action_logger.flush()
    logger.info(
        "Finished crawl for dataset %s: total=%d crawled=%d failed=%d skipped=%d pages=%d emails=%d phones=%d",
        dataset_id, summary.total, summary.crawled, summary.failed, summary.skipped,
        summary.total_pages, summary.total_emails, summary.total_phones,
    )
    return summary


@dataclass
class _BatchContext:
    store: Store
    fetcher: Any
    options: CrawlOptions
    user_id: str
    gated: bool
    businesses: Dict[str, Business]
    summary: DatasetCrawlSummary
    action_logger: ActionLogger


async def _worker(queue: asyncio.Queue, ctx: _BatchContext) -> None:
    while True:
        try:
            job = queue.get_nowait()
        except asyncio.QueueEmpty:
            return
        try:
            await _run_job(job, ctx)
        except Exception:
            logger.exception("Crawl job %s for business %s could not be recorded", job.id, job.business_id)


async def _run_job(job: CrawlJob, ctx: _BatchContext) -> None:
    summary = ctx.summary
    if not await ctx.store.claim_crawl_job(job.id):
        summary.skipped += 1
        return

    summary.total += 1
    business = ctx.businesses.get(job.business_id)
    website_url = business.website_url if business else None
    t0 = time.time()
    try:
        if business is None:
            raise LookupError(f"Business {job.business_id} has no website")
        target = CrawlTarget(business_id=business.id, dataset_id=job.dataset_id, website_url=business.website_url)
        result = await crawl_business(target, ctx.options, fetcher=ctx.fetcher, page_limit=job.pages_limit)
        result.gate = summary.gate
        await ctx.store.upsert_crawl_result(result)

        if result.status == STATUS_NOT_CRAWLED:
            message = result.errors[0].message if result.errors else "No pages crawled"
            await ctx.store.mark_crawl_job_failed(job.id, message)
            _record_failure(ctx, job, website_url, message)
            return

        await ctx.store.mark_crawl_job_success(job.id, result.pages_visited)
        summary.crawled += 1
        summary.total_pages += result.pages_visited
        summary.total_emails += len(result.emails)
        summary.total_phones += len(result.phones)
        logger.info(
            "job=%s business=%s url=%s status=%s pages=%d emails=%d phones=%d errors=%d duration=%.2fs",
            job.id, job.business_id, website_url, result.status, result.pages_visited,
            len(result.emails), len(result.phones), len(result.errors), time.time() - t0,
        )
        ctx.action_logger.log(
            "crawl",
            user_id=ctx.user_id,
            dataset_id=job.dataset_id,
            result_summary=(f"Crawl {result.status} for business {job.business_id} ({website_url}) - "
                            f"pages={result.pages_visited}, emails={len(result.emails)}, phones={len(result.phones)}"),
            gated=ctx.gated,
            metadata={
                "job_id": job.id,
                "business_id": job.business_id,
                "website_url": website_url,
                "pages_visited": result.pages_visited,
                "pages_limit": result.page_limit,
                "crawl_status": result.status,
                "emails_found": len(result.emails),
                "phones_found": len(result.phones),
                "contact_pages_found": len(result.contact_pages),
            },
        )
    except Exception as e:
        logger.exception("Crawl job %s for business %s failed", job.id, job.business_id)
        message = str(e) or e.__class__.__name__
        try:
            await ctx.store.mark_crawl_job_failed(job.id, message)
        except Exception:
            logger.exception("Could not mark crawl job %s as failed", job.id)
        _record_failure(ctx, job, website_url, message)


def _record_failure(ctx: _BatchContext, job: CrawlJob, website_url: str | None, message: str) -> None:
    ctx.summary.failed += 1
    ctx.summary.errors.append({"business_id": job.business_id, "error": message})
    logger.info("job=%s business=%s url=%s status=failed error=%s", job.id, job.business_id, website_url, message)
    ctx.action_logger.log(
        "crawl",
        user_id=ctx.user_id,
        dataset_id=job.dataset_id,
        result_summary=f"Crawl failed for business {job.business_id} ({website_url})",
        gated=ctx.gated,
        error=message,
        metadata={"job_id": job.id, "business_id": job.business_id, "website_url": website_url},
    )
