import argparse, asyncio, csv, json, logging, os, sys

# Allow running from a checkout without installing the package
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "src"))

from leadcrawler.config import DB_PATH, CrawlOptions, apply_safety_caps, get_user_agent
from leadcrawler.crawl import CrawlTarget, crawl_business
from leadcrawler.errors import ExportError
from leadcrawler.export import EXPORT_FORMATS, export_dataset
from leadcrawler.fetch import build_fetcher
from leadcrawler.gate import Plan
from leadcrawler.scheduler import crawl_dataset
from leadcrawler.store import SqliteStore


def read_business_csv(path: str) -> list[dict]:
    """Rows with name, website_url and optional business_id. Header names are matched loosely."""
    rows = []
    with open(path, "r", newline="", encoding="utf-8-sig") as csvfile:
        reader = csv.DictReader(csvfile)
        for raw in reader:
            row = {(k or "").strip().lower(): (v or "").strip() for k, v in raw.items()}
            name = row.get("name") or row.get("business_name") or ""
            website = row.get("website_url") or row.get("website") or row.get("url") or ""
            if not name and not website:
                continue
            rows.append({"name": name, "website_url": website, "business_id": row.get("business_id") or row.get("id") or ""})
    return rows


def build_options(args) -> CrawlOptions:
    options = CrawlOptions()
    pages, depth, workers = apply_safety_caps(
        args.max_pages if args.max_pages is not None else options.max_pages,
        args.max_depth if args.max_depth is not None else options.max_depth,
        args.concurrency if args.concurrency is not None else options.concurrency,
    )
    options.max_pages, options.max_depth, options.concurrency = pages, depth, workers
    if args.delay is not None:
        options.inter_request_delay = max(0.0, args.delay)
    if args.timeout is not None:
        options.per_request_timeout = args.timeout
    if args.follow_social:
        options.follow_social_profiles = True
    if args.js:
        options.render_fallback = True
    return options


def add_crawl_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("--max-pages", type=int, default=None, help="Max pages per website (hard cap 50)")
    p.add_argument("--max-depth", type=int, default=None, help="Max link depth from the homepage")
    p.add_argument("--concurrency", type=int, default=None, help="Concurrent website crawls (1-10)")
    p.add_argument("--delay", type=float, default=None, help="Delay between requests to the same site (seconds)")
    p.add_argument("--timeout", type=float, default=None, help="Per-request timeout (seconds)")
    p.add_argument("--follow-social", action="store_true",
                   help="Also fetch the Facebook/LinkedIn contact pages of the business")
    p.add_argument("--js", action="store_true",
                   help="Retry blocked pages through a headless browser (requires the js extra)")
    p.add_argument("--user-agent", type=str, default="default",
                   choices=["default", "chrome", "firefox", "safari", "mobile", "random"],
                   help="User agent type (default: default)")


async def cmd_crawl(args) -> int:
    options = build_options(args)
    fetch_cfg = options.fetch_config(get_user_agent(args.user_agent))
    async with build_fetcher(fetch_cfg, options.render_fallback) as fetcher:
        result = await crawl_business(
            CrawlTarget(business_id=args.business_id, dataset_id="adhoc", website_url=args.url),
            options, fetcher=fetcher,
        )
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0 if result.pages_visited > 0 else 1


async def cmd_import(args, store: SqliteStore) -> int:
    if not os.path.exists(args.csv_file):
        print(f"Error: CSV file not found: {args.csv_file}")
        return 1
    rows = read_business_csv(args.csv_file)
    await store.create_dataset(args.dataset_id, name=args.name, user_id=args.user_id)
    count = await store.add_businesses(args.dataset_id, rows)
    with_site = sum(1 for r in rows if r["website_url"])
    print(f"Imported {count} businesses into dataset {args.dataset_id} ({with_site} with a website)")
    return 0


async def cmd_crawl_dataset(args, store: SqliteStore) -> int:
    options = build_options(args)
    fetch_cfg = options.fetch_config(get_user_agent(args.user_agent))
    async with build_fetcher(fetch_cfg, options.render_fallback) as fetcher:
        summary = await crawl_dataset(args.dataset_id, args.user_id, options, store, fetcher=fetcher)
    print(f"Dataset {summary.dataset_id}: {summary.crawled} crawled, {summary.failed} failed, "
          f"{summary.skipped} skipped of {summary.total}")
    print(f"  Pages: {summary.total_pages}  Emails: {summary.total_emails}  Phones: {summary.total_phones}")
    if summary.gate and summary.gate.get("gated"):
        print(f"  Plan limit: {summary.gate.get('reason')}")
        if summary.gate.get("upgrade_hint"):
            print(f"  {summary.gate['upgrade_hint']}")
    for err in summary.errors[:20]:
        print(f"  ! {err['business_id']}: {err['error']}")
    if len(summary.errors) > 20:
        print(f"  ... and {len(summary.errors) - 20} more errors")
    return 0


async def cmd_export(args, store: SqliteStore) -> int:
    try:
        path = await export_dataset(args.dataset_id, args.tier, args.format, store,
                                    user_id=args.user_id, output_dir=args.output_dir)
    except ExportError as e:
        print(f"Error: {e}")
        return 1
    print(f"Export written to {path}")
    return 0


async def cmd_set_plan(args, store: SqliteStore) -> int:
    await store.set_user_plan(args.user_id, args.plan, is_internal=args.internal)
    print(f"User {args.user_id}: plan={args.plan} internal={args.internal}")
    return 0


async def run(args) -> int:
    if args.command == "crawl":
        return await cmd_crawl(args)

    store = SqliteStore(args.db)
    await store.init()
    handlers = {
        "import": cmd_import,
        "crawl-dataset": cmd_crawl_dataset,
        "export": cmd_export,
        "set-plan": cmd_set_plan,
    }
    return await handlers[args.command](args, store)


if __name__ == "__main__":
    p = argparse.ArgumentParser(
        description="Contact crawler for business websites: emails, phones and social profiles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s crawl https://example.gr
  %(prog)s import athens-cafes businesses.csv --user-id alice
  %(prog)s set-plan alice starter
  %(prog)s crawl-dataset athens-cafes --user-id alice --concurrency 5
  %(prog)s export athens-cafes --user-id alice --tier starter --format xlsx
        """
    )
    p.add_argument("--db", type=str, default=DB_PATH, help=f"SQLite database path (default: {DB_PATH})")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    p.add_argument("--quiet", "-q", action="store_true", help="Suppress non-error output")
    sub = p.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("crawl", help="Crawl a single website and print the result as JSON")
    sp.add_argument("url", help="Website URL")
    sp.add_argument("--business-id", type=str, default="adhoc", help="Business id to report")
    add_crawl_arguments(sp)

    sp = sub.add_parser("import", help="Load businesses from a CSV (name,website_url[,business_id])")
    sp.add_argument("dataset_id")
    sp.add_argument("csv_file")
    sp.add_argument("--name", type=str, default=None, help="Dataset display name")
    sp.add_argument("--user-id", type=str, default=None)

    sp = sub.add_parser("crawl-dataset", help="Crawl every business of a dataset")
    sp.add_argument("dataset_id")
    sp.add_argument("--user-id", type=str, required=True)
    add_crawl_arguments(sp)

    sp = sub.add_parser("export", help="Export a dataset as CSV or XLSX")
    sp.add_argument("dataset_id")
    sp.add_argument("--user-id", type=str, default=None)
    sp.add_argument("--tier", type=str, default="demo", choices=[t.value for t in Plan])
    sp.add_argument("--format", type=str, default="csv", choices=list(EXPORT_FORMATS))
    sp.add_argument("--output-dir", type=str, default=None)

    sp = sub.add_parser("set-plan", help="Set a user's plan")
    sp.add_argument("user_id")
    sp.add_argument("plan", choices=[pl.value for pl in Plan])
    sp.add_argument("--internal", action="store_true", help="Internal user (never gated)")

    args = p.parse_args()

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    sys.exit(asyncio.run(run(args)))
