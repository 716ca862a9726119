"""
CSV and XLSX export of aggregated contact rows.

CSV files are UTF-8 with a BOM so that Excel picks up Greek text, and
quoting is left to the csv module. XLSX files get a styled header and a
merged watermark footer row.
"""
from __future__ import annotations
import csv
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from .action_log import ActionLogger
from .aggregate import TIER_COLUMNS, AggregatedContactRow, ExportTier, aggregate_business, cap_tier, coerce_tier
from .config import get_export_dir
from .errors import ExportError
from .gate import ActionType, enforce

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "xlsx")

COLUMN_WIDTHS = {
    "business_id": 18,
    "business_name": 32,
    "website_url": 36,
    "best_email": 32,
    "best_phone": 18,
    "all_emails": 48,
    "all_phones": 36,
    "contact_page_url": 44,
    "last_crawled_at": 22,
    "crawl_status": 14,
    "confidence_trace": 80,
    "pages_crawled": 14,
    "dataset_watermark": 48,
}
DEFAULT_COLUMN_WIDTH = 36

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(fill_type="solid", start_color="FFE0E0E0", end_color="FFE0E0E0")
FOOTER_FONT = Font(italic=True, color="FF808080")


def build_watermark(dataset_id: str, user_id: str | None, tier: ExportTier, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M UTC")
    return f"LeadCrawler export | dataset {dataset_id} | user {user_id or '-'} | tier {tier.value} | {stamp}"


def write_csv(rows: List[AggregatedContactRow], tier: ExportTier, path: str) -> str:
    with open(path, "w", encoding="utf-8-sig", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(TIER_COLUMNS[tier])
        for row in rows:
            writer.writerow(row.cells(tier))
    return path


def write_xlsx(rows: List[AggregatedContactRow], tier: ExportTier, path: str,
               watermark: Optional[str] = None) -> str:
    columns = TIER_COLUMNS[tier]
    wb = Workbook()
    ws = wb.active
    ws.title = "Contacts"

    ws.append(columns)
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
    for idx, column in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = COLUMN_WIDTHS.get(column, DEFAULT_COLUMN_WIDTH)

    for row in rows:
        ws.append(row.cells(tier))

    if watermark:
        footer_row = ws.max_row + 1
        footer = ws.cell(row=footer_row, column=1, value=watermark)
        footer.font = FOOTER_FONT
        footer.alignment = Alignment(horizontal="left", vertical="center")
        if len(columns) > 1:
            ws.merge_cells(start_row=footer_row, start_column=1, end_row=footer_row, end_column=len(columns))

    wb.save(path)
    return path


async def export_dataset(dataset_id: str, tier, fmt: str, store, user_id: str | None = None,
                         output_dir: str | None = None, action_logger: ActionLogger | None = None) -> str:
    """
    Aggregate every business of a dataset and write it as CSV or XLSX.

    The tier is capped at the user's plan tier and the row count at the
    plan's export allowance (internal users are exempt from both).

    Returns:
        path of the written file

    Raises:
        ExportError: unknown format or tier, or a dataset without businesses
    """
    fmt = (fmt or "").lower()
    if fmt not in EXPORT_FORMATS:
        raise ExportError(f"Unsupported export format: {fmt or '(empty)'}")
    requested_tier = coerce_tier(tier)
    if requested_tier is None:
        raise ExportError(f"Unknown export tier: {tier}")

    businesses = await store.list_businesses(dataset_id)
    if not businesses:
        raise ExportError(f"Dataset not found or empty: {dataset_id}")

    permissions = await store.get_user_permissions(user_id) if user_id else None
    plan = permissions.plan if permissions else "demo"
    is_internal = bool(permissions and permissions.is_internal)

    effective_tier = requested_tier if is_internal else cap_tier(requested_tier, plan)
    if effective_tier != requested_tier:
        logger.info("Export tier %s capped to %s for plan %s", requested_tier.value, effective_tier.value, plan)

    gate = enforce(plan, ActionType.EXPORT, len(businesses), is_internal)
    selected = businesses[:gate.actual]
    truncated = len(selected) < len(businesses)

    results = await store.get_crawl_results(dataset_id)
    watermark = build_watermark(dataset_id, user_id, effective_tier)
    rows = [aggregate_business(b, results.get(b.id), watermark) for b in selected]

    out_dir = output_dir or get_export_dir(dataset_id)
    os.makedirs(out_dir, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    path = os.path.join(out_dir, f"{dataset_id}-{effective_tier.value}-{stamp}.{fmt}")

    if fmt == "csv":
        write_csv(rows, effective_tier, path)
    else:
        write_xlsx(rows, effective_tier, path, watermark=watermark)

    await store.record_export({
        "dataset_id": dataset_id,
        "user_id": user_id,
        "tier": effective_tier.value,
        "format": fmt,
        "row_count": len(rows),
        "total_rows": len(businesses),
        "truncated": truncated,
        "watermark": watermark,
        "file_path": path,
    })

    action_logger = action_logger or ActionLogger(store)
    action_logger.log(
        "export",
        user_id=user_id,
        dataset_id=dataset_id,
        result_summary=f"Exported {len(rows)}/{len(businesses)} rows as {fmt} ({effective_tier.value})",
        gated=gate.gated,
        metadata={
            "tier": effective_tier.value,
            "requested_tier": requested_tier.value,
            "format": fmt,
            "row_count": len(rows),
            "total_rows": len(businesses),
            "truncated": truncated,
            "file_path": path,
            "upgrade_hint": gate.upgrade_hint,
        },
    )
    await action_logger.flush()

    logger.info("Exported dataset %s: %d rows (%s, %s) to %s", dataset_id, len(rows), effective_tier.value, fmt, path)
    return path
