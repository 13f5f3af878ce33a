#!/usr/bin/env python3
"""Bulk-load an HR workbook into the Cosmos DB employees container.

Run from the backend/ directory:

    python3 scripts/import_employees.py employees.xlsx [--dry-run] [--batch-size N] [--verbose]

Rows without an Emp ID are skipped; invalid rows are reported and left out.
Existing employees with the same Emp ID are overwritten.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any

_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from azure.cosmos import exceptions as cosmos_exceptions  # noqa: E402
from azure.cosmos.aio import CosmosClient  # noqa: E402

from orgchart.core.config import Settings  # noqa: E402
from orgchart.services.employee_service import to_document  # noqa: E402
from orgchart.services.excel_import import ImportReport, parse_employee_workbook  # noqa: E402

logger = logging.getLogger(__name__)


async def upsert_batch(
    container: Any,
    documents: list[dict[str, Any]],
    *,
    dry_run: bool = False,
) -> tuple[int, int]:
    if dry_run:
        return len(documents), 0

    succeeded = 0
    failed = 0
    for doc in documents:
        try:
            await container.upsert_item(body=doc)
            succeeded += 1
        except cosmos_exceptions.CosmosHttpResponseError as e:
            logger.error("Upsert failed for %s: %s", doc.get("id"), e.message)
            failed += 1
    return succeeded, failed


def load_report(path: Path) -> ImportReport:
    return parse_employee_workbook(path.read_bytes())


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import employees from an HR Excel workbook into Cosmos DB",
    )
    parser.add_argument("file", type=Path, help="Path to the .xlsx/.xls workbook")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and validate the workbook without writing to Cosmos DB",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=50,
        help="Number of employees per batch (default: 50)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser.parse_args(argv)


async def import_employees(args: argparse.Namespace) -> int:
    settings = Settings()
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")

    logger.info("Reading %s...", args.file)
    report = load_report(args.file)
    for error in report.errors:
        logger.warning("Row %d (%s): %s", error.row, error.employee_id or "-", error.message)

    documents = [to_document(record) for record in report.records]
    logger.info(
        "Workbook has %d valid employees (%d skipped, %d invalid)",
        len(documents),
        report.skipped,
        len(report.errors),
    )
    if not documents:
        logger.warning("Nothing to import. Exiting.")
        return 0

    cosmos_client: CosmosClient | None = None
    container: Any = None
    if not args.dry_run:
        logger.info("Connecting to Cosmos DB...")
        cosmos_client = CosmosClient(settings.COSMOS_DB_ENDPOINT, settings.COSMOS_DB_KEY)
        db = cosmos_client.get_database_client(settings.COSMOS_DB_DATABASE)
        container = db.get_container_client(settings.COSMOS_DB_EMPLOYEES_CONTAINER)

    total_succeeded = 0
    total_failed = 0
    total_batches = (len(documents) + args.batch_size - 1) // args.batch_size
    try:
        for batch_idx in range(total_batches):
            start = batch_idx * args.batch_size
            batch = documents[start : start + args.batch_size]
            succeeded, failed = await upsert_batch(container, batch, dry_run=args.dry_run)
            total_succeeded += succeeded
            total_failed += failed
            logger.info(
                "Batch %d/%d: %d succeeded, %d failed",
                batch_idx + 1,
                total_batches,
                succeeded,
                failed,
            )
    finally:
        if cosmos_client is not None:
            await cosmos_client.close()

    logger.info("=" * 50)
    logger.info("Import complete!")
    logger.info("Total succeeded: %d", total_succeeded)
    logger.info("Total failed: %d", total_failed)
    if args.dry_run:
        logger.info("[DRY RUN] No documents were written.")
    return total_failed


def main() -> None:
    args = parse_args()
    failed = asyncio.run(import_employees(args))
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
