"""Tests for the bulk employee import script."""

from __future__ import annotations

import io
from unittest.mock import AsyncMock, MagicMock, patch

import pandas as pd
import pytest
from azure.cosmos import exceptions as cosmos_exceptions

from scripts.import_employees import import_employees, load_report, parse_args, upsert_batch


def _write_workbook(path, rows):
    buffer = io.BytesIO()
    pd.DataFrame(rows).to_excel(buffer, index=False)
    path.write_bytes(buffer.getvalue())


def test_parse_args_defaults(tmp_path):
    args = parse_args([str(tmp_path / "hr.xlsx")])
    assert args.file == tmp_path / "hr.xlsx"
    assert args.dry_run is False
    assert args.batch_size == 50
    assert args.verbose is False


def test_parse_args_flags():
    args = parse_args(["hr.xlsx", "--dry-run", "--batch-size", "5", "--verbose"])
    assert args.dry_run is True
    assert args.batch_size == 5
    assert args.verbose is True


def test_load_report(tmp_path):
    path = tmp_path / "hr.xlsx"
    _write_workbook(path, [{"Emp ID": "1", "Full Name": "Boss"}, {"Emp ID": None, "Full Name": "Nobody"}])

    report = load_report(path)

    assert [r.employee_id for r in report.records] == ["1"]
    assert report.skipped == 1


@pytest.mark.anyio
async def test_upsert_batch_dry_run():
    container = MagicMock()
    container.upsert_item = AsyncMock()

    assert await upsert_batch(container, [{"id": "1"}, {"id": "2"}], dry_run=True) == (2, 0)
    container.upsert_item.assert_not_awaited()


@pytest.mark.anyio
async def test_upsert_batch_counts_failures():
    container = MagicMock()
    container.upsert_item = AsyncMock(
        side_effect=[None, cosmos_exceptions.CosmosHttpResponseError(status_code=429, message="throttled")]
    )

    assert await upsert_batch(container, [{"id": "1"}, {"id": "2"}]) == (1, 1)


@pytest.mark.anyio
async def test_import_dry_run_does_not_connect(tmp_path):
    path = tmp_path / "hr.xlsx"
    _write_workbook(path, [{"Emp ID": str(i), "Dept": "Eng"} for i in range(5)])
    args = parse_args([str(path), "--dry-run", "--batch-size", "2"])

    with patch("scripts.import_employees.CosmosClient") as mock_client:
        failed = await import_employees(args)

    assert failed == 0
    mock_client.assert_not_called()


@pytest.mark.anyio
async def test_import_writes_documents_in_batches(tmp_path):
    path = tmp_path / "hr.xlsx"
    _write_workbook(path, [{"Emp ID": str(i), "Dept": "Eng", "Line Manager": "0"} for i in range(1, 4)])
    args = parse_args([str(path), "--batch-size", "2"])

    container = MagicMock()
    container.upsert_item = AsyncMock()
    client = MagicMock()
    client.get_database_client.return_value.get_container_client.return_value = container
    client.close = AsyncMock()

    with patch("scripts.import_employees.CosmosClient", return_value=client):
        failed = await import_employees(args)

    assert failed == 0
    assert container.upsert_item.await_count == 3
    bodies = [c.kwargs["body"] for c in container.upsert_item.call_args_list]
    assert [b["id"] for b in bodies] == ["1", "2", "3"]
    assert bodies[0]["dept"] == "Eng"
    client.close.assert_awaited_once()
