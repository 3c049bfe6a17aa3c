#!/usr/bin/env python3
"""
Integration tests for the vendor-import CLI commands

Seeds the configured datastore, then drives preview, confirm, status and
cancel through click exactly as a user would.
"""

import asyncio
import json

import pytest
from click.testing import CliRunner

from ownerstatements.cli.main import main
from ownerstatements.core.config import get_config
from tests.fixtures.datastore import ORG, USER, list_expenses, open_database, seed_month
from tests.fixtures.spreadsheets import build_csv

PROPERTIES = [("Sunset Villa", "12 Ocean Drive"), ("Harbor House", "7 Bay Road")]

ROWS = [
    ["Sunset Villa", "2025-03-05", "Pool service", "Acme Pools", "100.00"],
    ["Zzyzx Qwerty", "2025-03-07", "Pool service", "Acme Pools", "20.00"],
    ["Sunset Villa", "2025-03-19", "Pool service", "Acme Pools", "50.25"],
]


def seed_configured_datastore():
    async def seed():
        async with open_database(get_config().database.url) as database:
            return await seed_month(database, PROPERTIES)

    return asyncio.run(seed())


def expenses_on(statement_id: str):
    async def read():
        async with open_database(get_config().database.url) as database:
            return await list_expenses(database, statement_id)

    return asyncio.run(read())


@pytest.mark.integration
class TestVendorImportCLI:
    """Test the two-step import from the command line."""

    def setup_method(self):
        """Set up test environment."""
        self.runner = CliRunner()

    def preview(self, tmp_path, statement_id: str, *extra: str):
        sheet = tmp_path / "acme_march.csv"
        sheet.write_bytes(build_csv(ROWS))
        output = tmp_path / "preview.json"
        result = self.runner.invoke(
            main,
            [
                "vendor-import",
                "preview",
                str(sheet),
                "--statement",
                statement_id,
                "--org",
                ORG,
                "--user",
                USER,
                "--output",
                str(output),
                *extra,
            ],
        )
        return result, output

    def test_preview_confirm_status(self, tmp_path):
        """Test a spreadsheet goes from preview to committed expenses."""
        seeded = seed_configured_datastore()
        sunset = seeded["Sunset Villa"]

        result, output = self.preview(tmp_path, sunset.statement_id)

        assert result.exit_code == 0, result.output
        assert "Import job:" in result.output
        assert "Matched 1 properties (2 expenses, $150.25)" in result.output
        assert "✓ Sunset Villa: 2 expenses, $150.25" in result.output
        assert "✗ Zzyzx Qwerty: 1 expenses, $20.00" in result.output
        assert f"Preview saved to: {output}" in result.output

        preview = json.loads(output.read_text())
        job_id = preview["jobId"]
        assert f"Import job: {job_id}" in result.output

        request_file = tmp_path / "approve.json"
        request_file.write_text(
            json.dumps({"targetStatementId": sunset.statement_id, "approvedMatches": preview["matched"]})
        )
        result = self.runner.invoke(
            main, ["vendor-import", "confirm", job_id, str(request_file), "--org", ORG, "--user", USER]
        )

        assert result.exit_code == 0, result.output
        assert "Created 2 expenses (0 already present)" in result.output
        assert "Updated 1 properties:" in result.output
        assert "  Sunset Villa" in result.output
        assert len(expenses_on(sunset.statement_id)) == 2

        result = self.runner.invoke(main, ["vendor-import", "status", job_id, "--org", ORG])

        assert result.exit_code == 0, result.output
        assert f'"jobId": "{job_id}"' in result.output
        assert '"status": "committed"' in result.output
        assert '"createdCount": 2' in result.output

    def test_second_upload_reports_duplicate(self, tmp_path):
        """Test a repeated upload stops with the duplicate message."""
        seeded = seed_configured_datastore()
        sunset = seeded["Sunset Villa"]
        result, output = self.preview(tmp_path, sunset.statement_id)
        preview = json.loads(output.read_text())
        request_file = tmp_path / "approve.json"
        request_file.write_text(
            json.dumps({"targetStatementId": sunset.statement_id, "approvedMatches": preview["matched"]})
        )
        self.runner.invoke(
            main, ["vendor-import", "confirm", preview["jobId"], str(request_file), "--org", ORG, "--user", USER]
        )

        result, _ = self.preview(tmp_path, sunset.statement_id)

        assert result.exit_code != 0
        assert 'Expenses from "Acme Pools" for "Pool service" already exist for 2025-03' in result.output

        result, _ = self.preview(tmp_path, sunset.statement_id, "--allow-duplicates")
        assert result.exit_code == 0, result.output

    def test_cancel(self, tmp_path):
        """Test a previewed import can be cancelled once."""
        seeded = seed_configured_datastore()
        result, output = self.preview(tmp_path, seeded["Harbor House"].statement_id)
        job_id = json.loads(output.read_text())["jobId"]

        result = self.runner.invoke(main, ["vendor-import", "cancel", job_id, "--org", ORG])
        assert result.exit_code == 0, result.output
        assert f"Import {job_id} cancelled" in result.output

        result = self.runner.invoke(main, ["vendor-import", "cancel", job_id, "--org", ORG])
        assert result.exit_code != 0
        assert "cannot move from cancelled to cancelled" in result.output

    def test_unknown_statement(self, tmp_path):
        """Test a missing statement is reported, not raised."""
        seed_configured_datastore()

        result, output = self.preview(tmp_path, "no-such-statement")

        assert result.exit_code != 0
        assert "Statement no-such-statement was not found" in result.output
        assert not output.exists()

    def test_unknown_job(self):
        """Test status of a job that does not exist."""
        seed_configured_datastore()

        result = self.runner.invoke(main, ["vendor-import", "status", "missing-job", "--org", ORG])

        assert result.exit_code != 0
        assert "Import missing-job was not found" in result.output

    def test_malformed_request_file(self, tmp_path):
        """Test a confirm request that is not valid JSON."""
        request_file = tmp_path / "approve.json"
        request_file.write_text("{not json")

        result = self.runner.invoke(
            main, ["vendor-import", "confirm", "job-1", str(request_file), "--org", ORG, "--user", USER]
        )

        assert result.exit_code != 0
        assert "is not valid JSON" in result.output
