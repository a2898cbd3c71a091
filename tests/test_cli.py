import json

import pytest
from typer.testing import CliRunner

import statement_ledger.cli as cli
from statement_ledger.importer import read_profile
from statement_ledger.persistence import InMemoryStore

MARCH = """Beginning balance on 03/01 1,000.00
03/02 COFFEE SHOP -4.50 995.50
03/05 PAYROLL DIRECT DEPOSIT 2,000.00 2,995.50
03/10 SAFEWAY PURCHASE WITH CASH BACK $20.00 65.43
"""

runner = CliRunner()


@pytest.fixture
def port(monkeypatch, tmp_path):
    shared = InMemoryStore()
    monkeypatch.setattr(cli, "_open_port", lambda database_url: shared)
    monkeypatch.setattr(cli, "configure_logging", lambda *a, **k: None)
    monkeypatch.chdir(tmp_path)
    return shared


def _import(tmp_path, *extra):
    path = tmp_path / "march.txt"
    path.write_text(MARCH, encoding="utf-8")
    return runner.invoke(cli.app, ["import", str(path), "--year", "2025", *extra])


def test_learn_prints_profile_and_saves(port):
    result = runner.invoke(cli.app, ["learn", "-s", "03/02 COFFEE SHOP -4.50 995.50", "--save"])
    assert result.exit_code == 0, result.output
    assert "[ok] 03/02 COFFEE SHOP -4.50 995.50" in result.output
    assert '"dateFmt": "MM/DD/YYYY"' in result.output
    assert read_profile(port) is not None


def test_learn_fails_on_unusable_samples(port):
    result = runner.invoke(cli.app, ["learn", "-s", "hello world"])
    assert result.exit_code == 1
    assert "No profile learned" in result.output
    assert read_profile(port) is None


def test_import_reports_snapshot(port, tmp_path):
    result = _import(tmp_path)
    assert result.exit_code == 0, result.output
    assert "Transactions: 4" in result.output
    assert "SNAPSHOT_CACHED" in result.output
    assert "Snapshot 2025-03:" in result.output
    assert "(totals auto-fixed)" in result.output


def test_import_without_month_exits_nonzero(port, tmp_path):
    path = tmp_path / "junk.txt"
    path.write_text("COFFEE 4.50\n", encoding="utf-8")
    result = runner.invoke(cli.app, ["import", str(path), "--year", "2025"])
    assert result.exit_code == 1
    assert "pass --month" in result.output


def test_period_ytd_text_and_json(port, tmp_path):
    assert _import(tmp_path).exit_code == 0

    result = runner.invoke(cli.app, ["period", "--period", "ytd"])
    assert result.exit_code == 0, result.output
    assert "YTD through 2025-03: 4 rows" in result.output
    assert "Groceries" in result.output

    result = runner.invoke(cli.app, ["period", "--period", "current", "--json"])
    assert result.exit_code == 0, result.output
    rows = json.loads(result.output)
    assert len(rows) == 4
    assert {r["category"] for r in rows} >= {"Income", "Cash Back"}


def test_period_rejects_unknown_period(port):
    result = runner.invoke(cli.app, ["period", "--period", "weekly"])
    assert result.exit_code != 0


def test_period_without_statements(port):
    result = runner.invoke(cli.app, ["period"])
    assert result.exit_code == 1
    assert "No statements imported yet." in result.output


def test_recurring_with_nothing_stored(port):
    result = runner.invoke(cli.app, ["recurring"])
    assert result.exit_code == 0
    assert "No recurring items found." in result.output
