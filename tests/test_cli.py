from __future__ import annotations

import json
from datetime import timedelta

from typer.testing import CliRunner

from conftest import NOW, build_row
from prs_api import cli
from prs_api.services.snapshot import SnapshotRefresher

runner = CliRunner()


def test_refresh_snapshot_prints_outcome(monkeypatch):
    def fake_refresher(horizon_days):
        assert horizon_days == 30
        return SnapshotRefresher(
            lambda window: ([build_row(id=1), build_row(id=2)], []),
            horizon=timedelta(days=horizon_days),
            clock=lambda: NOW,
        )

    monkeypatch.setattr(cli, "build_refresher", fake_refresher)
    result = runner.invoke(cli.app, ["refresh-snapshot", "--horizon-days", "30"])

    assert result.exit_code == 0
    outcome = json.loads(result.stdout)
    assert outcome["status"] == "published"
    assert outcome["rows"] == 2


def test_failed_refresh_exits_non_zero(monkeypatch):
    def broken(window):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(cli, "build_refresher", lambda horizon_days: SnapshotRefresher(broken, clock=lambda: NOW))
    result = runner.invoke(cli.app, ["refresh-snapshot"])

    assert result.exit_code == 1
    assert json.loads(result.stdout)["status"] == "failed"


def test_dashboard_rejects_malformed_json():
    result = runner.invoke(cli.app, ["dashboard", "10", "--filter-by", "{nope"])
    assert result.exit_code == 2


def test_audit_orphans_rejects_unknown_range():
    result = runner.invoke(cli.app, ["audit-orphans", "--time-range", "2 weeks"])
    assert result.exit_code == 2
