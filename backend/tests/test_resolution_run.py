from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from app.domain import ResolutionStats
from app.services.scheduler import ResolutionSummary
from pipelines import resolution_run


@pytest.fixture
def scheduler(monkeypatch, test_settings):
    """Patch the pipeline so no database or provider is touched."""
    mock_scheduler = MagicMock()
    mock_scheduler.process_all_pending_resolutions.return_value = ResolutionSummary(
        checked_markets=3,
        resolved=2,
        failures=[{"market_id": "m-3", "reason": "boom"}],
    )
    mock_scheduler.get_resolution_stats.return_value = ResolutionStats(
        total_markets=5, active_markets=1, closed_markets=4, pending_resolutions=1, resolved_today=2
    )
    init_db = MagicMock()
    monkeypatch.setattr(resolution_run, "MarketScheduler", lambda settings: mock_scheduler)
    monkeypatch.setattr(resolution_run, "init_db", init_db)
    monkeypatch.setattr(resolution_run, "get_settings", lambda: test_settings)
    mock_scheduler.init_db = init_db
    return mock_scheduler


def test_run_resolves_and_reports(scheduler, tmp_path, capsys):
    summary_path = tmp_path / "reports" / "resolution.json"

    report = resolution_run.main(["--limit", "10", "--summary-path", str(summary_path)])

    scheduler.init_db.assert_called_once()
    scheduler.process_all_pending_resolutions.assert_called_once_with(10)
    scheduler.close.assert_called_once()
    assert report["summary"]["checked_markets"] == 3
    assert report["summary"]["failures"] == [{"market_id": "m-3", "reason": "boom"}]
    assert report["stats"]["resolved_today"] == 2
    assert json.loads(summary_path.read_text()) == report
    assert json.loads(capsys.readouterr().out) == report


def test_stats_only_does_not_resolve(scheduler):
    report = resolution_run.main(["--stats"])

    assert report == {
        "stats": {
            "total_markets": 5,
            "active_markets": 1,
            "closed_markets": 4,
            "pending_resolutions": 1,
            "resolved_today": 2,
        }
    }
    scheduler.process_all_pending_resolutions.assert_not_called()
    scheduler.close.assert_called_once()


def test_scheduler_is_closed_when_run_fails(scheduler):
    scheduler.process_all_pending_resolutions.side_effect = RuntimeError("database unavailable")

    with pytest.raises(RuntimeError):
        resolution_run.main([])

    scheduler.close.assert_called_once()
