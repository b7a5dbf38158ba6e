"""Standalone job that resolves every active market past its closing date."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from loguru import logger

from app.core.config import Settings, get_settings
from app.db import init_db
from app.services.scheduler import MarketScheduler, ResolutionSummary


class ResolutionPipeline:
    """Run one scheduler tick as an independent pipeline."""

    def __init__(self, settings: Settings | None = None, scheduler: MarketScheduler | None = None) -> None:
        self.settings = settings or get_settings()
        self._scheduler = scheduler or MarketScheduler(settings=self.settings)

    def run(self, *, limit: int | None = None) -> ResolutionSummary:
        init_db()
        logger.info("Starting resolution sweep: limit={}", limit or self.settings.resolution_batch_limit)
        return self._scheduler.process_all_pending_resolutions(limit)

    def stats(self) -> dict[str, int]:
        return self._scheduler.get_resolution_stats().to_dict()

    def close(self) -> None:
        self._scheduler.close()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Resolve markets whose closing date has passed",
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum number of markets to resolve")
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print resolution statistics instead of running a sweep",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(report: dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, default=str, indent=2))
    logger.info("Resolution summary written to {}", path)


def main(argv: list[str] | None = None) -> dict[str, Any]:
    args = _parse_args(argv)
    pipeline = ResolutionPipeline(get_settings())
    try:
        if args.stats:
            init_db()
            report: dict[str, Any] = {"stats": pipeline.stats()}
        else:
            summary = pipeline.run(limit=args.limit)
            report = {"summary": summary.to_dict(), "stats": pipeline.stats()}
    finally:
        pipeline.close()

    print(json.dumps(report, default=str, indent=2))
    if args.summary_path:
        _write_summary(report, args.summary_path)
    return report


if __name__ == "__main__":
    main()
