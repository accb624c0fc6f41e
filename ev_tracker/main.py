#!/usr/bin/env python3
"""
Daily EV Price Tracker Run

Single entry point for one daily batch:
1. Load the listing history (abort before scraping if it cannot be read)
2. Scrape today's result pages and merge them into the history
3. Clean the history and split it into earlier days vs. today
4. Retrain the price model on earlier days and save a dated artifact
5. Score today's listings and render the report

Usage:
    ev-tracker                         # Run for today
    ev-tracker --date 2024-03-01       # Replay a run as of a given date
    ev-tracker --pages 5 --no-report   # Short run without charts
"""

import sys
import logging
import argparse
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ev_tracker.config.config import (
    LOG_DIR, MODEL_DIR, REPORT_DIR, STORE_FILE, get_cleaning_config, get_scraping_config
)
from ev_tracker.errors import PipelineError
from ev_tracker.output_manager import get_output_manager
from ev_tracker.report import render_report
from ev_tracker.services.cleaner import clean_listings
from ev_tracker.services.extractor import collect_pages
from ev_tracker.services.page_source import HttpPageSource, PageSource
from ev_tracker.services.predictor import PredictionResult, predict_prices
from ev_tracker.services.splitter import split_by_access_date
from ev_tracker.services.store import HistoricalStore, listings_to_frame, merge
from ev_tracker.services.trainer import TrainingSettings, save_artifact, train_model

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """What one run did, and which stage stopped it if it failed."""
    run_date: date
    failed_stage: Optional[str] = None
    error_message: str = ""
    pages_ok: int = 0
    pages_skipped: int = 0
    listings_scraped: int = 0
    store_rows_before: int = 0
    store_rows_after: int = 0
    cleaned_rows: int = 0
    dropped: Dict[str, int] = field(default_factory=dict)
    historical_rows: int = 0
    today_rows: int = 0
    artifact_path: Optional[Path] = None
    report_dir: Optional[Path] = None
    training: Dict[str, Any] = field(default_factory=dict)
    prediction: Optional[PredictionResult] = field(default=None, repr=False)
    processing_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed_stage is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'run_date': self.run_date.isoformat(),
            'success': self.success,
            'failed_stage': self.failed_stage,
            'error_message': self.error_message,
            'pages_ok': self.pages_ok,
            'pages_skipped': self.pages_skipped,
            'listings_scraped': self.listings_scraped,
            'store_rows_before': self.store_rows_before,
            'store_rows_after': self.store_rows_after,
            'cleaned_rows': self.cleaned_rows,
            'dropped': dict(self.dropped),
            'historical_rows': self.historical_rows,
            'today_rows': self.today_rows,
            'artifact_path': str(self.artifact_path) if self.artifact_path else None,
            'predictions': len(self.prediction.predictions) if self.prediction is not None else 0,
            'processing_time_seconds': round(self.processing_time, 1),
        }


class DailyRunOrchestrator:
    """
    Runs the scrape → accumulate → clean → train → predict pipeline once.

    Every collaborator is passed in explicitly so a run can be replayed against
    a fake page source and a past date.
    """

    def __init__(self, provider: PageSource, store: Optional[HistoricalStore] = None,
                 model_dir: Optional[Path] = None, report_dir: Optional[Path] = None,
                 page_count: Optional[int] = None, max_workers: Optional[int] = None,
                 training_settings: Optional[TrainingSettings] = None,
                 cleaning_config: Optional[Dict[str, Any]] = None, render: bool = True):
        """
        Initialize the orchestrator.

        Args:
            provider: Source of result page markup
            store: Historical store (defaults to the configured file)
            model_dir: Folder for dated model artifacts
            report_dir: Root folder for run reports
            page_count: Pages to scrape (defaults to configuration)
            max_workers: Parallel page fetches
            training_settings: Split and search settings
            cleaning_config: Overrides for target brand and filter bounds
            render: Whether to render the chart report
        """
        scraping = get_scraping_config()
        self.provider = provider
        self.store = store or HistoricalStore(STORE_FILE)
        self.model_dir = Path(model_dir) if model_dir is not None else MODEL_DIR
        self.report_dir = Path(report_dir) if report_dir is not None else REPORT_DIR
        self.page_count = page_count if page_count is not None else scraping['page_count']
        self.max_workers = max_workers if max_workers is not None else scraping['max_workers']
        self.training_settings = training_settings or TrainingSettings.from_config()
        self.cleaning_config = get_cleaning_config()
        self.cleaning_config.update(cleaning_config or {})
        self.render = render
        self.output = get_output_manager()

    def run(self, as_of: date) -> RunSummary:
        """
        Execute one run as of `as_of`.

        Returns:
            RunSummary: counts for each stage; failed_stage is set on a fatal error
        """
        start_time = datetime.now()
        summary = RunSummary(run_date=as_of)

        try:
            self._run_stages(as_of, summary)
        except PipelineError as e:
            summary.failed_stage = e.stage
            summary.error_message = e.message
            logger.error(f"Run aborted in {e.stage} stage: {e.message}")
            self.output.error(f"Run aborted ({e.stage}): {e.message}")

        summary.processing_time = (datetime.now() - start_time).total_seconds()
        return summary

    def _run_stages(self, as_of: date, summary: RunSummary):
        # History first: an unreadable store aborts before anything is scraped
        self.output.phase_start("Loading listing history", str(self.store.path))
        existing = self.store.load()
        summary.store_rows_before = len(existing)

        self.output.phase_start("Scraping listings", f"{self.page_count} pages")
        scrape = collect_pages(self.provider, as_of, self.page_count, self.max_workers)
        summary.pages_ok = scrape.pages_ok
        summary.pages_skipped = scrape.pages_skipped
        summary.listings_scraped = len(scrape.listings)
        self.output.scraping_result(len(scrape.listings), scrape.pages_ok, scrape.pages_skipped)

        updated = merge(existing, listings_to_frame(scrape.listings, as_of))
        self.store.persist(updated)
        summary.store_rows_after = len(updated)
        self.output.store_result(summary.store_rows_before, summary.store_rows_after)

        self.output.phase_start("Cleaning listings")
        cleaning = clean_listings(
            updated, as_of,
            target_brand=self.cleaning_config['target_brand'],
            min_price=self.cleaning_config['min_price'],
            max_age_days=self.cleaning_config['max_age_days'],
        )
        summary.cleaned_rows = len(cleaning.frame)
        summary.dropped = dict(cleaning.dropped)
        self.output.cleaning_result(len(cleaning.frame), summary.dropped)

        split = split_by_access_date(cleaning.frame, as_of)
        summary.historical_rows = len(split.historical)
        summary.today_rows = len(split.today_batch)

        self.output.phase_start("Training price model", f"{len(split.historical)} historical listings")
        artifact = train_model(split.historical, as_of, self.training_settings)
        summary.training = artifact.report.to_dict()
        self.output.training_result(artifact.report)

        summary.artifact_path = save_artifact(artifact, self.model_dir)

        self.output.phase_start("Scoring today's listings")
        prediction = predict_prices(artifact, split.today_batch)
        summary.prediction = prediction
        self.output.prediction_result(prediction)

        if self.render:
            try:
                summary.report_dir = render_report(artifact, prediction, as_of, summary.to_dict(), self.report_dir)
            except OSError as e:
                raise PipelineError(f"Cannot write report: {e}", stage="reporting") from e


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Scrape EV listings, retrain the price model and score today's listings")
    parser.add_argument("--date", type=lambda s: datetime.strptime(s, "%Y-%m-%d").date(), default=None,
                        help="Run as of this date (YYYY-MM-DD, default today)")
    parser.add_argument("--pages", type=int, default=None, help="Number of result pages to scrape")
    parser.add_argument("--workers", type=int, default=None, help="Parallel page fetches")
    parser.add_argument("--store", type=Path, default=None, help="Historical store CSV file")
    parser.add_argument("--model-dir", type=Path, default=None, help="Folder for model artifacts")
    parser.add_argument("--report-dir", type=Path, default=None, help="Folder for run reports")
    parser.add_argument("--no-report", action="store_true", help="Skip chart rendering")
    parser.add_argument("--verbose", action="store_true", help="Enable detailed logging")
    parser.add_argument("--quiet", action="store_true", help="Suppress console progress output")
    return parser.parse_args(argv)


def configure_logging(verbose: bool = False):
    """Log to stdout and append to logs/ev_tracker.log."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(LOG_DIR / 'ev_tracker.log', mode='a')
        ]
    )


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    output = get_output_manager(quiet_mode=args.quiet)
    as_of = args.date or date.today()
    output.startup_banner(as_of.isoformat())

    provider = HttpPageSource()
    try:
        orchestrator = DailyRunOrchestrator(
            provider,
            store=HistoricalStore(args.store) if args.store else None,
            model_dir=args.model_dir,
            report_dir=args.report_dir,
            page_count=args.pages,
            max_workers=args.workers,
            render=not args.no_report,
        )
        summary = orchestrator.run(as_of)
    finally:
        provider.close()

    output.run_summary(summary.to_dict())
    if summary.success:
        output.success("Run completed successfully")
        return 0

    output.error(f"Run failed in {summary.failed_stage} stage")
    return 1


if __name__ == "__main__":
    sys.exit(main())
