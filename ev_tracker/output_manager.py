#!/usr/bin/env python3
"""
Centralized Output Manager
Handles all user-facing console output to prevent scattered print statements.
"""

import threading
from typing import Optional, Dict, Any


class OutputManager:
    """
    Centralized output manager for clean, coordinated console output.
    Thread-safe singleton that prevents output conflicts.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls, quiet_mode: bool = False):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self, quiet_mode: bool = False):
        if self._initialized:
            return

        self.quiet_mode = quiet_mode
        self._output_lock = threading.Lock()
        self._initialized = True

    def _print(self, message: str, end: str = "\n", flush: bool = True):
        """Thread-safe print with optional quiet mode."""
        if self.quiet_mode:
            return

        with self._output_lock:
            print(message, end=end, flush=flush)

    def startup_banner(self, run_date: str):
        """Display startup banner."""
        self._print("============================================================")
        self._print(f"          🚀 EV Price Tracker - run {run_date}")
        self._print("============================================================")

    def phase_start(self, phase: str, details: str = ""):
        """Display pipeline phase start."""
        self._print(f"\n🎯 {phase}")
        if details:
            self._print(f"   {details}")

    def scraping_result(self, listings: int, pages_ok: int, pages_skipped: int):
        """Display scraping results."""
        self._print(f"🔍 Scraped {listings} listings from {pages_ok} pages"
                    + (f" ({pages_skipped} skipped)" if pages_skipped else ""))

    def store_result(self, before: int, after: int):
        """Display historical store growth."""
        self._print(f"💾 History: {before} → {after} listings (+{after - before})")

    def cleaning_result(self, kept: int, dropped: Dict[str, int]):
        """Display cleaning results with drop reasons."""
        self._print(f"🧹 Cleaned listings kept: {kept}")
        for reason, count in sorted(dropped.items()):
            self._print(f"   • dropped {count} ({reason})")

    def training_result(self, report: Any):
        """Display model training metrics."""
        params = report.selected_hyperparameters
        self._print(f"🤖 Model: alpha={params['alpha']:.2e}, l1_ratio={params['l1_ratio']}")
        self._print(f"   • CV RMSE: €{report.cv_rmse:,.0f}")
        self._print(f"   • Test RMSE: €{report.rmse:,.0f} | R²={report.r_squared:.3f}")
        self._print(f"   • Train/test: {report.n_train}/{report.n_test} listings")

    def prediction_result(self, prediction: Any):
        """Display today's prediction metrics."""
        self._print(f"📊 Scored {len(prediction.predictions)} listings collected today")
        if len(prediction.predictions):
            self._print(f"   • Average predicted price: €{prediction.mean_predicted_price:,.0f}")
            self._print(f"   • RMSE vs listed: €{prediction.rmse:,.0f}")

    def run_summary(self, summary: Dict[str, Any]):
        """Display final run summary."""
        self._print("\n" + "=" * 60)
        self._print(f"{'📈 Run Summary':^60}")
        self._print("=" * 60)
        for key, value in summary.items():
            self._print(f"   • {key.replace('_', ' ')}: {value}")
        self._print("=" * 60)

    def error(self, message: str):
        """Display error message."""
        self._print(f"❌ {message}")

    def success(self, message: str):
        """Display success message."""
        self._print(f"✅ {message}")


# Global instance
_output_manager = None


def get_output_manager(quiet_mode: Optional[bool] = None) -> OutputManager:
    """Get the global OutputManager instance."""
    global _output_manager
    if _output_manager is None:
        _output_manager = OutputManager(bool(quiet_mode))
    elif quiet_mode is not None:
        _output_manager.quiet_mode = quiet_mode
    return _output_manager
