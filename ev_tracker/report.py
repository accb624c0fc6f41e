"""
Run report rendering.
Writes the model-fit, feature-importance and today's-predictions charts plus
the scored listings and a JSON summary under reports/<run date>/.
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np

# Headless plots saved to files
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ev_tracker.config.config import REPORT_DIR
from ev_tracker.services.predictor import PredictionResult
from ev_tracker.services.trainer import ModelArtifact

logger = logging.getLogger(__name__)

TOP_FEATURES = 20


def _json_safe(value):
    """Replace NaN and infinities with None, recursively."""
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, (float, np.floating)) and not np.isfinite(value):
        return None
    return value


def _identity_line(ax, values):
    if len(values):
        lo, hi = float(np.min(values)), float(np.max(values))
        ax.plot([lo, hi], [lo, hi], linestyle='--', color='grey', linewidth=1)


def save_model_fit(artifact: ModelArtifact, outpath: Path):
    """Held-out actual vs. predicted prices."""
    holdout = artifact.report.holdout
    fig, ax = plt.subplots(figsize=(7, 5))
    ax.scatter(holdout['price'], holdout['predicted_price'], alpha=0.6)
    _identity_line(ax, np.concatenate([holdout['price'].to_numpy(), holdout['predicted_price'].to_numpy()]))
    ax.set_title(f"Model fit on held-out listings (RMSE €{artifact.report.rmse:,.0f}, "
                 f"R² {artifact.report.r_squared:.3f})")
    ax.set_xlabel("Listed price (€)")
    ax.set_ylabel("Predicted price (€)")
    fig.tight_layout()
    fig.savefig(outpath)
    plt.close(fig)


def save_feature_importance(artifact: ModelArtifact, outpath: Path):
    """Top coefficients by absolute size."""
    items = list(artifact.report.feature_importances.items())[:TOP_FEATURES]
    names = [name for name, _ in reversed(items)]
    values = [coef for _, coef in reversed(items)]

    fig, ax = plt.subplots(figsize=(8, 6))
    ax.barh(names, values, color=['tab:green' if v >= 0 else 'tab:red' for v in values])
    ax.set_title("Top feature coefficients (scaled features)")
    ax.set_xlabel("Coefficient (€)")
    fig.tight_layout()
    fig.savefig(outpath)
    plt.close(fig)


def save_today_predictions(prediction: PredictionResult, as_of: date, outpath: Path):
    """Today's listings: listed vs. predicted price, target brand highlighted."""
    scored = prediction.predictions
    fig, ax = plt.subplots(figsize=(7, 5))
    if not scored.empty:
        target = scored['is_target_brand'].astype(bool)
        ax.scatter(scored.loc[~target, 'price'], scored.loc[~target, 'predicted_price'],
                   alpha=0.6, label='Other brands')
        ax.scatter(scored.loc[target, 'price'], scored.loc[target, 'predicted_price'],
                   alpha=0.8, color='tab:red', label='Target brand')
        _identity_line(ax, np.concatenate([scored['price'].to_numpy(), scored['predicted_price'].to_numpy()]))
        ax.legend()
    ax.set_title(f"Listings collected {as_of.isoformat()} ({len(scored)})")
    ax.set_xlabel("Listed price (€)")
    ax.set_ylabel("Predicted price (€)")
    fig.tight_layout()
    fig.savefig(outpath)
    plt.close(fig)


def render_report(artifact: ModelArtifact, prediction: PredictionResult, as_of: date,
                  summary: Optional[Dict[str, Any]] = None,
                  report_dir: Optional[Union[str, Path]] = None) -> Path:
    """
    Render the run report.

    Args:
        artifact: Model trained this run
        prediction: Scored listings for today
        as_of: Run date, used as the report folder name
        summary: Extra run statistics written to summary.json
        report_dir: Root report folder (defaults to configuration)

    Returns:
        Path: Folder the report was written to
    """
    outdir = Path(report_dir if report_dir is not None else REPORT_DIR) / as_of.isoformat()
    outdir.mkdir(parents=True, exist_ok=True)

    save_model_fit(artifact, outdir / 'model_fit.png')
    save_feature_importance(artifact, outdir / 'feature_importance.png')
    save_today_predictions(prediction, as_of, outdir / 'today_predictions.png')

    prediction.predictions.to_csv(outdir / 'predictions.csv', index=False)

    payload = {
        'run_date': as_of.isoformat(),
        'model_trained_on': artifact.trained_on.isoformat(),
        'training': artifact.report.to_dict(),
        'predictions': prediction.to_dict(),
    }
    if summary:
        payload['run'] = summary
    with open(outdir / 'summary.json', 'w') as f:
        json.dump(_json_safe(payload), f, indent=2, default=str, allow_nan=False)

    logger.info(f"Report written to {outdir}")
    return outdir
