"""
Predictor
Scores listings with a persisted model artifact.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error, r2_score

from ev_tracker.services.trainer import ModelArtifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictionResult:
    """Scored listings plus aggregate metrics against their listed prices."""
    predictions: pd.DataFrame
    mean_predicted_price: float
    rmse: float
    r_squared: float

    def to_dict(self) -> dict:
        return {
            'count': len(self.predictions),
            'mean_predicted_price': self.mean_predicted_price,
            'rmse': self.rmse,
            'r_squared': self.r_squared,
        }


def predict_prices(artifact: ModelArtifact, listings: pd.DataFrame) -> PredictionResult:
    """
    Predict prices for cleaned listings.

    The artifact's pipeline is applied as fitted: the same category levels,
    unseen-category fallback and scaling statistics. Nothing is refit.

    Args:
        artifact: Trained model artifact
        listings: Cleaned listings to score

    Returns:
        PredictionResult: listings with a `predicted_price` column plus metrics
    """
    nan = float('nan')
    if listings.empty:
        logger.warning("No listings to score")
        scored = listings.copy()
        scored['predicted_price'] = pd.Series(dtype=float)
        return PredictionResult(predictions=scored, mean_predicted_price=nan, rmse=nan, r_squared=nan)

    predicted = artifact.pipeline.predict(listings[list(artifact.predictors)])
    scored = listings.copy()
    scored['predicted_price'] = predicted

    actual = listings[artifact.target].astype(float)
    rmse = float(np.sqrt(mean_squared_error(actual, predicted)))
    r2 = float(r2_score(actual, predicted)) if len(listings) >= 2 else nan
    mean_predicted = float(np.mean(predicted))

    logger.info(f"Predicted prices for {len(scored)} listings with model trained {artifact.trained_on.isoformat()}")
    logger.info(f"  - Average predicted price: €{mean_predicted:,.0f}")
    logger.info(f"  - RMSE vs listed price: €{rmse:,.0f}")

    return PredictionResult(predictions=scored, mean_predicted_price=mean_predicted, rmse=rmse, r_squared=r2)
