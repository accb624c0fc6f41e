#!/usr/bin/env python3
"""
Model Trainer
Fits the elastic-net price model on accumulated history and persists dated artifacts.

Training protocol:
- Stratified (by brand) train/test split, seeded
- Categorical indicators with an unseen-category level, numeric scaling and a
  zero-variance filter, all fit on the training partition only
- Grid search over regularization strength x L1/L2 mix with k-fold CV (RMSE)
- Refit of the best configuration on the full training partition and a single
  evaluation on the held-out test partition
"""

import re
import pickle
import logging
import warnings
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.exceptions import ConvergenceWarning
from sklearn.feature_selection import VarianceThreshold
from sklearn.linear_model import ElasticNet
from sklearn.metrics import mean_squared_error, r2_score
from sklearn.model_selection import GridSearchCV, KFold, train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from ev_tracker.config.config import MODEL_DIR, get_training_config
from ev_tracker.errors import InsufficientDataFailure, ModelFitFailure, StoreIOFailure
from ev_tracker.services.encoding import categorical_encoder

logger = logging.getLogger(__name__)

CATEGORICAL_FEATURES = ['brand', 'model', 'offer_type', 'transmission']
NUMERIC_FEATURES = ['mileage_km', 'age_days', 'owners_count', 'power_kw', 'power_pk']
PREDICTORS = CATEGORICAL_FEATURES + NUMERIC_FEATURES
TARGET = 'price'

ARTIFACT_PATTERN = re.compile(r'^model_(\d{4}-\d{2}-\d{2})(?:_(\d+))?\.pkl$')


@dataclass(frozen=True)
class TrainingSettings:
    """Hyperparameter search and split settings."""
    train_fraction: float = 0.75
    cv_folds: int = 10
    random_seed: int = 42
    alpha_min: float = 1e-6
    alpha_max: float = 1e-1
    alpha_count: int = 20
    l1_ratios: Tuple[float, ...] = (0.01, 0.05, 0.2, 0.4, 0.6, 0.8, 1.0)
    max_iter: int = 10000
    n_jobs: int = 1
    unseen_label: str = 'new'

    @classmethod
    def from_config(cls, **overrides) -> "TrainingSettings":
        config = get_training_config()
        config['l1_ratios'] = tuple(config['l1_ratios'])
        config.update(overrides)
        return cls(**config)

    def alpha_grid(self) -> np.ndarray:
        return np.logspace(np.log10(self.alpha_min), np.log10(self.alpha_max), self.alpha_count)


@dataclass(frozen=True)
class TrainingReport:
    """Held-out metrics and model summary produced once per training run."""
    rmse: float
    r_squared: float
    cv_rmse: float
    selected_hyperparameters: Dict[str, float]
    feature_importances: Dict[str, float]
    n_train: int
    n_test: int
    holdout: pd.DataFrame = field(repr=False, default_factory=pd.DataFrame)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rmse': self.rmse,
            'r_squared': self.r_squared,
            'cv_rmse': self.cv_rmse,
            'selected_hyperparameters': dict(self.selected_hyperparameters),
            'feature_importances': dict(self.feature_importances),
            'n_train': self.n_train,
            'n_test': self.n_test,
        }


@dataclass(frozen=True)
class ModelArtifact:
    """Fitted pipeline (encoder + coefficients) identified by its training date."""
    pipeline: Pipeline
    trained_on: date
    report: TrainingReport
    predictors: Tuple[str, ...] = tuple(PREDICTORS)
    target: str = TARGET


def build_pipeline(settings: TrainingSettings) -> Pipeline:
    """Feature encoding + elastic-net regression pipeline (unfitted)."""
    features = ColumnTransformer([
        ('categorical', categorical_encoder(settings.unseen_label), CATEGORICAL_FEATURES),
        ('numeric', StandardScaler(), NUMERIC_FEATURES),
    ])
    return Pipeline([
        ('features', features),
        ('zero_variance', VarianceThreshold(threshold=0.0)),
        ('regressor', ElasticNet(max_iter=settings.max_iter, random_state=settings.random_seed)),
    ])


def stratified_split(frame: pd.DataFrame, train_fraction: float, seed: int) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Seeded train/test split stratified by brand.

    Brands with a single listing share one pooled stratum. When the strata
    still cannot be split the split is made without stratification.
    """
    strata = frame['brand'].astype(str)
    counts = strata.map(strata.value_counts())
    strata = strata.where(counts >= 2, '__pooled__')

    try:
        train, test = train_test_split(frame, train_size=train_fraction, random_state=seed, stratify=strata)
    except ValueError as e:
        logger.warning(f"Brand-stratified split not possible ({e}); using an unstratified split")
        train, test = train_test_split(frame, train_size=train_fraction, random_state=seed)

    return train.reset_index(drop=True), test.reset_index(drop=True)


def _feature_importances(pipeline: Pipeline) -> Dict[str, float]:
    names = pipeline[:-1].get_feature_names_out()
    coefficients = pipeline.named_steps['regressor'].coef_
    ranked = sorted(zip(names, coefficients), key=lambda item: abs(item[1]), reverse=True)
    return {str(name): float(coef) for name, coef in ranked}


def train_model(historical: pd.DataFrame, trained_on: date,
                settings: Optional[TrainingSettings] = None) -> ModelArtifact:
    """
    Train the price model on historical listings.

    Args:
        historical: Cleaned listings collected before `trained_on`
        trained_on: Run date the artifact is identified by
        settings: Split and search settings (defaults to configuration)

    Returns:
        ModelArtifact: fitted pipeline plus its TrainingReport

    Raises:
        InsufficientDataFailure: If there are fewer rows than CV folds
        ModelFitFailure: If the data cannot be fit (e.g. no feature varies)
    """
    settings = settings or TrainingSettings.from_config()

    if len(historical) < settings.cv_folds:
        raise InsufficientDataFailure(len(historical), settings.cv_folds)

    train, test = stratified_split(historical, settings.train_fraction, settings.random_seed)
    if len(train) < settings.cv_folds:
        raise InsufficientDataFailure(len(train), settings.cv_folds, partition='training partition')

    logger.info(f"Training on {len(train)} listings, holding out {len(test)} "
                f"({historical['brand'].nunique()} brands)")

    X_train, y_train = train[PREDICTORS], train[TARGET].astype(float)
    X_test, y_test = test[PREDICTORS], test[TARGET].astype(float)

    param_grid = {
        'regressor__alpha': settings.alpha_grid(),
        'regressor__l1_ratio': list(settings.l1_ratios),
    }
    search = GridSearchCV(
        build_pipeline(settings),
        param_grid=param_grid,
        cv=KFold(n_splits=settings.cv_folds, shuffle=True, random_state=settings.random_seed),
        scoring='neg_root_mean_squared_error',
        n_jobs=settings.n_jobs,
        refit=True,
        error_score='raise',
    )

    grid_size = len(param_grid['regressor__alpha']) * len(param_grid['regressor__l1_ratio'])
    logger.info(f"Searching {grid_size} hyperparameter combinations with {settings.cv_folds}-fold CV")

    try:
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", category=ConvergenceWarning)
            search.fit(X_train, y_train)
    except ValueError as e:
        raise ModelFitFailure(str(e)) from e

    best_pipeline = search.best_estimator_
    selected = {
        'alpha': float(search.best_params_['regressor__alpha']),
        'l1_ratio': float(search.best_params_['regressor__l1_ratio']),
    }

    y_pred = best_pipeline.predict(X_test)
    rmse = float(np.sqrt(mean_squared_error(y_test, y_pred)))
    r2 = float(r2_score(y_test, y_pred)) if len(y_test) >= 2 else float('nan')

    report = TrainingReport(
        rmse=rmse,
        r_squared=r2,
        cv_rmse=float(-search.best_score_),
        selected_hyperparameters=selected,
        feature_importances=_feature_importances(best_pipeline),
        n_train=len(train),
        n_test=len(test),
        holdout=pd.DataFrame({
            'brand': test['brand'].to_numpy(),
            'price': y_test.to_numpy(),
            'predicted_price': y_pred,
        }),
    )

    logger.info(f"Model trained: alpha={selected['alpha']:.2e}, l1_ratio={selected['l1_ratio']}")
    logger.info(f"  - CV RMSE: €{report.cv_rmse:,.0f}")
    logger.info(f"  - Test RMSE: €{rmse:,.0f}")
    logger.info(f"  - Test R²: {r2:.4f}")

    return ModelArtifact(pipeline=best_pipeline, trained_on=trained_on, report=report)


def artifact_path(model_dir: Union[str, Path], trained_on: date) -> Path:
    """First free artifact path for `trained_on`; existing artifacts are never reused."""
    model_dir = Path(model_dir)
    stem = f"model_{trained_on.isoformat()}"
    candidate = model_dir / f"{stem}.pkl"
    suffix = 2
    while candidate.exists():
        candidate = model_dir / f"{stem}_{suffix}.pkl"
        suffix += 1
    return candidate


def save_artifact(artifact: ModelArtifact, model_dir: Optional[Union[str, Path]] = None) -> Path:
    """
    Persist an artifact to a new dated file.

    Returns:
        Path: File written

    Raises:
        StoreIOFailure: If the file cannot be written
    """
    model_dir = Path(model_dir) if model_dir is not None else MODEL_DIR
    try:
        model_dir.mkdir(parents=True, exist_ok=True)
        path = artifact_path(model_dir, artifact.trained_on)
        with open(path, 'xb') as f:
            pickle.dump(artifact, f)
    except OSError as e:
        raise StoreIOFailure(model_dir, f"cannot write model artifact: {e}") from e

    logger.info(f"Model artifact saved to {path}")
    return path


def load_artifact(path: Union[str, Path]) -> ModelArtifact:
    """Load a persisted artifact."""
    try:
        with open(path, 'rb') as f:
            artifact = pickle.load(f)
    except (OSError, pickle.UnpicklingError, EOFError, AttributeError) as e:
        raise StoreIOFailure(path, f"cannot read model artifact: {e}") from e

    if not isinstance(artifact, ModelArtifact):
        raise StoreIOFailure(path, f"not a model artifact ({type(artifact).__name__})")
    return artifact


def list_artifacts(model_dir: Optional[Union[str, Path]] = None) -> List[Path]:
    """Artifact files in training order (date, then save sequence)."""
    model_dir = Path(model_dir) if model_dir is not None else MODEL_DIR
    if not model_dir.exists():
        return []

    dated = []
    for path in model_dir.glob('model_*.pkl'):
        match = ARTIFACT_PATTERN.match(path.name)
        if match:
            trained_on = datetime.strptime(match.group(1), '%Y-%m-%d').date()
            dated.append((trained_on, int(match.group(2) or 1), path))
    return [path for _, _, path in sorted(dated)]


def latest_artifact_path(model_dir: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Newest artifact file, or None when nothing has been trained yet."""
    artifacts = list_artifacts(model_dir)
    return artifacts[-1] if artifacts else None
