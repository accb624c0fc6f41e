"""
Tests for the split, the grid-searched elastic net and artifact persistence.
"""
import math
import pickle
from datetime import timedelta

import numpy as np
import pandas as pd
import pytest

from conftest import make_raw, store_frame
from ev_tracker.errors import InsufficientDataFailure, ModelFitFailure, StoreIOFailure
from ev_tracker.services.cleaner import clean_listings
from ev_tracker.services.trainer import (
    ModelArtifact, PREDICTORS, latest_artifact_path, list_artifacts, load_artifact,
    save_artifact, stratified_split, train_model
)


@pytest.fixture
def artifact(cleaned_history, as_of, fast_settings):
    return train_model(cleaned_history, as_of, fast_settings)


class TestStratifiedSplit:

    def test_split_is_deterministic(self, cleaned_history):
        first_train, first_test = stratified_split(cleaned_history, 0.75, 42)
        second_train, second_test = stratified_split(cleaned_history, 0.75, 42)

        assert first_train.equals(second_train)
        assert first_test.equals(second_test)

    def test_split_sizes_and_brand_coverage(self, cleaned_history):
        train, test = stratified_split(cleaned_history, 0.75, 42)

        assert len(train) + len(test) == len(cleaned_history)
        assert len(train) == 180
        assert set(test['brand']) <= set(train['brand'])

    def test_single_listing_brand_does_not_break_split(self, cleaned_history, as_of):
        odd = clean_listings(store_frame([make_raw(title_text="Lucid Air")], [as_of - timedelta(days=1)]), as_of).frame
        frame = pd.concat([cleaned_history.iloc[:40], odd], ignore_index=True)
        train, test = stratified_split(frame, 0.75, 42)

        assert len(train) + len(test) == 41


class TestTrainModel:

    def test_too_few_rows_raise(self, cleaned_history, as_of, fast_settings):
        with pytest.raises(InsufficientDataFailure) as excinfo:
            train_model(cleaned_history.iloc[:4], as_of, fast_settings)
        assert excinfo.value.stage == "training"

    def test_small_training_partition_raises(self, cleaned_history, as_of, fast_settings):
        # 6 rows pass the row check, but the 75% partition holds only 4
        with pytest.raises(InsufficientDataFailure) as excinfo:
            train_model(cleaned_history.iloc[:6], as_of, fast_settings)
        assert excinfo.value.details['partition'] == 'training partition'
        assert excinfo.value.row_count == 4

    def test_constant_features_fail_in_training_stage(self, as_of, fast_settings):
        listings = [make_raw(version_text=f"Long Range {i}") for i in range(12)]
        history = clean_listings(store_frame(listings, [as_of - timedelta(days=1)] * 12), as_of).frame

        with pytest.raises(ModelFitFailure) as excinfo:
            train_model(history, as_of, fast_settings)
        assert excinfo.value.stage == "training"

    def test_empty_history_raises(self, cleaned_history, as_of, fast_settings):
        with pytest.raises(InsufficientDataFailure):
            train_model(cleaned_history.iloc[:0], as_of, fast_settings)

    def test_report_is_complete(self, artifact, fast_settings):
        report = artifact.report

        assert report.n_train == 180
        assert report.n_test == 60
        assert report.rmse > 0
        assert math.isfinite(report.r_squared)
        assert report.r_squared > 0.5
        assert report.selected_hyperparameters['l1_ratio'] in fast_settings.l1_ratios
        assert np.isclose(fast_settings.alpha_grid(), report.selected_hyperparameters['alpha']).any()
        assert len(report.holdout) == 60

    def test_feature_importances_are_sorted(self, artifact):
        magnitudes = [abs(v) for v in artifact.report.feature_importances.values()]
        assert magnitudes == sorted(magnitudes, reverse=True)

    def test_training_is_reproducible(self, cleaned_history, as_of, fast_settings, artifact):
        again = train_model(cleaned_history, as_of, fast_settings)

        assert again.report.selected_hyperparameters == artifact.report.selected_hyperparameters
        np.testing.assert_allclose(again.pipeline.named_steps['regressor'].coef_,
                                   artifact.pipeline.named_steps['regressor'].coef_)

    def test_unseen_brand_and_model_still_score(self, artifact, as_of):
        unseen = clean_listings(store_frame([make_raw(title_text="Lucid Air Dream")], [as_of]), as_of).frame
        predicted = artifact.pipeline.predict(unseen[PREDICTORS])

        assert np.isfinite(predicted).all()


class TestArtifacts:

    def test_same_day_saves_never_overwrite(self, artifact, tmp_path, as_of):
        first = save_artifact(artifact, tmp_path)
        second = save_artifact(artifact, tmp_path)

        assert first.name == f"model_{as_of.isoformat()}.pkl"
        assert second.name == f"model_{as_of.isoformat()}_2.pkl"
        assert list_artifacts(tmp_path) == [first, second]
        assert latest_artifact_path(tmp_path) == second

    def test_loaded_artifact_predicts_identically(self, artifact, cleaned_history, tmp_path):
        loaded = load_artifact(save_artifact(artifact, tmp_path))

        assert isinstance(loaded, ModelArtifact)
        assert loaded.trained_on == artifact.trained_on
        np.testing.assert_allclose(loaded.pipeline.predict(cleaned_history[PREDICTORS]),
                                   artifact.pipeline.predict(cleaned_history[PREDICTORS]))

    def test_latest_orders_by_date(self, artifact, tmp_path, as_of):
        older = ModelArtifact(pipeline=artifact.pipeline, trained_on=as_of - timedelta(days=1), report=artifact.report)
        save_artifact(artifact, tmp_path)
        save_artifact(older, tmp_path)

        assert latest_artifact_path(tmp_path).name == f"model_{as_of.isoformat()}.pkl"

    def test_empty_model_dir(self, tmp_path):
        assert list_artifacts(tmp_path / "missing") == []
        assert latest_artifact_path(tmp_path / "missing") is None

    def test_foreign_pickle_is_rejected(self, tmp_path):
        path = tmp_path / "model_2024-01-01.pkl"
        path.write_bytes(pickle.dumps({'not': 'an artifact'}))

        with pytest.raises(StoreIOFailure):
            load_artifact(path)
