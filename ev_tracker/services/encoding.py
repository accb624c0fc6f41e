"""
Categorical preprocessing for the price model.
Categories first seen at prediction time are mapped to one explicit level
before one-hot encoding.
"""

from typing import Dict, List

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder
from sklearn.utils.validation import check_is_fitted


class NovelCategoryMapper(BaseEstimator, TransformerMixin):
    """
    Replace categories not seen during fit with `unseen_label`.

    The unseen level never occurs in training data, so the one-hot encoder
    that follows has no column for it and such listings score on the
    reference level.
    """

    def __init__(self, unseen_label: str = 'new'):
        self.unseen_label = unseen_label

    def fit(self, X, y=None):
        X = pd.DataFrame(X).astype(str)
        self.feature_names_in_ = np.asarray([str(col) for col in X.columns], dtype=object)
        self.n_features_in_ = len(self.feature_names_in_)
        self.levels_: Dict[str, List[str]] = {
            col: sorted(X[col].unique()) for col in self.feature_names_in_
        }
        return self

    def transform(self, X) -> pd.DataFrame:
        check_is_fitted(self, 'levels_')
        X = pd.DataFrame(X).astype(str)
        X.columns = [str(col) for col in X.columns]
        mapped = X[list(self.feature_names_in_)].copy()
        for col in self.feature_names_in_:
            mapped[col] = mapped[col].where(mapped[col].isin(self.levels_[col]), self.unseen_label)
        return mapped

    def get_feature_names_out(self, input_features=None):
        check_is_fitted(self, 'levels_')
        return self.feature_names_in_.copy()


def categorical_encoder(unseen_label: str = 'new') -> Pipeline:
    """Unseen-category mapping followed by dense one-hot indicators."""
    return Pipeline([
        ('novel', NovelCategoryMapper(unseen_label=unseen_label)),
        ('onehot', OneHotEncoder(handle_unknown='ignore', sparse_output=False)),
    ])
