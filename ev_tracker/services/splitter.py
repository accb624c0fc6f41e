"""
Dataset Splitter
Separates earlier days' listings (training history) from today's batch (to be scored).
"""

import logging
from dataclasses import dataclass
from datetime import date

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetSplit:
    historical: pd.DataFrame
    today_batch: pd.DataFrame


def split_by_access_date(frame: pd.DataFrame, as_of: date) -> DatasetSplit:
    """
    Partition cleaned listings on their access date.

    Listings first collected on `as_of` go to today_batch only; they join the
    history on later runs.
    """
    is_today = frame['access_date'] == as_of
    split = DatasetSplit(
        historical=frame.loc[~is_today].reset_index(drop=True),
        today_batch=frame.loc[is_today].reset_index(drop=True)
    )
    logger.info(f"Split {len(frame)} listings: {len(split.historical)} historical, "
                f"{len(split.today_batch)} collected {as_of.isoformat()}")
    return split
