#!/usr/bin/env python3
"""
Historical Store
Append-and-deduplicate CSV history of every listing ever collected.

Two rows are the same listing only when every column matches, so a car seen
again on a later day is kept as a new row for that day.
"""

import os
import logging
import tempfile
from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Union

import pandas as pd

from ev_tracker.config.config import STORE_FILE
from ev_tracker.errors import StoreIOFailure
from ev_tracker.models import RawListing, STORE_COLUMN_MAP, STORE_COLUMNS

logger = logging.getLogger(__name__)


def empty_store() -> pd.DataFrame:
    """An empty store frame with the canonical columns."""
    return pd.DataFrame({col: pd.Series(dtype=str) for col in STORE_COLUMNS})


def listings_to_frame(listings: Iterable[RawListing], access_date: date) -> pd.DataFrame:
    """
    Convert freshly extracted listings to store rows stamped with `access_date`.

    Args:
        listings: RawListing records from this run
        access_date: Date the listings were collected

    Returns:
        pd.DataFrame: Rows in store column layout
    """
    records = []
    for listing in listings:
        record = {STORE_COLUMN_MAP[name]: getattr(listing, name) for name in STORE_COLUMN_MAP}
        record['access_date'] = access_date.isoformat()
        records.append(record)

    if not records:
        return empty_store()
    return pd.DataFrame.from_records(records, columns=STORE_COLUMNS).astype(str)


def merge(existing: pd.DataFrame, new_rows: pd.DataFrame) -> pd.DataFrame:
    """
    Set union of two store frames on the full-row key.

    Keeps the first occurrence of every row so existing history stays in place
    and new rows follow in collection order.
    """
    combined = pd.concat([existing[STORE_COLUMNS], new_rows[STORE_COLUMNS]], ignore_index=True)
    return combined.drop_duplicates(keep='first').reset_index(drop=True)


class HistoricalStore:
    """CSV-backed history; read at run start, rewritten whole at run end."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else STORE_FILE

    def load(self) -> pd.DataFrame:
        """
        Load the persisted history.

        Returns:
            pd.DataFrame: Store rows (empty if no file exists yet)

        Raises:
            StoreIOFailure: If the file exists but cannot be read or is malformed
        """
        if not self.path.exists():
            logger.info(f"No history at {self.path} - starting an empty store")
            return empty_store()

        try:
            frame = pd.read_csv(self.path, dtype=str, keep_default_na=False)
        except pd.errors.EmptyDataError:
            logger.warning(f"History file {self.path} is empty - starting an empty store")
            return empty_store()
        except (OSError, pd.errors.ParserError, UnicodeDecodeError) as e:
            raise StoreIOFailure(self.path, f"unreadable: {e}") from e

        missing = [col for col in STORE_COLUMNS if col not in frame.columns]
        if missing:
            raise StoreIOFailure(self.path, f"missing columns {missing}")

        logger.info(f"Loaded {len(frame)} historical listings from {self.path}")
        return frame[STORE_COLUMNS].reset_index(drop=True)

    def persist(self, frame: pd.DataFrame):
        """
        Rewrite the history file with `frame`.

        Raises:
            StoreIOFailure: If the file cannot be written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix='.history-', suffix='.csv', dir=str(self.path.parent))
            try:
                with os.fdopen(fd, 'w', newline='', encoding='utf-8') as f:
                    frame[STORE_COLUMNS].to_csv(f, index=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.remove(tmp_name)
                raise
        except OSError as e:
            raise StoreIOFailure(self.path, f"unwritable: {e}") from e

        logger.info(f"Persisted {len(frame)} listings to {self.path}")
