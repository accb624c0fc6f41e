"""
Listing records shared across the pipeline.
"""

from dataclasses import dataclass, fields
from datetime import date
from typing import Dict, Optional


@dataclass(frozen=True)
class RawListing:
    """One listing exactly as read from a result page."""
    title_text: str
    version_text: str
    price_text: str
    mileage_text: str
    registration_text: str
    offer_type: str
    transmission: str
    previous_owners_text: str
    power_text: str
    access_date: Optional[date] = None


@dataclass(frozen=True)
class CleanedListing:
    """Typed, validated view of a RawListing."""
    brand: str
    model: str
    mileage_km: float
    price: float
    registration_date: date
    age_days: int
    owners_count: int
    power_kw: float
    power_pk: float
    is_target_brand: bool
    access_date: date
    offer_type: str
    transmission: str


# RawListing field -> column name in the historical store file
STORE_COLUMN_MAP: Dict[str, str] = {
    'title_text': 'car_title',
    'version_text': 'version',
    'price_text': 'price',
    'mileage_text': 'mileage',
    'registration_text': 'registration',
    'offer_type': 'offer_type',
    'transmission': 'transmission',
    'previous_owners_text': 'owners',
    'power_text': 'power',
    'access_date': 'access_date',
}

STORE_COLUMNS = list(STORE_COLUMN_MAP.values())

RAW_FIELDS = [f.name for f in fields(RawListing) if f.name != 'access_date']

CLEANED_COLUMNS = [f.name for f in fields(CleanedListing)]
