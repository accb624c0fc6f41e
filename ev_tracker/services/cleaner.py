#!/usr/bin/env python3
"""
Feature Cleaner
Turns raw store rows into typed, model-ready listings.

Numbers on the source site use a comma as decimal mark and dots as thousands
separators ("12.345 km", "€ 34.950,-"). A dash in place of a value means
"not shown" for mileage and previous owners, and is read as zero.
"""

import re
import logging
from collections import Counter
from dataclasses import dataclass, asdict, field
from datetime import date
from typing import Optional, Tuple

import pandas as pd

from ev_tracker.config.config import CLEANING_CONFIG
from ev_tracker.errors import ParseFailure, InvariantViolation
from ev_tracker.models import CleanedListing, RawListing, STORE_COLUMN_MAP, CLEANED_COLUMNS

logger = logging.getLogger(__name__)

NUMBER_PATTERN = re.compile(r'\d+(?:,\d+)?')
EMBEDDED_PRICE_PATTERN = re.compile(r'(?<!\d)\d{5}(?!\d)')
REGISTRATION_PATTERN = re.compile(r'(\d{1,2})\s*/\s*(\d{4})')
POWER_DELIMITER = re.compile(r'kw', re.IGNORECASE)


@dataclass(frozen=True)
class CleaningResult:
    """Cleaned working dataset plus how many rows were dropped and why."""
    frame: pd.DataFrame
    dropped: Counter = field(default_factory=Counter)

    @property
    def dropped_total(self) -> int:
        return sum(self.dropped.values())


def _is_not_shown(text: str) -> bool:
    return text.strip().startswith('-')


def parse_number(text: str, field_name: str = 'number') -> float:
    """
    Parse the first number in `text` using comma-as-decimal convention.

    Args:
        text: Raw text such as "€ 34.950,-" or "12.345 km"
        field_name: Field name reported on failure

    Returns:
        float: Parsed value

    Raises:
        ParseFailure: If no number is present
    """
    if text is None:
        raise ParseFailure(field_name, text)
    match = NUMBER_PATTERN.search(str(text).replace('.', ''))
    if not match:
        raise ParseFailure(field_name, text)
    return float(match.group(0).replace(',', '.'))


def split_title(title_text: str) -> Tuple[str, str]:
    """Split "Tesla Model 3" into brand ("Tesla") and model ("Model 3")."""
    parts = (title_text or '').split(maxsplit=1)
    if not parts:
        raise ParseFailure('title', title_text)
    return parts[0], parts[1] if len(parts) > 1 else ''


def parse_mileage(mileage_text: str) -> float:
    """Mileage in km; "- km" (no mileage shown) is 0."""
    if mileage_text is not None and _is_not_shown(mileage_text):
        return 0.0
    return parse_number(mileage_text, 'mileage')


def reconcile_price(listed_price: float, version_text: str, ceiling_ratio: Optional[float] = None) -> float:
    """
    Prefer a price embedded in the version text when it is plausibly the same car.

    Some sellers put the price including extras in the trim text. A stand-alone
    five-digit number there counts only when it is above the listed price and
    below listed price x ceiling_ratio.
    """
    ceiling_ratio = ceiling_ratio if ceiling_ratio is not None else CLEANING_CONFIG['price_ceiling_ratio']
    match = EMBEDDED_PRICE_PATTERN.search(version_text or '')
    price_incl = float(match.group(0)) if match else 0.0

    if listed_price < price_incl < ceiling_ratio * listed_price:
        return price_incl
    return listed_price


def parse_owners(owners_text: str) -> int:
    """Previous owner count; a dash (no previous owners shown) is 0."""
    if owners_text is not None and _is_not_shown(owners_text):
        return 0
    match = re.search(r'\d+', owners_text or '')
    if not match:
        raise ParseFailure('owners', owners_text)
    return int(match.group(0))


def parse_registration(registration_text: str) -> date:
    """Parse "MM/YYYY" to the first day of that month."""
    match = REGISTRATION_PATTERN.search(registration_text or '')
    if not match:
        raise ParseFailure('registration', registration_text)
    month, year = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ParseFailure('registration', registration_text)
    return date(year, month, 1)


def split_power(power_text: str) -> Tuple[float, float]:
    """Split "150 kW (204 PK)" into (150.0, 204.0)."""
    parts = POWER_DELIMITER.split(power_text or '', maxsplit=1)
    if len(parts) != 2:
        raise ParseFailure('power', power_text)
    return parse_number(parts[0], 'power'), parse_number(parts[1], 'power')


def _parse_access_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ParseFailure('access_date', value)


def clean_listing(raw: RawListing, as_of: date, target_brand: Optional[str] = None,
                  min_price: Optional[float] = None, max_age_days: Optional[int] = None) -> CleanedListing:
    """
    Clean one listing.

    Args:
        raw: Listing as scraped
        as_of: Reference date for the age calculation
        target_brand: Brand flagged with is_target_brand
        min_price: Listings priced at or below this are rejected
        max_age_days: Listings this old or older are rejected

    Returns:
        CleanedListing

    Raises:
        ParseFailure: If a required field cannot be parsed
        InvariantViolation: If the listing is outside the age/price bounds
    """
    target_brand = target_brand if target_brand is not None else CLEANING_CONFIG['target_brand']
    min_price = min_price if min_price is not None else CLEANING_CONFIG['min_price']
    max_age_days = max_age_days if max_age_days is not None else CLEANING_CONFIG['max_age_days']

    brand, model = split_title(raw.title_text)
    mileage_km = parse_mileage(raw.mileage_text)
    listed_price = parse_number(raw.price_text, 'price')
    price = reconcile_price(listed_price, raw.version_text)
    owners_count = parse_owners(raw.previous_owners_text)
    registration_date = parse_registration(raw.registration_text)
    age_days = (as_of - registration_date).days
    power_kw, power_pk = split_power(raw.power_text)
    access_date = _parse_access_date(raw.access_date)

    if not 0 < age_days < max_age_days:
        raise InvariantViolation('age_days', age_days)
    if not price > min_price:
        raise InvariantViolation('min_price', price)

    return CleanedListing(
        brand=brand,
        model=model,
        mileage_km=mileage_km,
        price=price,
        registration_date=registration_date,
        age_days=age_days,
        owners_count=owners_count,
        power_kw=power_kw,
        power_pk=power_pk,
        is_target_brand=brand.lower() == target_brand.lower(),
        access_date=access_date,
        offer_type=raw.offer_type,
        transmission=raw.transmission,
    )


def row_to_raw_listing(row: dict) -> RawListing:
    """Build a RawListing from a store row (store column names)."""
    return RawListing(**{name: row.get(column, '') for name, column in STORE_COLUMN_MAP.items()})


def clean_listings(store_frame: pd.DataFrame, as_of: date, target_brand: Optional[str] = None,
                   min_price: Optional[float] = None, max_age_days: Optional[int] = None) -> CleaningResult:
    """
    Clean every row of the historical store.

    Rows that fail to parse or break the age/price bounds are dropped and
    counted by reason; nothing else about the input is changed.

    Args:
        store_frame: Store rows (see HistoricalStore)
        as_of: Reference date for the age calculation
        target_brand: Brand flagged with is_target_brand
        min_price: Minimum price (exclusive)
        max_age_days: Maximum age in days (exclusive)

    Returns:
        CleaningResult: cleaned frame plus drop counts
    """
    cleaned = []
    dropped = Counter()

    for row in store_frame.to_dict('records'):
        try:
            listing = clean_listing(row_to_raw_listing(row), as_of, target_brand, min_price, max_age_days)
        except ParseFailure as e:
            dropped[f"parse_failure:{e.field}"] += 1
            logger.debug(e.message)
            continue
        except InvariantViolation as e:
            dropped[f"invariant:{e.rule}"] += 1
            logger.debug(e.message)
            continue
        cleaned.append(asdict(listing))

    frame = pd.DataFrame.from_records(cleaned, columns=CLEANED_COLUMNS)
    logger.info(f"Cleaned {len(frame)}/{len(store_frame)} listings "
                f"({sum(dropped.values())} dropped: {dict(dropped)})")
    return CleaningResult(frame=frame, dropped=dropped)
