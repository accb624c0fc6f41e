"""
Shared fixtures: synthetic listings, result-page markup and a fake page source.
"""
from datetime import date, timedelta
from html import escape

import numpy as np
import pandas as pd
import pytest

from ev_tracker.models import RawListing, STORE_COLUMN_MAP, STORE_COLUMNS
from ev_tracker.services.page_source import PageSource
from ev_tracker.services.trainer import TrainingSettings

AS_OF = date(2024, 6, 15)

BRANDS = [
    ("Tesla", ["Model 3", "Model S"]),
    ("Nissan", ["Leaf"]),
    ("Renault", ["Zoe"]),
    ("Hyundai", ["Kona", "Ioniq"]),
    ("Kia", ["e-Niro", "Soul EV"]),
    ("Volkswagen", ["e-Golf", "ID.3"]),
    ("BMW", ["i3"]),
    ("Audi", ["e-tron"]),
    ("Jaguar", ["I-Pace"]),
    ("Peugeot", ["e-208"]),
    ("Opel", ["Corsa-e"]),
    ("Mercedes-Benz", ["EQC"]),
]


def dutch_number(value: int) -> str:
    return f"{value:,}".replace(",", ".")


def make_raw(access_date=None, **overrides) -> RawListing:
    """A valid listing as scraped; override any field."""
    fields = dict(
        title_text="Tesla Model 3",
        version_text="Long Range AWD",
        price_text="€ 39.950,-",
        mileage_text="25.000 km",
        registration_text="03/2021",
        offer_type="Occasion",
        transmission="Automatisch",
        previous_owners_text="1",
        power_text="258 kW (351 PK)",
    )
    fields.update(overrides)
    return RawListing(access_date=access_date, **fields)


def synthetic_listings(n, as_of=AS_OF, seed=0, start=0):
    """
    Plausible EV listings whose price depends on power, mileage, age and brand.

    Every listing has a distinct version text, so none are exact duplicates.
    """
    rng = np.random.RandomState(seed)
    listings = []
    for i in range(start, start + n):
        brand_index = i % len(BRANDS)
        brand, models = BRANDS[brand_index]
        model = models[rng.randint(len(models))]
        months_old = int(rng.randint(3, 80))
        total = as_of.year * 12 + (as_of.month - 1) - months_old
        year, month = total // 12, total % 12 + 1
        mileage = int(rng.randint(1000, 150000))
        kw = int(rng.choice([80, 100, 150, 200, 300]))
        price = 20000 + 60 * kw - 0.08 * mileage - 100 * months_old + 800 * brand_index
        price = max(int(price + rng.normal(0, 1500)), 7000)
        listings.append(make_raw(
            title_text=f"{brand} {model}",
            version_text=f"{model} uitvoering {i}",
            price_text=f"€ {dutch_number(price)},-",
            mileage_text=f"{dutch_number(mileage)} km",
            registration_text=f"{month:02d}/{year}",
            offer_type=str(rng.choice(["Occasion", "Demo"])),
            transmission="Automatisch",
            previous_owners_text=str(rng.choice(["- (Vorige eigenaars)", "1", "2"])),
            power_text=f"{kw} kW ({round(kw * 1.36)} PK)",
        ))
    return listings


def store_frame(listings, access_dates) -> pd.DataFrame:
    """Store rows for `listings`, each stamped with its own access date."""
    records = []
    for listing, access_date in zip(listings, access_dates):
        record = {column: getattr(listing, name) for name, column in STORE_COLUMN_MAP.items()}
        record['access_date'] = access_date.isoformat()
        records.append(record)
    return pd.DataFrame.from_records(records, columns=STORE_COLUMNS)


def history_frame(n, as_of=AS_OF, seed=0) -> pd.DataFrame:
    """n store rows spread over the 30 days before `as_of`."""
    listings = synthetic_listings(n, as_of, seed)
    access_dates = [as_of - timedelta(days=1 + i % 30) for i in range(n)]
    return store_frame(listings, access_dates)


def make_page_html(listings) -> str:
    """Result-page markup with one article per listing."""
    articles = []
    for listing in listings:
        articles.append(f"""
        <article class="cldt-summary-full-item">
          <h2 class="cldt-summary-makemodel">{escape(listing.title_text)}</h2>
          <h2 class="cldt-summary-version">{escape(listing.version_text)}</h2>
          <span class="cldt-price">{escape(listing.price_text)}</span>
          <ul>
            <li data-type="mileage">{escape(listing.mileage_text)}</li>
            <li data-type="first-registration">{escape(listing.registration_text)}</li>
            <li data-type="offer-type">{escape(listing.offer_type)}</li>
            <li data-type="transmission-type">{escape(listing.transmission)}</li>
            <li data-type="previous-owners">{escape(listing.previous_owners_text)}</li>
            <li data-type="power">{escape(listing.power_text)}</li>
          </ul>
        </article>""")
    return f"<html><body><div class='cl-list'>{''.join(articles)}</div></body></html>"


class FakePageSource(PageSource):
    """Serves canned markup; an Exception value (or a missing page) raises."""

    def __init__(self, pages):
        self.pages = dict(pages)
        self.requested = []

    def fetch(self, page_index: int) -> str:
        self.requested.append(page_index)
        page = self.pages.get(page_index)
        if page is None:
            raise ConnectionError(f"page {page_index} unavailable")
        if isinstance(page, Exception):
            raise page
        return page


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def fast_settings():
    """Small grid so training tests stay quick."""
    return TrainingSettings(
        train_fraction=0.75,
        cv_folds=5,
        random_seed=42,
        alpha_min=1e-4,
        alpha_max=1e-1,
        alpha_count=3,
        l1_ratios=(0.2, 1.0),
        max_iter=5000,
        n_jobs=1,
    )


@pytest.fixture
def cleaned_history(as_of):
    from ev_tracker.services.cleaner import clean_listings
    return clean_listings(history_frame(240, as_of), as_of).frame
