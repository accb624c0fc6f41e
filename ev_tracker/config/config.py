"""
Configuration file for the EV price tracker.
Contains scraping, cleaning and training settings plus file locations.
"""
from dotenv import load_dotenv
import os
from pathlib import Path

# Load environment variables from config folder
config_path = Path(os.path.dirname(__file__)) / '.env'
load_dotenv(dotenv_path=config_path)

# File locations (all relative paths resolve against the working directory)
DATA_DIR = Path(os.getenv('EV_DATA_DIR', 'data'))
STORE_FILE = Path(os.getenv('EV_STORE_FILE', str(DATA_DIR / 'listings_history.csv')))
MODEL_DIR = Path(os.getenv('EV_MODEL_DIR', str(DATA_DIR / 'models')))
REPORT_DIR = Path(os.getenv('EV_REPORT_DIR', 'reports'))
LOG_DIR = Path(os.getenv('EV_LOG_DIR', 'logs'))

# Classifieds site search configuration
SCRAPING_CONFIG = {
    'base_url': os.getenv('EV_BASE_URL', 'https://www.autoscout24.nl/lst'),
    'search_params': {
        'fuel': 'E',            # Electric only
        'ustate': 'U',          # Used vehicles
        'sort': 'age',
        'desc': '1',
        'atype': 'C',
    },
    'page_count': int(os.getenv('EV_PAGE_COUNT', '20')),  # Pages fetched per run
    'request_timeout': float(os.getenv('EV_REQUEST_TIMEOUT', '20')),  # Seconds per page request
    'max_workers': int(os.getenv('EV_MAX_WORKERS', '4')),  # 1 = sequential fetching
    'max_retries': int(os.getenv('EV_MAX_RETRIES', '3')),
    'backoff_factor': float(os.getenv('EV_BACKOFF_FACTOR', '0.5')),
    'user_agent': os.getenv(
        'EV_USER_AGENT',
        'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36'
    ),
}

# Where each listing attribute lives on a result page: (css selector, html attribute or None for text)
LISTING_SELECTORS = {
    'title_text': ('h2.cldt-summary-makemodel', None),
    'version_text': ('h2.cldt-summary-version', None),
    'price_text': ('span.cldt-price', None),
    'mileage_text': ("li[data-type='mileage']", None),
    'registration_text': ("li[data-type='first-registration']", None),
    'offer_type': ("li[data-type='offer-type']", None),
    'transmission': ("li[data-type='transmission-type']", None),
    'previous_owners_text': ("li[data-type='previous-owners']", None),
    'power_text': ("li[data-type='power']", None),
}

# Feature cleaning rules
CLEANING_CONFIG = {
    'target_brand': os.getenv('EV_TARGET_BRAND', 'Tesla'),
    'min_price': float(os.getenv('EV_MIN_PRICE', '5000')),  # Listings at or below are dropped
    'max_age_days': int(os.getenv('EV_MAX_AGE_DAYS', str(8 * 365))),  # Listings at or above are dropped
    'price_ceiling_ratio': 1.3,  # Embedded "incl. extras" price must be below listed price x ratio
}

# Model training configuration
TRAINING_CONFIG = {
    'train_fraction': float(os.getenv('EV_TRAIN_FRACTION', '0.75')),
    'cv_folds': int(os.getenv('EV_CV_FOLDS', '10')),
    'random_seed': int(os.getenv('EV_RANDOM_SEED', '42')),
    'alpha_min': 1e-6,
    'alpha_max': 1e-1,
    'alpha_count': 20,
    'l1_ratios': [0.01, 0.05, 0.2, 0.4, 0.6, 0.8, 1.0],
    'max_iter': int(os.getenv('EV_MAX_ITER', '10000')),
    'n_jobs': int(os.getenv('EV_N_JOBS', '1')),  # Parallel fold evaluation (-1 = all cores)
    'unseen_label': 'new',
}


def get_scraping_config():
    """Get the page fetching configuration."""
    return SCRAPING_CONFIG.copy()


def get_cleaning_config():
    """Get the feature cleaning configuration."""
    return CLEANING_CONFIG.copy()


def get_training_config():
    """Get the model training configuration."""
    config = TRAINING_CONFIG.copy()
    config['l1_ratios'] = list(TRAINING_CONFIG['l1_ratios'])
    return config
