from pathlib import Path

from mealweek.utilities.config import DATA_DIR as _CONFIGURED_DATA_DIR, LOCAL_STORE_FILE as _LOCAL_STORE_NAME

# Centralized paths for data files (single source of truth)
DATA_DIR = Path(_CONFIGURED_DATA_DIR).resolve()
LOCAL_STORE_FILE = DATA_DIR / _LOCAL_STORE_NAME

__all__ = ['DATA_DIR', 'LOCAL_STORE_FILE']
