"""Configuration management for the mealweek service."""
import os
from typing import Final
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)

# Application Settings
APP_HOST: Final[str] = os.getenv('APP_HOST', '0.0.0.0')
APP_PORT: Final[int] = int(os.getenv('APP_PORT', '8000'))
DEBUG: Final[bool] = os.getenv('DEBUG', 'False').lower() == 'true'
LOG_LEVEL: Final[str] = os.getenv('LOG_LEVEL', 'INFO').upper()

# Remote store
REMOTE_URL: Final[str] = os.getenv('MEALWEEK_REMOTE_URL', '')
REMOTE_KEY: Final[str] = os.getenv('MEALWEEK_REMOTE_KEY', '')
REMOTE_BACKEND: Final[str] = os.getenv('MEALWEEK_REMOTE_BACKEND', 'http').lower()
REMOTE_TIMEOUT_SECONDS: Final[float] = float(os.getenv('REMOTE_TIMEOUT_SECONDS', '10'))

# Sync timing
SYNC_DEBOUNCE_SECONDS: Final[float] = float(os.getenv('SYNC_DEBOUNCE_SECONDS', '1.5'))
CONNECTIVITY_PROBE_SECONDS: Final[float] = float(os.getenv('CONNECTIVITY_PROBE_SECONDS', '30'))

# File Paths
BASE_DIR: Final[Path] = Path(__file__).parent.parent
DATA_DIR: Final[Path] = Path(os.getenv('DATA_DIR', str(BASE_DIR / 'data')))
LOCAL_STORE_FILE: Final[str] = os.getenv('LOCAL_STORE_FILE', 'local_store.json')
BACKUP_KEEP: Final[int] = int(os.getenv('BACKUP_KEEP', '10'))
