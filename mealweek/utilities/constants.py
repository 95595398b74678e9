from typing import Final

ISO_DATE_FORMAT: Final[str] = "%Y-%m-%d"
WEEK_ID_PATTERN: Final[str] = r"^(\d{4})-W(\d{2})$"

# Week record lifecycle
STATUS_DRAFT: Final[str] = "draft"
STATUS_LOCKED: Final[str] = "locked"

# Local payload store keys
STORAGE_KEY: Final[str] = "chefData"
DATA_MODE_KEY: Final[str] = "dataMode"
SYNC_STATUS_KEY: Final[str] = "syncStatus"

DATA_MODE_LOCAL: Final[str] = "local"
DATA_MODE_REMOTE: Final[str] = "remote"

SOURCE_LOCAL: Final[str] = "local"
SOURCE_REMOTE: Final[str] = "remote"
SOURCE_LOADING: Final[str] = "loading"

RECIPE_CATEGORIES: Final[tuple[str, ...]] = ("protein", "veg", "starch", "sauces", "breakfast", "soups")

# Flat key/value settings stored in the app_settings table
SETTINGS_KEYS: Final[tuple[str, ...]] = (
    "orderHistory",
    "weeklyTasks",
    "deliveryLog",
    "bagReminders",
    "readyForDelivery",
    "blockedDates",
    "adminSettings",
    "customTasks",
    "groceryBills",
    "units",
)

# Collections a collaborator may replace through the API
EDITABLE_COLLECTIONS: Final[tuple[str, ...]] = (
    "clients",
    "recipes",
    "masterIngredients",
    "menuItems",
    "drivers",
    "clientPortalData",
) + SETTINGS_KEYS
