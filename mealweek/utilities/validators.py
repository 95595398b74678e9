"""
Input validation schemas using Pydantic for API request bodies.
"""
from typing import Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from mealweek.utilities.constants import DATA_MODE_LOCAL, DATA_MODE_REMOTE, EDITABLE_COLLECTIONS, SETTINGS_KEYS

# Collections whose value is an object rather than a list
_MAPPING_COLLECTIONS = {"recipes", "clientPortalData", "weeklyTasks", "bagReminders", "adminSettings"}


class DataModeInput(BaseModel):
    """Schema for switching between local-only and remote data."""
    mode: str

    @field_validator('mode')
    @classmethod
    def validate_mode(cls, v):
        v = v.strip().lower()
        if v not in (DATA_MODE_LOCAL, DATA_MODE_REMOTE):
            raise ValueError(f"mode must be '{DATA_MODE_LOCAL}' or '{DATA_MODE_REMOTE}'")
        return v


class CollectionUpdateInput(BaseModel):
    """Schema for replacing one top-level collection of the state tree."""
    collection: str
    value: Any = None

    @field_validator('collection')
    @classmethod
    def validate_collection(cls, v):
        if v not in EDITABLE_COLLECTIONS:
            raise ValueError(f"'{v}' is not an editable collection")
        return v

    @field_validator('value')
    @classmethod
    def validate_shape(cls, v, info: ValidationInfo):
        collection = info.data.get('collection')
        if collection is None:
            return v
        if v is None:
            if collection in SETTINGS_KEYS:
                return v
            raise ValueError(f"{collection} cannot be null")
        expected = dict if collection in _MAPPING_COLLECTIONS else list
        if collection == "units":
            return v
        if not isinstance(v, expected):
            raise ValueError(f"{collection} must be a{'n object' if expected is dict else ' list'}")
        if collection in ("clients", "menuItems", "drivers", "masterIngredients"):
            if not all(isinstance(item, dict) for item in v):
                raise ValueError(f"every {collection} entry must be an object")
        return v


class MigrationRunInput(BaseModel):
    """Schema for starting a migration."""
    use_current_state: bool = Field(default=False, description="Migrate the in-memory state instead of the stored local payload")
