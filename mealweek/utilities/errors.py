"""Error types shared across the week lifecycle, sync and migration layers."""
from typing import Optional


class MealWeekError(Exception):
    """Base class for all mealweek errors."""


class InvalidDateError(MealWeekError, ValueError):
    """A date input could not be parsed as a calendar date."""

    def __init__(self, value, reason: str = ""):
        self.value = value
        msg = f"Invalid date: {value!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class InvalidWeekIdError(InvalidDateError):
    """A week identifier does not match YYYY-Www or names a week that does not exist."""

    def __init__(self, value, reason: str = ""):
        super().__init__(value, reason or "expected YYYY-Www")


class LockStateError(MealWeekError):
    """Unlock attempted on a week that is not locked."""

    def __init__(self, week_id: str, status: Optional[str]):
        self.week_id = week_id
        self.status = status
        state = status if status else "missing"
        super().__init__(f"Week {week_id} cannot be unlocked (status: {state})")


class RemoteStoreError(MealWeekError):
    """The remote store rejected a request."""

    def __init__(self, message: str, status_code: Optional[int] = None, table: Optional[str] = None):
        self.status_code = status_code
        self.table = table
        super().__init__(message)


class RemoteUnreachableError(RemoteStoreError):
    """The remote store is not configured or could not be reached."""


class MigrationRecordError(MealWeekError):
    """One record failed to upsert/insert during a migration run."""

    def __init__(self, table: str, message: str, record: Optional[dict] = None):
        self.table = table
        self.record = record
        preview = ""
        if record is not None:
            preview = " - " + repr(record)[:100]
        super().__init__(f"{table}: {message}{preview}")


class UnresolvedClientWarning(UserWarning):
    """A menu item references a client name with no matching client record."""

    def __init__(self, client_name: str, context: str = ""):
        self.client_name = client_name
        msg = f'Client "{client_name}" could not be resolved'
        if context:
            msg = f"{msg}: {context}"
        super().__init__(msg)


__all__ = [
    'MealWeekError', 'InvalidDateError', 'InvalidWeekIdError', 'LockStateError',
    'RemoteStoreError', 'RemoteUnreachableError', 'MigrationRecordError',
    'UnresolvedClientWarning',
]
