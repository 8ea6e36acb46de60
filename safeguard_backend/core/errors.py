"""Error taxonomy shared by the core services and translated to HTTP by the routers."""


class SafeGuardError(Exception):
    """Base class for errors raised by the core services."""


class LocationRequiredError(SafeGuardError):
    """No position fix is available, so an emergency cannot be opened."""

    def __init__(self, message: str = "Location required. Please enable location services.") -> None:
        super().__init__(message)


class NoReachableContactError(SafeGuardError):
    """The user has no emergency contact with a phone or email on file."""

    def __init__(self, message: str = "Add an emergency contact with a phone number or email first.") -> None:
        super().__init__(message)


class StoreError(SafeGuardError):
    """The record store rejected a write or could not be reached."""


class NotFoundError(SafeGuardError):
    pass


class PermissionDeniedError(SafeGuardError):
    pass


class InvalidTransitionError(SafeGuardError):
    """Incident status may only move forward: pending -> responded -> resolved."""
