from __future__ import annotations


class RentalError(Exception):
    """Base class for rejected rental, invoice and timesheet operations."""


class InvalidPeriod(RentalError):
    pass


class DuplicateEquipment(RentalError):
    pass


class EmptySelection(RentalError):
    pass


class NotFound(RentalError):
    pass


class Unavailable(RentalError):
    def __init__(self, names: list[str]):
        self.names = list(names)
        super().__init__(f"Excavator not available: {', '.join(self.names)}")


class Conflict(RentalError):
    """Scheduling conflict on update. The operator may acknowledge and proceed."""

    def __init__(self, details: list[dict]):
        self.details = list(details)
        names = sorted({name for entry in self.details for name in entry.get("excavatorNames", [])})
        super().__init__(f"Scheduling conflict for: {', '.join(names) or 'selected excavators'}")


class StorageFailure(RentalError):
    pass


class LookupFailure(RentalError):
    """A read from the store failed; availability is unknown, not negative."""
