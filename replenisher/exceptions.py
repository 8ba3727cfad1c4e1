# replenisher/exceptions.py
"""
Custom exceptions for Replenisher.

Centralized location for all domain exception classes so services,
workers and routers agree on one error vocabulary.
"""

from typing import Optional


class ReplenisherError(Exception):
    """Base exception for all Replenisher-specific errors."""

    pass


class UserNotFoundError(ReplenisherError):
    """No customer record exists for the calling user."""

    def __init__(self, user_id: int):
        super().__init__(f"Customer not found for user {user_id}")
        self.user_id = user_id


class ReplenishmentNotFoundError(ReplenisherError):
    """Replenishment does not exist or does not belong to the caller."""

    def __init__(self, replenishment_id: int):
        super().__init__(f"Replenishment {replenishment_id} not found")
        self.replenishment_id = replenishment_id


class InvalidStateTransitionError(ReplenisherError):
    """Operation is not allowed from the replenishment's current status."""

    pass


class SchedulingError(ReplenisherError):
    """The job scheduler engine did not produce a live schedule."""

    pass


class ScheduleExhaustedError(SchedulingError):
    """The recurrence has no occurrence left before its end date."""

    pass


class SnapshotMissingError(ReplenisherError):
    """A replenishment references an order snapshot that cannot be read."""

    def __init__(self, replenishment_id: int, key: Optional[str]):
        super().__init__(
            f"Order snapshot {key!r} missing for replenishment {replenishment_id}"
        )
        self.replenishment_id = replenishment_id
        self.key = key


class SnapshotStoreError(ReplenisherError):
    """The snapshot store could not be reached or returned bad data."""

    pass


class ConcurrentModificationError(ReplenisherError):
    """The row changed between read and write."""

    def __init__(self, replenishment_id: int, expected_version: int):
        super().__init__(
            f"Replenishment {replenishment_id} was modified concurrently "
            f"(expected version {expected_version})"
        )
        self.replenishment_id = replenishment_id
        self.expected_version = expected_version


class PaymentError(ReplenisherError):
    """The payment-and-order collaborator rejected or failed a charge."""

    pass


class NotificationError(ReplenisherError):
    """A customer notice could not be delivered."""

    pass


class OrphanedJobError(ReplenisherError):
    """An occurrence fired for a replenishment that no longer exists."""

    pass