"""
Error taxonomy for the parking engine.

Components raise these; the session workflows compensate and re-raise,
and the API layer maps each family onto an HTTP status.
"""


class ParkingError(Exception):
    """Base class for all engine errors."""

    pass


class ValidationError(ParkingError):
    """Input rejected before any state was touched."""

    pass


class ConflictError(ParkingError):
    """Request conflicts with current state. Never retried automatically."""

    pass


class NotFoundError(ParkingError):
    """A referenced spot, ticket, vehicle or reservation does not exist."""

    pass


class ConsistencyError(ParkingError):
    """Stored state violates an invariant. Indicates a defect; halts the operation."""

    pass


class LockTimeoutError(ParkingError):
    """A lock or store call did not complete in time."""

    pass


class InvalidPlateError(ValidationError):
    pass


class IncompatibleSpotError(ValidationError):
    pass


class NotReservedCategoryError(ValidationError):
    pass


class VehicleClassMismatchError(ValidationError):
    pass


class SpotUnavailableError(ConflictError):
    pass


class OpenTicketExistsError(ConflictError):
    pass


class ReservationConflictError(ConflictError):
    pass


class TicketAlreadyClosedError(ConflictError):
    pass


class SpotNotFoundError(NotFoundError):
    pass


class TicketNotFoundError(NotFoundError):
    pass


class VehicleNotFoundError(NotFoundError):
    pass


class NoActiveReservationError(NotFoundError):
    pass


class ReservationNotFoundError(NotFoundError):
    pass
