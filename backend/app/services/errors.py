class BookingError(ValueError):
    """Base class for user-visible booking errors."""


class NotAuthenticatedError(BookingError):
    pass


class NotFoundError(BookingError):
    pass


class ServiceNotFoundError(NotFoundError):
    pass


class BookingNotFoundError(NotFoundError):
    pass


class InvalidAmountError(BookingError):
    pass


class InvalidRatingError(BookingError):
    pass


class InvalidStateError(BookingError):
    pass


class InvalidSelectionError(BookingError):
    pass


class ForbiddenError(BookingError):
    pass


class ConflictError(BookingError):
    pass


class StoreUnavailableError(BookingError):
    """The backing store could not be reached or failed mid-call."""


class StoreTimeoutError(StoreUnavailableError):
    pass
