"""
Domain Exceptions

Every failure that can reach a station or kitchen display is one of these.
Store adapters raise StoreError; the core components translate it into the
operation-specific error so callers can tell an aborted add from a failed
commit or a failed hand-off.
"""

from typing import Optional


class StallError(Exception):
    """Base class for all order queue errors."""

    error_code = "stall_error"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


# =============================================================================
# STORE LAYER
# =============================================================================

class StoreError(StallError):
    """The shared store could not complete a call."""

    error_code = "store_error"


class TicketConflict(StoreError):
    """An insert collided with an existing (item, ticket_number) pair."""

    error_code = "ticket_conflict"


# =============================================================================
# OPERATION BOUNDARIES
# =============================================================================

class UnknownItem(StallError):
    """Item type is not on the fixed catalog."""

    error_code = "unknown_item"


class SequencerUnavailable(StallError):
    """Ticket reservation failed; the add must be aborted."""

    error_code = "sequencer_unavailable"


class EmptyBasket(StallError):
    """Confirm was requested on a basket with no lines."""

    error_code = "empty_basket"


class ConfirmInProgress(StallError):
    """A confirm from the same basket is still outstanding."""

    error_code = "confirm_in_progress"


class CommitFailed(StallError):
    """Basket lines could not be appended to the order log."""

    error_code = "commit_failed"


class ServeFailed(StallError):
    """A line could not be marked served."""

    error_code = "serve_failed"


class LineNotFound(ServeFailed):
    """No order line with the requested id exists."""

    error_code = "not_found"


class AlreadyServed(ServeFailed):
    """The line is already served; nothing was changed."""

    error_code = "already_served"


class RefreshFailed(StallError):
    """The full order log could not be fetched."""

    error_code = "refresh_failed"
