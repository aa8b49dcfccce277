"""
Order Lifecycle Controller

Drives order lines through their lifecycle:

    staged --confirm--> pending --mark ready--> pending (armed) --hand off--> served

Arming is a local, per-kitchen-display gate that is never persisted: it
only exists so a single mis-tap cannot remove a line from the queue.
Only pending -> served ever reaches the order log.

OrderLifecycle is the operation boundary: every domain error is caught,
logged and returned as an OperationResult instead of propagating into the
caller's event loop.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from foodstall.basket import StagingBasket
from foodstall.exceptions import (
    AlreadyServed,
    CommitFailed,
    ConfirmInProgress,
    EmptyBasket,
    LineNotFound,
    ServeFailed,
    StallError,
)
from foodstall.order_log import OrderLog
from foodstall.schemas import OrderLine

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """
    Outcome of a user-triggered operation.

    Attributes:
        success: Whether the operation took effect
        error_code: Machine-readable code from the exception taxonomy
        error_message: Human-readable description for the display
        lines: Lines created by the operation, if any
    """
    success: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    lines: list[OrderLine] = field(default_factory=list)

    @classmethod
    def ok(cls, lines: Optional[list[OrderLine]] = None) -> "OperationResult":
        return cls(success=True, lines=list(lines or []))

    @classmethod
    def failed(cls, error: StallError) -> "OperationResult":
        return cls(success=False, error_code=error.error_code, error_message=error.message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "lines": [line.model_dump(mode="json") for line in self.lines],
        }


class HandOffGate:
    """Single-select arming of one line per kitchen display."""

    def __init__(self):
        self.armed_id: Optional[int] = None

    def arm(self, line_id: int) -> None:
        if self.armed_id is not None and self.armed_id != line_id:
            logger.debug(f"Disarming line #{self.armed_id} in favour of #{line_id}")
        self.armed_id = line_id

    def disarm(self) -> None:
        self.armed_id = None

    def is_armed(self, line_id: int) -> bool:
        return self.armed_id == line_id


class OrderLifecycle:

    def __init__(self, order_log: OrderLog):
        self.order_log = order_log

    async def confirm_basket(self, basket: StagingBasket) -> OperationResult:
        """Commit a basket. A failed commit leaves the basket untouched."""
        try:
            stored = await basket.confirm()
        except (EmptyBasket, ConfirmInProgress) as e:
            logger.info(f"Confirm ignored: {e}")
            return OperationResult.failed(e)
        except CommitFailed as e:
            logger.error(f"Confirm failed, basket kept for retry: {e}")
            return OperationResult.failed(e)

        return OperationResult.ok(stored)

    async def serve(self, line_id: int) -> OperationResult:
        """Mark a line served. Repeats and unknown ids change nothing."""
        try:
            await self.order_log.set_served(line_id)
        except AlreadyServed as e:
            logger.info(f"Hand-off of #{line_id} skipped: {e}")
            return OperationResult.failed(e)
        except LineNotFound as e:
            logger.warning(f"Hand-off of #{line_id} failed: {e}")
            return OperationResult.failed(e)
        except ServeFailed as e:
            logger.error(f"Hand-off of #{line_id} failed, line stays pending: {e}")
            return OperationResult.failed(e)

        return OperationResult.ok()
