"""Exception taxonomy for the ROI engine."""

from typing import Any, Optional


class RoiEngineError(Exception):
    """
    Base engine exception with structured details.

    ``terminal`` tells the batch job whether the portfolio should be retried
    on the next run (False) or left alone until new input arrives (True).
    """

    error_code: str = "ROI_ENGINE_ERROR"
    message: str = "ROI engine failure"
    terminal: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "terminal": self.terminal,
            **({"details": self.details} if self.details else {}),
        }


class PriceSupplierError(RoiEngineError):
    """The external supplier returned no usable prices for a symbol."""

    error_code = "PRICE_SUPPLIER_ERROR"
    message = "Price supplier returned no data"


class UnresolvedPrimaryError(RoiEngineError):
    """No allocation snapshot or mappable primary signal exists for a portfolio."""

    error_code = "UNRESOLVED_PRIMARY"
    message = "No resolvable primary asset or allocation"
    terminal = True


class EmptyNavError(RoiEngineError):
    """Prices were ingested but no day had a resolvable price."""

    error_code = "EMPTY_NAV"
    message = "NAV series is empty"


class LockContentionError(RoiEngineError):
    """Another job run holds a valid lock."""

    error_code = "LOCK_CONTENTION"
    message = "Job lock is held by another run"


class PersistenceError(RoiEngineError):
    """A database write failed; the portfolio transaction was rolled back."""

    error_code = "PERSISTENCE_ERROR"
    message = "Failed to persist ROI results"
