"""
Custom exceptions for the loyalty ledger.

Every rejection the ledger can produce is a LedgerError subclass carrying a
stable code and the HTTP status the API layer answers with.
"""


class LedgerError(Exception):
    """Base exception for all ledger business logic errors."""

    status_code = 400

    def __init__(self, message: str, code: str = "LEDGER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(LedgerError):
    """Malformed or missing input, detected before touching storage."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class NotFoundError(LedgerError):
    """Unknown user, transaction or promotion reference."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class UserNotFoundError(NotFoundError):
    """User not found."""

    def __init__(self, identifier=None):
        super().__init__("User", identifier)


class TransactionNotFoundError(NotFoundError):
    """Transaction not found."""

    def __init__(self, identifier=None):
        super().__init__("Transaction", identifier)


class PromotionNotFoundError(NotFoundError):
    """Promotion not found."""

    def __init__(self, identifier=None):
        super().__init__("Promotion", identifier)


class ForbiddenError(LedgerError):
    """Caller's role is insufficient for the requested mutation."""

    status_code = 403

    def __init__(self, message: str = "Not authorized for this operation"):
        super().__init__(message, "FORBIDDEN")


class InvalidPromotionError(LedgerError):
    """A manually specified promotion id does not exist."""

    def __init__(self, promotion_ids):
        self.promotion_ids = sorted(promotion_ids)
        ids = ', '.join(str(pid) for pid in self.promotion_ids)
        super().__init__(f"Invalid promotion IDs: {ids}", "INVALID_PROMOTION")


class PromotionNotApplicableError(LedgerError):
    """Promotion is outside its activity window or minimum spend is not met."""

    def __init__(self, promotion_id: int, reason: str):
        self.promotion_id = promotion_id
        self.reason = reason
        super().__init__(
            f"Promotion {promotion_id} is not applicable: {reason}",
            "PROMOTION_NOT_APPLICABLE",
        )


class PromotionAlreadyUsedError(LedgerError):
    """One-time promotion has already been consumed by this user."""

    def __init__(self, promotion_id: int):
        self.promotion_id = promotion_id
        super().__init__(
            f"One-time promotion {promotion_id} already used",
            "PROMOTION_ALREADY_USED",
        )


class NegativeBalanceError(LedgerError):
    """Mutation would take a user's points balance below zero."""

    def __init__(self, current: int, delta: int):
        self.current = current
        self.delta = delta
        super().__init__(
            f"Insufficient points. Current: {current}, Change: {delta}",
            "NEGATIVE_BALANCE",
        )


class AlreadyProcessedError(LedgerError):
    """Redemption has already been processed."""

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(
            f"Transaction {transaction_id} already processed",
            "ALREADY_PROCESSED",
        )


class ConflictError(LedgerError):
    """Uniqueness violation surfaced from a concurrent write."""

    status_code = 409

    def __init__(self, message: str = "Conflicting concurrent update"):
        super().__init__(message, "CONFLICT")


class InternalError(LedgerError):
    """Unexpected storage or transport failure. Details are logged, not returned."""

    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message, "INTERNAL_ERROR")
