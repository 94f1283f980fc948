"""
Typed commands for ledger operations.

Each mutation the ledger supports has one command type. Commands are built
from raw request payloads and validated here, so the ledger only ever sees
well-formed input and no storage work starts for a malformed request.

POST /transactions carries either a purchase or an adjustment, discriminated
by its "type" field; see transaction_command_from_payload().
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple, Union

from ..models.user import Role
from ..utils.exceptions import ValidationError

MAX_REMARK_LENGTH = 500

# Point amounts are stored in a 32-bit integer column
MAX_POINTS = 2_147_483_647

# spent is stored as Numeric(10, 2)
MAX_SPEND = Decimal('99999999.99')


@dataclass(frozen=True)
class CallerContext:
    """Pre-verified identity of whoever is invoking the ledger."""
    subject: int
    role: Role


# ==================== Field parsing ====================

def _require(payload: Dict[str, Any], name: str):
    if payload.get(name) is None:
        raise ValidationError(f"Missing field: {name}", name)
    return payload[name]


def _int_field(value, name: str) -> int:
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", name)
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        try:
            number = int(value.strip())
        except ValueError:
            raise ValidationError(f"{name} must be an integer", name)
    else:
        raise ValidationError(f"{name} must be an integer", name)
    if abs(number) > MAX_POINTS:
        raise ValidationError(f"{name} is out of range", name)
    return number


def _positive_int(value, name: str) -> int:
    number = _int_field(value, name)
    if number <= 0:
        raise ValidationError(f"{name} must be a positive integer", name)
    return number


def _spend(value) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError("spent must be a positive number", 'spent')
    try:
        spent = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("spent must be a positive number", 'spent')
    if not spent.is_finite() or spent <= 0:
        raise ValidationError("spent must be a positive number", 'spent')
    if spent > MAX_SPEND:
        raise ValidationError(f"spent must be at most {MAX_SPEND}", 'spent')
    if spent != spent.quantize(Decimal('0.01')):
        raise ValidationError("spent must have at most 2 decimal places", 'spent')
    return spent


def _remark(value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("remark must be a string", 'remark')
    if len(value) > MAX_REMARK_LENGTH:
        raise ValidationError(f"remark must be at most {MAX_REMARK_LENGTH} characters", 'remark')
    return value


def _utorid(value, name: str = 'utorid') -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string", name)
    return value.strip()


def _promotion_ids(value) -> Tuple[int, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise ValidationError("promotionIds must be a list of integers", 'promotionIds')
    ids = [_int_field(item, 'promotionIds') for item in value]
    # Keep first-seen order, drop repeats
    return tuple(dict.fromkeys(ids))


# ==================== Commands ====================

@dataclass(frozen=True)
class CreatePurchase:
    owner_utorid: str
    spent: Decimal
    promotion_ids: Tuple[int, ...] = ()
    remark: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'CreatePurchase':
        return cls(
            owner_utorid=_utorid(_require(payload, 'utorid')),
            spent=_spend(_require(payload, 'spent')),
            promotion_ids=_promotion_ids(payload.get('promotionIds')),
            remark=_remark(payload.get('remark')),
        )


@dataclass(frozen=True)
class CreateAdjustment:
    owner_utorid: str
    amount: int
    related_id: Optional[int] = None
    remark: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'CreateAdjustment':
        amount = _int_field(_require(payload, 'amount'), 'amount')
        if amount == 0:
            raise ValidationError("amount cannot be zero", 'amount')
        related_id = payload.get('relatedId')
        return cls(
            owner_utorid=_utorid(_require(payload, 'utorid')),
            amount=amount,
            related_id=_positive_int(related_id, 'relatedId') if related_id is not None else None,
            remark=_remark(payload.get('remark')),
        )


@dataclass(frozen=True)
class CreateRedemption:
    amount: int
    remark: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'CreateRedemption':
        if payload.get('type', 'redemption') != 'redemption':
            raise ValidationError("type must be 'redemption'", 'type')
        return cls(
            amount=_positive_int(_require(payload, 'amount'), 'amount'),
            remark=_remark(payload.get('remark')),
        )


@dataclass(frozen=True)
class ProcessRedemption:
    transaction_id: int

    @classmethod
    def from_payload(cls, transaction_id: int, payload: Dict[str, Any]) -> 'ProcessRedemption':
        if payload.get('processed') is not True:
            raise ValidationError("processed can only be set to true", 'processed')
        return cls(transaction_id=transaction_id)


@dataclass(frozen=True)
class CreateTransfer:
    recipient_utorid: str
    amount: int
    remark: Optional[str] = None

    @classmethod
    def from_payload(cls, recipient_utorid: str, payload: Dict[str, Any]) -> 'CreateTransfer':
        if payload.get('type', 'transfer') != 'transfer':
            raise ValidationError("type must be 'transfer'", 'type')
        return cls(
            recipient_utorid=_utorid(recipient_utorid),
            amount=_positive_int(_require(payload, 'amount'), 'amount'),
            remark=_remark(payload.get('remark')),
        )


@dataclass(frozen=True)
class SetSuspicious:
    transaction_id: int
    suspicious: bool

    @classmethod
    def from_payload(cls, transaction_id: int, payload: Dict[str, Any]) -> 'SetSuspicious':
        value = _require(payload, 'suspicious')
        if not isinstance(value, bool):
            raise ValidationError("suspicious must be a boolean", 'suspicious')
        return cls(transaction_id=transaction_id, suspicious=value)


TransactionCommand = Union[CreatePurchase, CreateAdjustment]

_TRANSACTION_COMMANDS = {
    'purchase': CreatePurchase,
    'adjustment': CreateAdjustment,
}


def transaction_command_from_payload(payload: Dict[str, Any]) -> TransactionCommand:
    """Build a purchase or adjustment command from a POST /transactions body."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    command_cls = _TRANSACTION_COMMANDS.get(payload.get('type'))
    if command_cls is None:
        raise ValidationError("type must be 'purchase' or 'adjustment'", 'type')
    return command_cls.from_payload(payload)
