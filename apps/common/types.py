"""
Shared type system for the invoicing platform
Rust-inspired Result pattern and domain type aliases for clean architecture.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Generic, TypeVar

# Type variables for generic Result
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type

# ===============================================================================
# RESULT TYPES
# ===============================================================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Success result containing a value"""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the success value"""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Get the success value (ignores default)"""
        return self.value

    def map(self, func: Callable[[T], Any]) -> Result[Any, Any]:
        """Transform the success value"""
        try:
            return Ok(func(self.value))
        except Exception as e:
            return Err(str(e))

    def and_then(self, func: Callable[[T], Result[Any, Any]]) -> Result[Any, Any]:
        """Chain operations that can fail"""
        try:
            return func(self.value)
        except Exception as e:
            return Err(str(e))

    def unwrap_err(self) -> Any:
        """Raises an exception since this is success, not error - provides consistent API"""
        raise ValueError(f"Called unwrap_err on Ok: {self.value}")


@dataclass(frozen=True)
class Err(Generic[E]):
    """Error result containing an error value"""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> Any:
        """Raises an exception - use unwrap_or() for safe access"""
        raise ValueError(f"Called unwrap on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Get the default value since this is an error"""
        return default

    def map(self, func: Callable[[Any], Any]) -> Result[Any, E]:
        """No-op for error results"""
        return self

    def and_then(self, func: Callable[[Any], Result[Any, Any]]) -> Result[Any, E]:
        """No-op for error results - return self"""
        return self

    def unwrap_err(self) -> E:
        """Get the error value"""
        return self.error


# Result type alias
Result = Ok[T] | Err[E]

# ===============================================================================
# DOMAIN TYPE ALIASES
# ===============================================================================

InvoiceNumber = str  # Zero-padded sequential number: "000000042"
AccessKey = str  # 49-digit authority access key
AuthorizationNumber = str
IdentificationString = str  # Raw buyer identification as typed by the buyer
IdentificationTypeCode = str  # Authority code: "04", "05", "06"
OrderReference = str
TaskSummary = dict[str, Any]  # Dict returned by django-q tasks

# ===============================================================================
# MONEY HELPERS
# ===============================================================================

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Convert int/str/float/Decimal input into a Decimal, going through str for floats."""
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Invalid monetary value: {value!r}")
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid monetary value: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid monetary value: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid monetary value: {value!r}")
    return amount


def quantize_money(amount: Decimal) -> Decimal:
    """Round to cents using half-up, the rounding rule applied to every invoice amount."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)
