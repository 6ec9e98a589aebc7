# src/treasury/runtime/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class TreasuryError(Exception):
    """Canonical error type for every rejected treasury operation.

    A raised TreasuryError always means the enclosing call committed nothing.
    """

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class InvalidPeriod(TreasuryError):
    def __init__(self, reason: str = "period_not_configured", details: Any | None = None) -> None:
        super().__init__("invalid_period", reason, details)


class DistributionsPaused(TreasuryError):
    def __init__(self, reason: str = "distributions_paused", details: Any | None = None) -> None:
        super().__init__("distributions_paused", reason, details)


class RedemptionsPaused(TreasuryError):
    def __init__(self, reason: str = "redemptions_paused", details: Any | None = None) -> None:
        super().__init__("redemptions_paused", reason, details)


class PaymentsPaused(TreasuryError):
    def __init__(self, reason: str = "payments_paused", details: Any | None = None) -> None:
        super().__init__("payments_paused", reason, details)


class CurrencyMismatch(TreasuryError):
    def __init__(self, reason: str = "currency_mismatch", details: Any | None = None) -> None:
        super().__init__("currency_mismatch", reason, details)


class DistributionLimitExceeded(TreasuryError):
    def __init__(self, reason: str = "distribution_limit_reached", details: Any | None = None) -> None:
        super().__init__("distribution_limit_exceeded", reason, details)


class InsufficientStoreBalance(TreasuryError):
    def __init__(self, reason: str = "inadequate_store_balance", details: Any | None = None) -> None:
        super().__init__("insufficient_store_balance", reason, details)


class InsufficientBalance(TreasuryError):
    def __init__(self, reason: str = "balance_too_low", details: Any | None = None) -> None:
        super().__init__("insufficient_balance", reason, details)


class BelowMinimumReturn(TreasuryError):
    def __init__(self, reason: str = "amount_below_minimum", details: Any | None = None) -> None:
        super().__init__("below_minimum_return", reason, details)


class InsufficientTokens(TreasuryError):
    def __init__(self, reason: str = "token_count_out_of_range", details: Any | None = None) -> None:
        super().__init__("insufficient_tokens", reason, details)


class MigrationNotAllowed(TreasuryError):
    def __init__(self, reason: str = "terminal_migration_not_allowed", details: Any | None = None) -> None:
        super().__init__("migration_not_allowed", reason, details)


class Unauthorized(TreasuryError):
    def __init__(self, reason: str = "caller_not_authorized", details: Any | None = None) -> None:
        super().__init__("unauthorized", reason, details)


class AlreadyClaimed(TreasuryError):
    def __init__(self, reason: str = "terminal_already_claimed", details: Any | None = None) -> None:
        super().__init__("already_claimed", reason, details)


class ArithmeticOverflow(TreasuryError):
    def __init__(self, reason: str = "uint256_overflow", details: Any | None = None) -> None:
        super().__init__("arithmetic_overflow", reason, details)


class DivisionByZero(TreasuryError):
    def __init__(self, reason: str = "zero_divisor", details: Any | None = None) -> None:
        super().__init__("division_by_zero", reason, details)


class FeeTooHigh(TreasuryError):
    def __init__(self, reason: str = "fee_above_max", details: Any | None = None) -> None:
        super().__init__("fee_too_high", reason, details)


class PriceFeedNotFound(TreasuryError):
    def __init__(self, reason: str = "no_price_route", details: Any | None = None) -> None:
        super().__init__("price_feed_not_found", reason, details)


class TerminalNotFound(TreasuryError):
    def __init__(self, reason: str = "no_primary_terminal", details: Any | None = None) -> None:
        super().__init__("terminal_not_found", reason, details)


class TerminalIncompatible(TreasuryError):
    def __init__(self, reason: str = "terminal_currency_mismatch", details: Any | None = None) -> None:
        super().__init__("terminal_incompatible", reason, details)
