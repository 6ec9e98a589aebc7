# src/treasury/runtime/engine.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from treasury.ledger.constants import (
    DEFAULT_FEE,
    FEE_PROJECT_ID,
    PERMISSION_MIGRATE,
    PERMISSION_REDEEM,
    PERMISSION_USE_ALLOWANCE,
    PRICE_PRECISION,
)
from treasury.ledger.state import TreasuryView, initial_state
from treasury.ledger.types import HeldFee, Period
from treasury.runtime import distribution, fees, overflow, payments, redemption
from treasury.runtime.balances import add_balance, balance_of, record_migration
from treasury.runtime.errors import (
    InsufficientTokens,
    TerminalIncompatible,
    TerminalNotFound,
    TreasuryError,
    Unauthorized,
)
from treasury.runtime.event_log import log_event
from treasury.runtime.gatekeeper import claim, claimed_terminal, require_owner, require_permission, require_terminal
from treasury.runtime.metrics import record_error, record_event
from treasury.runtime.oracles import (
    Controller,
    Directory,
    FeeGauge,
    PeriodOracle,
    PermissionOracle,
    PriceOracle,
    Projects,
    TokenSupply,
)
from treasury.runtime.state_store import MemoryStateStore, Outcome, StateStore, make_event

Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class Settlement:
    """What a payout, allowance use or redemption settled to."""

    period: Period
    amount: int
    fee_amount: int
    net_amount: int
    beneficiary: str


@dataclass(slots=True)
class _FeeForward:
    """A fee payment to another terminal, executed after the commit."""

    terminal: str
    project_id: int
    amount: int
    beneficiary: str
    memo: str


@dataclass(slots=True)
class _FeeResult:
    fee_amount: int = 0
    net_amount: int = 0
    events: List[Json] = field(default_factory=list)
    forwards: List[_FeeForward] = field(default_factory=list)


def _amt(v: int) -> str:
    return str(int(v))


class TreasuryEngine:
    """Terminal-facing treasury engine.

    Bound to exactly one terminal through claim_for(). Every public mutating
    call runs as one store.update(): it either commits its state change
    together with its events or raises and commits nothing. Events are logged
    and counted only after the commit.

    Operations come in two flavours:
      - record_*: called by the claimed terminal, which moves the value itself
      - composites (pay, distribute_payouts_of, use_allowance_of,
        redeem_tokens_of, migrate, process_fees): the engine acts as its own
        terminal, including fee collection
    """

    def __init__(
        self,
        *,
        currency: int,
        owner: str,
        period_oracle: PeriodOracle,
        controller: Controller,
        prices: PriceOracle,
        directory: Directory,
        permissions: PermissionOracle,
        projects: Projects,
        token_supply: TokenSupply,
        store: Optional[StateStore] = None,
        fee_gauge: Optional[FeeGauge] = None,
        fee: int = DEFAULT_FEE,
        fee_project_id: int = FEE_PROJECT_ID,
        base_weight_currency: Optional[int] = None,
        price_precision: int = PRICE_PRECISION,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._currency = int(currency)
        self._owner = str(owner)
        self._periods = period_oracle
        self._controller = controller
        self._prices = prices
        self._directory = directory
        self._permissions = permissions
        self._projects = projects
        self._tokens = token_supply
        self._fee_gauge = fee_gauge
        self._fee_project_id = int(fee_project_id)
        self._base_weight_currency = int(base_weight_currency) if base_weight_currency else self._currency
        self._precision = int(price_precision)
        self._log = logger or logging.getLogger("treasury.engine")
        self._lock = threading.RLock()

        self._store: StateStore = store if store is not None else MemoryStateStore(initial_state(fees.validate_fee(fee)))
        self._identity = claimed_terminal(self._store.read())

    # ---------------------------------------------------------------------
    # Plumbing
    # ---------------------------------------------------------------------

    def _commit(self, mut: Callable[[Json], Outcome]) -> Any:
        with self._lock:
            try:
                outcome = self._store.update(mut)
            except TreasuryError as e:
                record_error(e.code)
                raise
            for ev in outcome.events:
                log_event(self._log, ev["event"], seq=ev.get("seq"), **ev.get("fields", {}))
                record_event(ev["event"])
            return outcome.result

    def _terminal(self, st: Json) -> str:
        current = claimed_terminal(st)
        if not current:
            raise Unauthorized("terminal_not_claimed")
        return current

    def _period(self, project_id: int) -> Period:
        return self._periods.current_period(int(project_id))

    def _current_overflow(self, st: Json, terminal: str, project_id: int, period: Period) -> int:
        return overflow.current_overflow_of(
            st,
            terminal=terminal,
            project_id=project_id,
            period=period,
            ledger_currency=self._currency,
            controller=self._controller,
            prices=self._prices,
            precision=self._precision,
        )

    def _redemption_overflow(self, st: Json, terminal: str, project_id: int, period: Period) -> int:
        local = self._current_overflow(st, terminal, project_id, period)
        if not period.metadata.use_total_overflow_for_redemptions:
            return local
        return overflow.current_total_overflow_of(
            self._directory,
            self._prices,
            project_id=project_id,
            currency=self._currency,
            precision=self._precision,
            known={terminal: local},
        )

    def _payment(
        self,
        st: Json,
        terminal: str,
        *,
        project_id: int,
        period: Period,
        amount: int,
        payer: str,
        beneficiary: str,
        min_returned_tokens: int,
        memo: str,
    ) -> Tuple[int, int, Json]:
        weight, token_count = payments.record_payment(
            st,
            terminal=terminal,
            project_id=project_id,
            period=period,
            amount=amount,
            min_returned_tokens=min_returned_tokens,
            ledger_currency=self._currency,
            base_weight_currency=self._base_weight_currency,
            prices=self._prices,
            precision=self._precision,
        )
        ev = make_event(
            "payment_recorded",
            terminal=terminal,
            project_id=int(project_id),
            period=int(period.number),
            configuration=int(period.configuration),
            payer=str(payer),
            beneficiary=str(beneficiary),
            amount=_amt(amount),
            weight=_amt(weight),
            token_count=_amt(token_count),
            memo=str(memo),
        )
        return weight, token_count, ev

    # ---------------------------------------------------------------------
    # Fees
    # ---------------------------------------------------------------------

    def _fee_destination(self) -> str:
        dest = self._directory.primary_terminal_of(self._fee_project_id, self._currency)
        if not dest:
            raise TerminalNotFound(
                details={"project_id": self._fee_project_id, "currency": self._currency}
            )
        return str(dest)

    def _forward_fee(
        self,
        st: Json,
        terminal: str,
        *,
        project_id: int,
        fee_amount: int,
        beneficiary: str,
        memo: str,
        result: _FeeResult,
    ) -> None:
        """Pay `fee_amount` to the fee project.

        Paying ourselves is recorded in `st`. A failing local payment refunds
        the fee to the paying project instead of aborting the caller.
        """
        dest = self._fee_destination()
        if dest != terminal:
            result.forwards.append(
                _FeeForward(terminal=dest, project_id=int(project_id), amount=fee_amount, beneficiary=beneficiary, memo=memo)
            )
            return
        try:
            _, _, ev = self._payment(
                st,
                terminal,
                project_id=self._fee_project_id,
                period=self._period(self._fee_project_id),
                amount=fee_amount,
                payer=terminal,
                beneficiary=beneficiary,
                min_returned_tokens=0,
                memo=memo,
            )
        except TreasuryError as e:
            add_balance(st, terminal, project_id, fee_amount)
            result.events.append(
                make_event(
                    "fee_forward_failed",
                    terminal=terminal,
                    project_id=int(project_id),
                    amount=_amt(fee_amount),
                    destination=dest,
                    code=e.code,
                    reason=e.reason,
                    refunded=True,
                )
            )
            return
        result.events.append(ev)

    def _take_fee(self, st: Json, terminal: str, *, project_id: int, period: Period, amount: int) -> _FeeResult:
        base_fee = int(st.get("fee", DEFAULT_FEE))
        if base_fee == 0 or int(project_id) == self._fee_project_id or int(amount) == 0:
            return _FeeResult(fee_amount=0, net_amount=int(amount))

        discount = self._fee_gauge.current_discount_for(int(project_id)) if self._fee_gauge is not None else 0
        effective = fees.discounted_fee(base_fee, int(discount))
        fee_amount, net = fees.compute_fee(int(amount), effective)
        out = _FeeResult(fee_amount=fee_amount, net_amount=net)
        if fee_amount == 0:
            return out

        beneficiary = self._projects.owner_of(int(project_id))
        memo = fees.fee_memo(self._projects.handle_of(int(project_id)))

        if period.metadata.hold_fees:
            size = fees.hold_fee(
                st, terminal, project_id, HeldFee(amount=int(amount), fee=effective, beneficiary=beneficiary, memo=memo)
            )
            out.events.append(
                make_event(
                    "fee_held",
                    terminal=terminal,
                    project_id=int(project_id),
                    amount=_amt(amount),
                    fee=effective,
                    fee_amount=_amt(fee_amount),
                    beneficiary=beneficiary,
                    held_count=size,
                )
            )
            return out

        out.events.append(
            make_event(
                "fee_taken",
                terminal=terminal,
                project_id=int(project_id),
                amount=_amt(amount),
                fee=effective,
                discount=int(discount),
                fee_amount=_amt(fee_amount),
                beneficiary=beneficiary,
            )
        )
        self._forward_fee(
            st, terminal, project_id=project_id, fee_amount=fee_amount, beneficiary=beneficiary, memo=memo, result=out
        )
        return out

    def _run_forwards(self, forwards: List[_FeeForward]) -> None:
        """Pay fees owed to other terminals; a failure refunds the paying project."""
        for fwd in forwards:
            try:
                dest = self._directory.terminal_of(fwd.terminal)
                if int(dest.currency) != self._currency:
                    raise TerminalIncompatible(details={"terminal": fwd.terminal, "currency": int(dest.currency)})
                dest.pay(
                    self._fee_project_id,
                    fwd.amount,
                    payer=self.identity,
                    beneficiary=fwd.beneficiary,
                    min_returned_tokens=0,
                    memo=fwd.memo,
                )
            except TreasuryError as e:
                self._refund_fee(fwd, e)

    def _refund_fee(self, fwd: _FeeForward, err: TreasuryError) -> None:
        def _mut(st: Json) -> Outcome:
            terminal = self._terminal(st)
            add_balance(st, terminal, fwd.project_id, fwd.amount)
            return Outcome(
                result=None,
                events=[
                    make_event(
                        "fee_forward_failed",
                        terminal=terminal,
                        project_id=fwd.project_id,
                        amount=_amt(fwd.amount),
                        destination=fwd.terminal,
                        code=err.code,
                        reason=err.reason,
                        refunded=True,
                    )
                ],
            )

        self._commit(_mut)

    # ---------------------------------------------------------------------
    # PaymentTerminal surface
    # ---------------------------------------------------------------------

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def currency(self) -> int:
        return self._currency

    @property
    def fee(self) -> int:
        return int(self._store.read().get("fee", DEFAULT_FEE))

    @property
    def fee_gauge(self) -> Optional[FeeGauge]:
        return self._fee_gauge

    # ---------------------------------------------------------------------
    # Terminal binding
    # ---------------------------------------------------------------------

    def claim_for(self, terminal: str) -> None:
        def _mut(st: Json) -> Outcome:
            claim(st, terminal)
            return Outcome(result=None, events=[make_event("terminal_claimed", terminal=str(terminal))])

        with self._lock:
            self._commit(_mut)
            self._identity = str(terminal).strip()

    # ---------------------------------------------------------------------
    # record_* (called by the claimed terminal)
    # ---------------------------------------------------------------------

    def record_payment_from(
        self,
        caller: str,
        *,
        payer: str,
        amount: int,
        project_id: int,
        beneficiary: str,
        min_returned_tokens: int = 0,
        memo: str = "",
    ) -> Tuple[Period, int, int]:
        period = self._period(project_id)

        def _mut(st: Json) -> Outcome:
            terminal = require_terminal(st, caller)
            weight, token_count, ev = self._payment(
                st,
                terminal,
                project_id=project_id,
                period=period,
                amount=amount,
                payer=payer,
                beneficiary=beneficiary,
                min_returned_tokens=min_returned_tokens,
                memo=memo,
            )
            return Outcome(result=(period, weight, token_count), events=[ev])

        return self._commit(_mut)

    def record_added_balance_for(self, caller: str, project_id: int, amount: int, memo: str = "") -> int:
        def _mut(st: Json) -> Outcome:
            terminal = require_terminal(st, caller)
            new_balance = add_balance(st, terminal, project_id, amount)
            ev = make_event(
                "balance_added",
                terminal=terminal,
                project_id=int(project_id),
                amount=_amt(amount),
                balance=_amt(new_balance),
                memo=str(memo),
            )
            return Outcome(result=new_balance, events=[ev])

        return self._commit(_mut)

    def _distribution(self, st: Json, terminal: str, *, project_id: int, period: Period, amount: int, currency: int, min_returned: int) -> int:
        return distribution.record_distribution(
            st,
            terminal=terminal,
            project_id=project_id,
            period=period,
            amount=amount,
            currency=currency,
            min_returned=min_returned,
            ledger_currency=self._currency,
            controller=self._controller,
            prices=self._prices,
            precision=self._precision,
        )

    def record_distribution_for(
        self, caller: str, project_id: int, amount: int, currency: int, min_returned: int = 0
    ) -> Tuple[Period, int]:
        period = self._period(project_id)

        def _mut(st: Json) -> Outcome:
            terminal = require_terminal(st, caller)
            ledger_amount = self._distribution(
                st, terminal, project_id=project_id, period=period, amount=amount, currency=currency, min_returned=min_returned
            )
            ev = make_event(
                "distribution_recorded",
                terminal=terminal,
                project_id=int(project_id),
                period=int(period.number),
                amount=_amt(amount),
                currency=int(currency),
                ledger_amount=_amt(ledger_amount),
                used=_amt(distribution.used_distribution_of(st, terminal, project_id, period.number)),
            )
            return Outcome(result=(period, ledger_amount), events=[ev])

        return self._commit(_mut)

    def _allowance(
        self, st: Json, terminal: str, *, project_id: int, period: Period, amount: int, currency: int, min_returned: int
    ) -> int:
        return distribution.record_used_allowance(
            st,
            terminal=terminal,
            project_id=project_id,
            period=period,
            amount=amount,
            currency=currency,
            min_returned=min_returned,
            ledger_currency=self._currency,
            overflow=self._current_overflow(st, terminal, project_id, period),
            controller=self._controller,
            prices=self._prices,
            precision=self._precision,
        )

    def record_used_allowance_of(
        self, caller: str, project_id: int, amount: int, currency: int, min_returned: int = 0
    ) -> Tuple[Period, int]:
        period = self._period(project_id)

        def _mut(st: Json) -> Outcome:
            terminal = require_terminal(st, caller)
            ledger_amount = self._allowance(
                st, terminal, project_id=project_id, period=period, amount=amount, currency=currency, min_returned=min_returned
            )
            ev = make_event(
                "allowance_used",
                terminal=terminal,
                project_id=int(project_id),
                configuration=int(period.configuration),
                amount=_amt(amount),
                currency=int(currency),
                ledger_amount=_amt(ledger_amount),
            )
            return Outcome(result=(period, ledger_amount), events=[ev])

        return self._commit(_mut)

    def _redemption(
        self,
        st: Json,
        terminal: str,
        *,
        project_id: int,
        period: Period,
        token_count: int,
        total_supply: int,
        min_reclaimed: int,
    ) -> int:
        return redemption.record_redemption(
            st,
            terminal=terminal,
            project_id=project_id,
            period=period,
            ballot_state=self._periods.ballot_state_of(int(project_id)),
            token_count=token_count,
            total_supply=total_supply,
            min_reclaimed=min_reclaimed,
            overflow_of=lambda: self._redemption_overflow(st, terminal, project_id, period),
        )

    def record_redemption_for(
        self,
        caller: str,
        *,
        holder: str,
        project_id: int,
        token_count: int,
        total_supply: int,
        min_reclaimed: int = 0,
        beneficiary: str = "",
        memo: str = "",
    ) -> Tuple[Period, int]:
        period = self._period(project_id)

        def _mut(st: Json) -> Outcome:
            terminal = require_terminal(st, caller)
            reclaim = self._redemption(
                st,
                terminal,
                project_id=project_id,
                period=period,
                token_count=token_count,
                total_supply=total_supply,
                min_reclaimed=min_reclaimed,
            )
            ev = make_event(
                "redemption_recorded",
                terminal=terminal,
                project_id=int(project_id),
                period=int(period.number),
                holder=str(holder),
                beneficiary=str(beneficiary or holder),
                token_count=_amt(token_count),
                total_supply=_amt(total_supply),
                reclaim_amount=_amt(reclaim),
                memo=str(memo),
            )
            return Outcome(result=(period, reclaim), events=[ev])

        return self._commit(_mut)

    def record_migration(self, caller: str, project_id: int) -> int:
        period = self._period(project_id)

        def _mut(st: Json) -> Outcome:
            terminal = require_terminal(st, caller)
            prior = record_migration(st, terminal, project_id, period)
            ev = make_event("migration_recorded", terminal=terminal, project_id=int(project_id), amount=_amt(prior))
            return Outcome(result=prior, events=[ev])

        return self._commit(_mut)

    # ---------------------------------------------------------------------
    # Terminal composites
    # ---------------------------------------------------------------------

    def pay(
        self,
        project_id: int,
        amount: int,
        *,
        payer: str,
        beneficiary: str,
        min_returned_tokens: int = 0,
        memo: str = "",
    ) -> Tuple[Period, int, int]:
        period = self._period(project_id)

        def _mut(st: Json) -> Outcome:
            terminal = self._terminal(st)
            weight, token_count, ev = self._payment(
                st,
                terminal,
                project_id=project_id,
                period=period,
                amount=amount,
                payer=payer,
                beneficiary=beneficiary,
                min_returned_tokens=min_returned_tokens,
                memo=memo,
            )
            return Outcome(result=(period, weight, token_count), events=[ev])

        return self._commit(_mut)

    def add_to_balance_of(self, project_id: int, amount: int, memo: str = "") -> int:
        def _mut(st: Json) -> Outcome:
            terminal = self._terminal(st)
            new_balance = add_balance(st, terminal, project_id, amount)
            ev = make_event(
                "balance_added",
                terminal=terminal,
                project_id=int(project_id),
                amount=_amt(amount),
                balance=_amt(new_balance),
                memo=str(memo),
            )
            return Outcome(result=new_balance, events=[ev])

        return self._commit(_mut)

    def distribute_payouts_of(
        self, caller: str, project_id: int, amount: int, currency: int, min_returned: int = 0, memo: str = ""
    ) -> Settlement:
        """Pay out against the distribution limit to the project owner, net of fees."""
        period = self._period(project_id)
        owner = self._projects.owner_of(int(project_id))

        with self._lock:
            def _mut(st: Json) -> Outcome:
                terminal = self._terminal(st)
                ledger_amount = self._distribution(
                    st, terminal, project_id=project_id, period=period, amount=amount, currency=currency, min_returned=min_returned
                )
                fee = self._take_fee(st, terminal, project_id=project_id, period=period, amount=ledger_amount)
                ev = make_event(
                    "distribution_recorded",
                    terminal=terminal,
                    project_id=int(project_id),
                    period=int(period.number),
                    caller=str(caller),
                    amount=_amt(amount),
                    currency=int(currency),
                    ledger_amount=_amt(ledger_amount),
                    fee_amount=_amt(fee.fee_amount),
                    net_amount=_amt(fee.net_amount),
                    beneficiary=owner,
                    used=_amt(distribution.used_distribution_of(st, terminal, project_id, period.number)),
                    memo=str(memo),
                )
                settled = Settlement(period, ledger_amount, fee.fee_amount, fee.net_amount, owner)
                return Outcome(result=(settled, fee.forwards), events=[ev] + fee.events)

            settled, forwards = self._commit(_mut)
            self._run_forwards(forwards)
            return settled

    def use_allowance_of(
        self,
        caller: str,
        project_id: int,
        amount: int,
        currency: int,
        min_returned: int = 0,
        beneficiary: str = "",
        memo: str = "",
    ) -> Settlement:
        """Spend from the allowance; the owner or a USE_ALLOWANCE operator may call."""
        period = self._period(project_id)
        owner = self._projects.owner_of(int(project_id))
        require_permission(
            self._permissions, caller=caller, account=owner, project_id=project_id, permission_id=PERMISSION_USE_ALLOWANCE
        )
        to = str(beneficiary or owner)

        with self._lock:
            def _mut(st: Json) -> Outcome:
                terminal = self._terminal(st)
                ledger_amount = self._allowance(
                    st, terminal, project_id=project_id, period=period, amount=amount, currency=currency, min_returned=min_returned
                )
                fee = self._take_fee(st, terminal, project_id=project_id, period=period, amount=ledger_amount)
                ev = make_event(
                    "allowance_used",
                    terminal=terminal,
                    project_id=int(project_id),
                    configuration=int(period.configuration),
                    caller=str(caller),
                    amount=_amt(amount),
                    currency=int(currency),
                    ledger_amount=_amt(ledger_amount),
                    fee_amount=_amt(fee.fee_amount),
                    net_amount=_amt(fee.net_amount),
                    beneficiary=to,
                    memo=str(memo),
                )
                settled = Settlement(period, ledger_amount, fee.fee_amount, fee.net_amount, to)
                return Outcome(result=(settled, fee.forwards), events=[ev] + fee.events)

            settled, forwards = self._commit(_mut)
            self._run_forwards(forwards)
            return settled

    def redeem_tokens_of(
        self,
        caller: str,
        *,
        holder: str,
        project_id: int,
        token_count: int,
        min_reclaimed: int = 0,
        beneficiary: str = "",
        memo: str = "",
    ) -> Settlement:
        """Redeem on behalf of `holder`; the holder or a REDEEM operator may call.

        Supply and the holder's balance come from the token store, never from
        the caller. Burning the tokens stays with the token store.
        """
        require_permission(
            self._permissions, caller=caller, account=holder, project_id=project_id, permission_id=PERMISSION_REDEEM
        )
        period = self._period(project_id)
        to = str(beneficiary or holder)

        def _mut(st: Json) -> Outcome:
            terminal = self._terminal(st)
            held = int(self._tokens.balance_of(str(holder), int(project_id)))
            if int(token_count) > held:
                raise InsufficientTokens(
                    "holder_balance_too_low",
                    details={"holder": str(holder), "token_count": _amt(token_count), "balance": _amt(held)},
                )
            total_supply = int(self._tokens.total_supply_of(int(project_id)))
            reclaim = self._redemption(
                st,
                terminal,
                project_id=project_id,
                period=period,
                token_count=token_count,
                total_supply=total_supply,
                min_reclaimed=min_reclaimed,
            )
            ev = make_event(
                "redemption_recorded",
                terminal=terminal,
                project_id=int(project_id),
                period=int(period.number),
                caller=str(caller),
                holder=str(holder),
                beneficiary=to,
                token_count=_amt(token_count),
                total_supply=_amt(total_supply),
                reclaim_amount=_amt(reclaim),
                memo=str(memo),
            )
            return Outcome(result=Settlement(period, reclaim, 0, reclaim, to), events=[ev])

        return self._commit(_mut)

    def migrate(self, caller: str, project_id: int, to_terminal: str) -> int:
        """Move the project's whole balance to `to_terminal`.

        Held fees are processed first, in the same atomic unit: a migration
        that is not allowed leaves them held. Returns the amount moved.
        """
        owner = self._projects.owner_of(int(project_id))
        require_permission(
            self._permissions, caller=caller, account=owner, project_id=project_id, permission_id=PERMISSION_MIGRATE
        )
        dest = self._directory.terminal_of(to_terminal)
        if int(dest.currency) != self._currency:
            raise TerminalIncompatible(
                details={"terminal": str(to_terminal), "currency": int(dest.currency), "expected": self._currency}
            )
        period = self._period(project_id)

        with self._lock:
            def _mut(st: Json) -> Outcome:
                terminal = self._terminal(st)
                _, forwards, fee_events = self._process_held_fees(st, terminal, caller=caller, project_id=project_id)
                prior = record_migration(st, terminal, project_id, period)
                ev = make_event(
                    "migration_recorded",
                    terminal=terminal,
                    project_id=int(project_id),
                    to_terminal=str(to_terminal),
                    caller=str(caller),
                    amount=_amt(prior),
                )
                return Outcome(result=(prior, forwards), events=fee_events + [ev])

            prior, forwards = self._commit(_mut)
            self._run_forwards(forwards)
            if prior > 0:
                dest.add_to_balance_of(int(project_id), prior, memo="migration")
            return prior

    def _process_held_fees(
        self, st: Json, terminal: str, *, caller: str, project_id: int
    ) -> Tuple[List[Json], List[_FeeForward], List[Json]]:
        """Drain the held-fee list into `st`; returns (report, forwards, events).

        Nothing is emitted for an empty list.
        """
        drained = fees.drain_held_fees(st, terminal, project_id)
        if not drained:
            return [], [], []

        out = _FeeResult()
        report: List[Json] = []
        total = 0
        for held in drained:
            fee_amount, _ = fees.compute_fee(held.amount, held.fee)
            report.append(
                {"amount": _amt(held.amount), "fee": held.fee, "fee_amount": _amt(fee_amount), "beneficiary": held.beneficiary}
            )
            if fee_amount == 0:
                continue
            total += fee_amount
            out.events.append(
                make_event(
                    "fee_taken",
                    terminal=terminal,
                    project_id=int(project_id),
                    amount=_amt(held.amount),
                    fee=held.fee,
                    discount=0,
                    fee_amount=_amt(fee_amount),
                    beneficiary=held.beneficiary,
                )
            )
            try:
                self._forward_fee(
                    st,
                    terminal,
                    project_id=project_id,
                    fee_amount=fee_amount,
                    beneficiary=held.beneficiary,
                    memo=held.memo,
                    result=out,
                )
            except TerminalNotFound as e:
                add_balance(st, terminal, project_id, fee_amount)
                out.events.append(
                    make_event(
                        "fee_forward_failed",
                        terminal=terminal,
                        project_id=int(project_id),
                        amount=_amt(fee_amount),
                        destination="",
                        code=e.code,
                        reason=e.reason,
                        refunded=True,
                    )
                )

        summary = make_event(
            "fees_processed",
            terminal=terminal,
            project_id=int(project_id),
            caller=str(caller),
            count=len(drained),
            fee_amount=_amt(total),
        )
        return report, out.forwards, [summary] + out.events

    def process_fees(self, caller: str, project_id: int) -> List[Json]:
        """Drain and forward every held fee of the project.

        Anyone may call. Each drained record is forwarded on its own; a record
        that cannot be forwarded is refunded to the project and reported, and
        never goes back on the list. Returns one entry per drained record.
        """
        with self._lock:
            def _mut(st: Json) -> Outcome:
                terminal = self._terminal(st)
                report, forwards, events = self._process_held_fees(st, terminal, caller=caller, project_id=project_id)
                return Outcome(result=(report, forwards), events=events)

            report, forwards = self._commit(_mut)
            self._run_forwards(forwards)
            return report

    def set_fee(self, caller: str, fee: int) -> None:
        require_owner(self._owner, caller)
        value = fees.validate_fee(fee)

        def _mut(st: Json) -> Outcome:
            previous = int(st.get("fee", DEFAULT_FEE))
            st["fee"] = value
            return Outcome(result=None, events=[make_event("fee_set", fee=value, previous=previous, caller=str(caller))])

        self._commit(_mut)

    def set_fee_gauge(self, caller: str, gauge: Optional[FeeGauge]) -> None:
        require_owner(self._owner, caller)
        with self._lock:
            self._fee_gauge = gauge
            name = type(gauge).__name__ if gauge is not None else ""
            self._commit(lambda st: Outcome(result=None, events=[make_event("fee_gauge_set", gauge=name, caller=str(caller))]))

    # ---------------------------------------------------------------------
    # Views
    # ---------------------------------------------------------------------

    def view(self) -> TreasuryView:
        return TreasuryView.from_state(self._store.read())

    def events(self, limit: int = 100) -> List[Json]:
        return self._store.events(limit)

    def balance_of(self, project_id: int) -> int:
        return balance_of(self._store.read(), self._identity, project_id)

    def used_distribution_limit_of(self, project_id: int, number: int) -> int:
        return distribution.used_distribution_of(self._store.read(), self._identity, project_id, number)

    def used_allowance_of(self, project_id: int, configuration: int) -> int:
        return distribution.used_allowance_of(self._store.read(), self._identity, project_id, configuration)

    def remaining_distribution_limit_of(self, project_id: int, configuration: int, number: int) -> int:
        remaining, _ = distribution.remaining_distribution_limit_of(
            self._store.read(),
            self._controller,
            terminal=self._identity,
            project_id=project_id,
            configuration=configuration,
            number=number,
        )
        return remaining

    def current_overflow_of(self, project_id: int) -> int:
        return self._current_overflow(self._store.read(), self._identity, project_id, self._period(project_id))

    def current_total_overflow_of(self, project_id: int, currency: int) -> int:
        return overflow.current_total_overflow_of(
            self._directory, self._prices, project_id=project_id, currency=currency, precision=self._precision
        )

    def current_reclaimable_overflow_of(self, project_id: int, token_count: int, total_supply: int) -> int:
        if int(token_count) > int(total_supply):
            raise InsufficientTokens(details={"token_count": _amt(token_count), "total_supply": _amt(total_supply)})
        period = self._period(project_id)
        pool = self._redemption_overflow(self._store.read(), self._identity, project_id, period)
        rate = redemption.redemption_rate_for(period, self._periods.ballot_state_of(int(project_id)))
        return redemption.reclaimable_overflow(pool, int(token_count), int(total_supply), rate)

    def held_fees_of(self, project_id: int) -> List[HeldFee]:
        return fees.held_fees_of(self._store.read(), self._identity, project_id)
