# src/treasury/runtime/state_store.py
from __future__ import annotations

import copy
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from treasury.ledger.state import initial_state

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def make_event(name: str, **fields: Any) -> Json:
    return {"event": str(name), "fields": dict(fields)}


@dataclass
class Outcome:
    """What a state mutation hands back to the store.

    `events` are recorded only if the mutation commits.
    """

    result: Any = None
    events: List[Json] = field(default_factory=list)


Mutation = Callable[[Json], Outcome]


@runtime_checkable
class StateStore(Protocol):
    def exists(self) -> bool: ...

    def read(self) -> Json: ...

    def write(self, st: Json) -> None: ...

    def update(self, mut: Mutation) -> Outcome: ...

    def events(self, limit: int = 100) -> List[Json]: ...


def _stamp(events: List[Json], *, first_seq: int, ts_ms: int) -> List[Json]:
    out: List[Json] = []
    for i, ev in enumerate(events):
        rec = dict(ev)
        rec["seq"] = first_seq + i
        rec["ts_ms"] = ts_ms
        out.append(rec)
    return out


class MemoryStateStore:
    """In-process store: copy, mutate, swap.

    A mutation that raises leaves the committed state and the event list
    untouched.
    """

    def __init__(self, st: Optional[Json] = None) -> None:
        self._lock = threading.RLock()
        self._st: Json = copy.deepcopy(st) if st is not None else initial_state()
        self._events: List[Json] = []

    def exists(self) -> bool:
        return True

    def read(self) -> Json:
        with self._lock:
            return copy.deepcopy(self._st)

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("state write expects dict")
        with self._lock:
            self._st = copy.deepcopy(st)

    def update(self, mut: Mutation) -> Outcome:
        with self._lock:
            work = copy.deepcopy(self._st)
            outcome = mut(work)
            stamped = _stamp(list(outcome.events), first_seq=len(self._events) + 1, ts_ms=_now_ms())
            self._st = work
            self._events.extend(stamped)
            return Outcome(result=outcome.result, events=stamped)

    def events(self, limit: int = 100) -> List[Json]:
        n = max(0, int(limit))
        with self._lock:
            if n == 0:
                return []
            return copy.deepcopy(self._events[-n:])
