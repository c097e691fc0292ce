# whatif_engine/life_events.py

from __future__ import annotations

import json
from dataclasses import dataclass
from json.decoder import JSONDecodeError
from typing import Iterable, Iterator, Optional

from debug import *
from whatif_engine.plan_types import (
    EVENT_TYPES,
    ErrorKind,
    LifeEvent,
    PlanDataError,
    is_finite_number,
)


def validate_life_events(life_events, context: str = "(life_events)") -> list[str]:
    """Return a list of validation error strings for a raw life_events list."""
    errors: list[str] = []
    if life_events is None:
        return errors
    if not isinstance(life_events, list):
        return [f"{context}: life_events must be a list"]

    seen_ids = set()
    for idx, ev in enumerate(life_events):
        if not isinstance(ev, dict):
            errors.append(f"{context}: life_events[{idx}] must be an object")
            continue

        name = ev.get("description") or ev.get("id") or f"life_events[{idx}]"
        where = f"{context}: {name}"

        age = ev.get("age")
        if isinstance(age, bool) or not isinstance(age, int):
            if not (isinstance(age, float) and age.is_integer()):
                errors.append(f"{where}: age must be a whole number of years")

        amount = ev.get("amount")
        if not is_finite_number(amount):
            errors.append(f"{where}: amount must be a number")
        elif amount <= 0:
            errors.append(f"{where}: amount must be greater than zero (use eventType for direction)")

        et = ev.get("eventType")
        if et not in EVENT_TYPES:
            errors.append(f"{where}: eventType is '{et}', expected one of {list(EVENT_TYPES)}")

        ev_id = ev.get("id")
        if ev_id is not None:
            if ev_id in seen_ids:
                errors.append(f"{where}: duplicate life event id '{ev_id}'")
            seen_ids.add(ev_id)

    return errors


def parse_life_events(raw, context: str = "(life_events)") -> tuple[LifeEvent, ...]:
    """
    Turn the stored life_events value into LifeEvent records sorted by age.

    Accepts a list of event objects, or the legacy JSON-encoded string form.
    None / "" mean no events. Anything else that doesn't parse raises
    PlanDataError(MALFORMED_LIFE_EVENTS); nothing is silently dropped.
    """
    if raw is None:
        return ()

    if isinstance(raw, str):
        if not raw.strip():
            return ()
        try:
            raw = json.loads(raw)
        except JSONDecodeError as e:
            raise PlanDataError(
                ErrorKind.MALFORMED_LIFE_EVENTS,
                f"{context}: life events string is not valid JSON (line {e.lineno}: {e.msg})",
            ) from e

    errors = validate_life_events(raw, context)
    if errors:
        raise PlanDataError(ErrorKind.MALFORMED_LIFE_EVENTS,
                            f"{context}: {len(errors)} invalid life event(s)", errors)

    events = []
    for idx, ev in enumerate(raw):
        events.append(LifeEvent(
            id=str(ev.get("id") or f"event-{idx + 1}"),
            age=int(ev["age"]),
            amount=float(ev["amount"]),
            description=str(ev.get("description", "")),
            event_type=ev["eventType"],
        ))

    debug(VVERBOSE, "Parsed {} life events from {}", len(events), context)
    # stable sort keeps entry order for events sharing an age
    return tuple(sorted(events, key=lambda e: e.age))


def net_by_age(events: Iterable[LifeEvent]) -> dict[int, float]:
    """Net signed amount per age (income positive, expense negative)."""
    net: dict[int, float] = {}
    for ev in events:
        net[ev.age] = net.get(ev.age, 0.0) + ev.signed_amount
    return net


@dataclass(frozen=True)
class LifeEventLedger:
    """An immutable, age-ordered set of one-off cash events."""
    events: tuple[LifeEvent, ...] = ()

    @classmethod
    def from_raw(cls, raw, context: str = "(life_events)") -> "LifeEventLedger":
        return cls(parse_life_events(raw, context))

    @classmethod
    def of(cls, events: Iterable[LifeEvent]) -> "LifeEventLedger":
        return cls(tuple(sorted(events, key=lambda e: e.age)))

    def __iter__(self) -> Iterator[LifeEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def __bool__(self) -> bool:
        return bool(self.events)

    def add(self, event: LifeEvent) -> "LifeEventLedger":
        if any(ev.id == event.id for ev in self.events):
            raise PlanDataError(ErrorKind.MALFORMED_LIFE_EVENTS,
                                f"Life event id '{event.id}' already in ledger")
        if event.amount <= 0 or event.event_type not in EVENT_TYPES:
            raise PlanDataError(ErrorKind.MALFORMED_LIFE_EVENTS,
                                f"Life event '{event.id}' needs a positive amount and an income/expense type")
        return LifeEventLedger.of(self.events + (event,))

    def remove(self, event_id: str) -> "LifeEventLedger":
        return LifeEventLedger(tuple(ev for ev in self.events if ev.id != event_id))

    def get(self, event_id: str) -> Optional[LifeEvent]:
        for ev in self.events:
            if ev.id == event_id:
                return ev
        return None

    def ages(self) -> list[int]:
        return sorted({ev.age for ev in self.events})

    def net_by_age(self) -> dict[int, float]:
        return net_by_age(self.events)

    def to_dicts(self) -> list[dict]:
        return [ev.to_dict() for ev in self.events]
