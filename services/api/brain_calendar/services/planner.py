"""Reschedule planner: eligibility and ranked candidate slots for an event."""

import logging
from dataclasses import dataclass
from typing import Iterable

from brain_calendar.schemas.calendar import MOVABLE_LOCK_STATES, CalendarEventRead
from brain_calendar.services.time_windows import (
    MINUTE_MS,
    TimeRange,
    clamp_within_window,
    find_free_slots,
    merge_ranges,
)

logger = logging.getLogger(__name__)

MIN_DURATION_MINUTES = 15
TOP_SCORE = 100
SCORE_STEP = 5
DAY_MS = 24 * 60 * MINUTE_MS

ALTERNATIVES_NOTE = (
    "Proposed alternatives avoid overlapping your other commitments and keep your day feasible."
)
GENERIC_RATIONALE = f"This event conflicts with your current plan. {ALTERNATIVES_NOTE}"


@dataclass(frozen=True)
class ProposalOption:
    """One candidate replacement slot for an event."""

    start_at: int
    end_at: int
    score: int
    explain: str

    def to_dict(self) -> dict:
        return {
            "start_at": self.start_at,
            "end_at": self.end_at,
            "score": self.score,
            "explain": self.explain,
        }


@dataclass(frozen=True)
class RescheduleDraft:
    """Planner output: an overall rationale plus options ranked best-first."""

    rationale: str
    options: tuple[ProposalOption, ...]


def should_move_event(event: CalendarEventRead, *, move_without_policy: bool = True) -> bool:
    """Whether the scheduler may propose a new time for ``event``.

    Locked and sensitive events are never moved. Events without a policy are
    treated as flexible unless ``move_without_policy`` is False.
    """
    if event.policy is None:
        return move_without_policy
    return event.policy.lock_state in MOVABLE_LOCK_STATES


def _duration_minutes(event: CalendarEventRead) -> int:
    return max(MIN_DURATION_MINUTES, round((event.end_at - event.start_at) / MINUTE_MS))


def _shift_bound_ms(event: CalendarEventRead) -> int | None:
    policy = event.policy
    if policy is None:
        return None
    bounds = []
    if policy.max_shift_minutes is not None:
        bounds.append(policy.max_shift_minutes * MINUTE_MS)
    if policy.max_shift_days is not None:
        bounds.append(policy.max_shift_days * DAY_MS)
    return min(bounds) if bounds else None


def _search_windows(
    event: CalendarEventRead,
    search_window: TimeRange,
    duration_minutes: int,
    respect_shift_bounds: bool,
) -> list[TimeRange]:
    """Narrow the search window by shift bounds and the policy's allowed windows."""
    window: TimeRange | None = search_window

    bound = _shift_bound_ms(event) if respect_shift_bounds else None
    if bound is not None:
        reach = TimeRange(
            start_at=event.start_at - bound,
            end_at=event.start_at + bound + duration_minutes * MINUTE_MS,
        )
        window = clamp_within_window(reach, search_window)

    if window is None:
        return []

    allowed = event.policy.allowed_windows if event.policy else None
    if not allowed:
        return [window]

    # Overlapping windows would otherwise yield the same slot twice
    clamped = (clamp_within_window(w.to_range(), window) for w in allowed)
    return merge_ranges(w for w in clamped if w is not None)


def _format_offset(delta_ms: int) -> str:
    if delta_ms == 0:
        return "at the same time as"
    direction = "later than" if delta_ms > 0 else "earlier than"
    total_minutes = abs(delta_ms) // MINUTE_MS
    days, rem = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rem, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes or not parts:
        parts.append(f"{minutes}m")
    return f"{' '.join(parts)} {direction}"


def _explain(index: int, slot: TimeRange, original_start: int) -> str:
    label = "Earliest conflict-free slot" if index == 0 else "Alternative conflict-free slot"
    offset = _format_offset(slot.start_at - original_start)
    return f"{label}, {offset} the original time. Keeps the original duration."


def _rationale(event: CalendarEventRead) -> str:
    policy = event.policy
    if policy is not None and policy.content_sharing == "full" and event.title:
        return f'"{event.title}" conflicts with your current plan. {ALTERNATIVES_NOTE}'
    return GENERIC_RATIONALE


def propose_reschedule(
    event: CalendarEventRead,
    busy: Iterable[TimeRange],
    search_window: TimeRange,
    *,
    step_minutes: int = 15,
    max_slots: int = 3,
    respect_shift_bounds: bool = False,
) -> RescheduleDraft:
    """Find up to ``max_slots`` conflict-free replacement slots for ``event``.

    The original duration is preserved (floored at 15 minutes). Options are
    scored 100, 95, 90, ... in discovery order, so earlier slots rank higher.
    Identical inputs always produce identical output. An empty ``options``
    tuple means no free slot exists in the window; callers must not send
    such a proposal.
    """
    busy = list(busy)
    duration_minutes = _duration_minutes(event)

    slots: list[TimeRange] = []
    for window in _search_windows(event, search_window, duration_minutes, respect_shift_bounds):
        remaining = max_slots - len(slots)
        if remaining <= 0:
            break
        slots.extend(find_free_slots(window, busy, duration_minutes, step_minutes, remaining))

    options = tuple(
        ProposalOption(
            start_at=slot.start_at,
            end_at=slot.end_at,
            score=TOP_SCORE - SCORE_STEP * i,
            explain=_explain(i, slot, event.start_at),
        )
        for i, slot in enumerate(slots[:max_slots])
    )

    logger.debug("Planned %d option(s) for event %s", len(options), event.id)
    return RescheduleDraft(rationale=_rationale(event), options=options)
