# leadgen/queueing/transitions.py
"""
Pipeline state machine as data.

Every stage run ends in one Outcome. TRANSITIONS maps (stage, outcome) to
the Action the job runner applies to the lead and the queue:

    find-domain    found      → write domain, open downstream stages, enqueue them
    find-domain    not_found  → lead completed (nothing to enrich)
    find-domain    retry      → re-enqueue with backoff
    find-domain    failed     → lead failed
    find-executive found / not_found  → close stage (write ceo_name if any)
    find-executive retry      → re-enqueue with backoff
    find-executive failed     → close stage as failed
    find-email     (same shape as find-executive)

A downstream stage closing is what moves the lead to its terminal status:
when no stage remains open the lead is failed if any stage failed, else
completed ("processed, nothing found" is success).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from leadgen.exceptions import InvalidJobError
from leadgen.queueing.jobs import DOWNSTREAM_TASKS, FIND_DOMAIN


class Outcome(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    RETRY = "retry"
    FAILED = "failed"


@dataclass(frozen=True)
class Action:
    # find-domain only
    enqueue_downstream: bool = False
    terminal_status: str | None = None
    # downstream stages
    close_stage: bool = False
    stage_failed: bool = False
    # any stage
    reschedule: bool = False


_RETRY = Action(reschedule=True)

TRANSITIONS: dict[tuple[str, Outcome], Action] = {
    (FIND_DOMAIN, Outcome.FOUND): Action(enqueue_downstream=True),
    (FIND_DOMAIN, Outcome.NOT_FOUND): Action(terminal_status="completed"),
    (FIND_DOMAIN, Outcome.RETRY): _RETRY,
    (FIND_DOMAIN, Outcome.FAILED): Action(terminal_status="failed"),
}
for _stage in DOWNSTREAM_TASKS:
    TRANSITIONS[(_stage, Outcome.FOUND)] = Action(close_stage=True)
    TRANSITIONS[(_stage, Outcome.NOT_FOUND)] = Action(close_stage=True)
    TRANSITIONS[(_stage, Outcome.RETRY)] = _RETRY
    TRANSITIONS[(_stage, Outcome.FAILED)] = Action(close_stage=True, stage_failed=True)


def next_action(stage: str, outcome: Outcome) -> Action:
    try:
        return TRANSITIONS[(stage, outcome)]
    except KeyError as exc:
        raise InvalidJobError(f"no transition for ({stage!r}, {outcome!r})") from exc


__all__ = ["Outcome", "Action", "TRANSITIONS", "next_action"]
