"""Weighted productivity score."""

from __future__ import annotations

import math
from types import MappingProxyType
from typing import Final, Mapping, Sequence

from devtracker.core.defaults import MAX_EVENT_WEIGHT
from devtracker.core.types import ActivityEvent, ActivityType

# Creation and commits weigh most; passive, close and focus events weigh nothing.
EVENT_WEIGHTS: Final[Mapping[ActivityType, int]] = MappingProxyType({
    ActivityType.FILE_EDIT: 3,
    ActivityType.FILE_SAVE: 2,
    ActivityType.FILE_CREATE: 4,
    ActivityType.DEBUG_START: 2,
    ActivityType.GIT_COMMIT: 5,
    ActivityType.COMMAND_EXECUTE: 1,
    ActivityType.FILE_OPEN: 1,
    ActivityType.FILE_CLOSE: 0,
    ActivityType.FILE_SWITCH: 1,
    ActivityType.FILE_DELETE: 1,
    ActivityType.FILE_RENAME: 1,
    ActivityType.DEBUG_STOP: 0,
    ActivityType.DEBUG_BREAKPOINT: 1,
    ActivityType.TERMINAL_OPEN: 1,
    ActivityType.TERMINAL_CLOSE: 0,
    ActivityType.EXTENSION_INSTALL: 1,
    ActivityType.EXTENSION_UNINSTALL: 0,
    ActivityType.WORKSPACE_OPEN: 0,
    ActivityType.WORKSPACE_CLOSE: 0,
    ActivityType.FOCUS_GAINED: 0,
    ActivityType.FOCUS_LOST: 0,
    ActivityType.TASK_START: 2,
    ActivityType.TASK_END: 1,
    ActivityType.GIT_PUSH: 3,
    ActivityType.GIT_PULL: 2,
    ActivityType.SEARCH_PERFORMED: 1,
})


def productivity_score(events: Sequence[ActivityEvent]) -> int:
    """Weighted event sum as a percentage of the maximum possible, in ``[0, 100]``.

    Returns 0 for an empty sequence.
    """
    if not events:
        return 0
    score = sum(EVENT_WEIGHTS.get(e.type, 0) for e in events)
    ceiling = len(events) * MAX_EVENT_WEIGHT
    # Halves round up.
    return max(0, min(100, math.floor(score * 100 / ceiling + 0.5)))
