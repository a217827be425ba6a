"""
Team session normalization.

Game clients have written team progress under several shapes over time: a
``session`` child, a legacy ``Session`` child, or loose fields on the team
node itself, with a few different names for the same counters. Everything
that reads progress goes through ``normalize_session`` so dashboards only
ever see the canonical shape.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

STATUS_NOT_STARTED = 'not_started'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_PAUSED = 'paused'
STATUS_COMPLETED = 'completed'

# Loose fields that mark a team node as carrying session data inline
INLINE_SESSION_FIELDS = ('currentClueNumber', 'cluesCompleted', 'gameStarted', 'started', 'status')

# Canonical name -> legacy names, most preferred first
_ALIASES = {
    'currentClueNumber': ('currentClueNumber', 'currentClue', 'currentLevel'),
    'cluesCompleted': ('cluesCompleted', 'cluesSolved'),
    'started': ('started', 'gameStarted', 'isActive'),
}


@dataclass
class Session:
    cluesCompleted: int = 0
    currentClueNumber: int = 0
    started: bool = False
    status: str = STATUS_NOT_STARTED
    totalClues: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.totalClues is None:
            data.pop('totalClues')
        return data


def default_session() -> Session:
    return Session()


def normalize_session(node: Optional[Mapping[str, Any]]) -> Session:
    """
    Canonical session for a team node.

    Tries ``session``, then ``Session``, then inline session fields, then the
    not-started default. Never raises on missing or malformed data.
    """
    if not isinstance(node, Mapping):
        return default_session()

    for key in ('session', 'Session'):
        raw = node.get(key)
        if isinstance(raw, Mapping):
            return _from_mapping(raw)

    inline = {k: node[k] for k in INLINE_SESSION_FIELDS if node.get(k) is not None}
    if inline:
        return _from_mapping(inline)

    return default_session()


def _from_mapping(raw: Mapping[str, Any]) -> Session:
    clue_number = _as_int(_first(raw, 'currentClueNumber'))
    completed = _as_int(_first(raw, 'cluesCompleted'))
    started = bool(_first(raw, 'started'))
    total = raw.get('totalClues')
    total = _as_int(total) if total is not None else None

    status = raw.get('status')
    if not isinstance(status, str) or not status:
        status = _derive_status(started, completed, total)
    elif status == 'active':
        status = STATUS_IN_PROGRESS

    return Session(
        cluesCompleted=completed,
        currentClueNumber=clue_number,
        started=started,
        status=status,
        totalClues=total,
    )


def _derive_status(started: bool, completed: int, total: Optional[int]) -> str:
    if total and completed >= total:
        return STATUS_COMPLETED
    if started or completed > 0:
        return STATUS_IN_PROGRESS
    return STATUS_NOT_STARTED


def _first(raw: Mapping[str, Any], canonical: str) -> Any:
    for name in _ALIASES[canonical]:
        value = raw.get(name)
        if value is not None:
            return value
    return None


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric session value {value!r}")
        return 0
