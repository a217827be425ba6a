"""
Team/score store.

Holds the team roster the game writes upstream and the physical-challenge
scores volunteers award. Subscribers receive the full roster, sorted by team
number, when they subscribe and again after every mutation made through the
store.

Physical scores have two write paths: a direct partial update of
``physicalScore`` (the quick volunteer form) and a ledger of score entries.
Finalizing a ledger entry locks it and sets ``physicalScore`` to the sum of
all finalized entries for the team.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from treasure_hunt.errors import (
    InvalidScore,
    InvalidTeamNode,
    ScoreEntryFinalized,
    ScoreEntryNotFound,
    TeamNotFound,
)

from ..models import db, TeamNode, PhysicalScoreEntry, utcnow

logger = logging.getLogger(__name__)

RosterCallback = Callable[[List[Dict[str, Any]]], None]


class TeamStore:
    """Team roster and physical score ledger over Flask-SQLAlchemy."""

    def __init__(self):
        self._subscribers: List[RosterCallback] = []
        self._lock = threading.Lock()

    # ─────────────────────────────────────────────────────────────────────────
    # Subscriptions
    # ─────────────────────────────────────────────────────────────────────────

    def subscribe(self, on_change: RosterCallback) -> Callable[[], None]:
        """Register ``on_change`` and deliver the current roster. Returns the unsubscribe hook."""
        with self._lock:
            self._subscribers.append(on_change)
        on_change(self.list_teams())

        def unsubscribe() -> None:
            with self._lock:
                if on_change in self._subscribers:
                    self._subscribers.remove(on_change)

        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        if not subscribers:
            return
        roster = self.list_teams()
        for callback in subscribers:
            try:
                callback(roster)
            except Exception:
                logger.exception("Roster subscriber failed")

    # ─────────────────────────────────────────────────────────────────────────
    # Teams
    # ─────────────────────────────────────────────────────────────────────────

    def list_teams(self) -> List[Dict[str, Any]]:
        teams = TeamNode.query.order_by(TeamNode.team_number, TeamNode.uid).all()
        return [t.to_node() for t in teams]

    def get_team(self, uid: str) -> TeamNode:
        team = TeamNode.query.filter_by(uid=uid).first()
        if team is None:
            raise TeamNotFound(f"Team not found with UID '{uid}'", payload={'uid': uid})
        return team

    def upsert_node(self, uid: str, node: Dict[str, Any]) -> TeamNode:
        """
        Write a whole team node as the upstream game does.

        Raises:
            InvalidTeamNode: the node has no ``teamName``
        """
        if not isinstance(node, dict) or not node.get('teamName'):
            raise InvalidTeamNode(f"Node '{uid}' has no teamName", payload={'uid': uid})

        team = TeamNode.query.filter_by(uid=uid).first()
        if team is None:
            team = TeamNode(uid=uid)
            db.session.add(team)
            logger.info(f"Adding team {uid}")
        team.apply_node(node)
        db.session.commit()

        self._notify()
        return team

    def update_physical_score(self, uid: str, score: int, comment: Optional[str] = None) -> TeamNode:
        """
        Set a team's physical score, and its comment when one is given.

        Raises:
            TeamNotFound: unknown uid
            InvalidScore: negative or non-integer score
        """
        score = _validate_score(score)
        team = self.get_team(uid)

        team.physical_score = score
        if comment is not None:
            team.physical_score_comment = comment
        db.session.commit()
        logger.info(f"Physical score for {uid} set to {score}")

        self._notify()
        return team

    # ─────────────────────────────────────────────────────────────────────────
    # Ledger
    # ─────────────────────────────────────────────────────────────────────────

    def add_score_entry(
        self,
        uid: str,
        score: int,
        volunteer_name: str = '',
        benchmark: str = '',
    ) -> PhysicalScoreEntry:
        score = _validate_score(score, allow_negative=True)
        team = self.get_team(uid)
        entry = PhysicalScoreEntry(
            team=team,
            score=score,
            volunteer_name=(volunteer_name or '').strip(),
            benchmark=(benchmark or '').strip(),
        )
        db.session.add(entry)
        db.session.commit()
        logger.info(f"Score entry {entry.id} for {uid}: {score}")
        return entry

    def edit_score_entry(
        self,
        entry_id: int,
        uid: Optional[str] = None,
        score: Optional[int] = None,
        volunteer_name: Optional[str] = None,
        benchmark: Optional[str] = None,
    ) -> PhysicalScoreEntry:
        entry = self._get_entry(entry_id, uid)
        if entry.is_added:
            raise ScoreEntryFinalized(
                f"Score entry {entry_id} is finalized and cannot be changed",
                payload={'entryId': entry_id},
            )
        if score is not None:
            entry.score = _validate_score(score, allow_negative=True)
        if volunteer_name is not None:
            entry.volunteer_name = volunteer_name.strip()
        if benchmark is not None:
            entry.benchmark = benchmark.strip()
        db.session.commit()
        return entry

    def finalize_score_entry(self, entry_id: int, uid: Optional[str] = None) -> PhysicalScoreEntry:
        """Lock an entry and recompute the team's physical score as the net of finalized entries."""
        entry = self._get_entry(entry_id, uid)
        if entry.is_added:
            raise ScoreEntryFinalized(
                f"Score entry {entry_id} is already finalized",
                payload={'entryId': entry_id},
            )

        entry.is_added = True
        entry.finalized_at = utcnow()
        team = entry.team
        team.physical_score = self.net_physical_score(team.uid)
        db.session.commit()
        logger.info(f"Finalized score entry {entry_id}; {team.uid} now at {team.physical_score}")

        self._notify()
        return entry

    def net_physical_score(self, uid: str) -> int:
        team = self.get_team(uid)
        return sum(e.score for e in team.score_entries if e.is_added)

    def list_score_entries(self, uid: str) -> List[PhysicalScoreEntry]:
        return list(self.get_team(uid).score_entries)

    def _get_entry(self, entry_id: int, uid: Optional[str] = None) -> PhysicalScoreEntry:
        entry = db.session.get(PhysicalScoreEntry, entry_id)
        if entry is None or (uid is not None and entry.team.uid != uid):
            raise ScoreEntryNotFound(f"Score entry {entry_id} not found", payload={'entryId': entry_id})
        return entry


def _validate_score(score: Any, allow_negative: bool = False) -> int:
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not float(score).is_integer():
        raise InvalidScore(f"Score must be a whole number, got {score!r}")
    score = int(score)
    if score < 0 and not allow_negative:
        raise InvalidScore("Physical score cannot be negative")
    return score
