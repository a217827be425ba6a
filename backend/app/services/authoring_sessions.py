"""
Registry of live authoring sessions.

The browser owns the camera and the GPS, so each web session pairs an
``AuthoringWorkflow`` with an ``UploadedFrameStream`` (frames posted by the
page) and a ``FixedLocation`` (the fix posted alongside each frame).
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Dict, Optional

from treasure_hunt.capture import UploadedFrameStream
from treasure_hunt.errors import TreasureHuntError
from treasure_hunt.hunt import TreasureHunt
from treasure_hunt.location import FixedLocation
from treasure_hunt.workflow import AuthoringWorkflow, WorkflowState

logger = logging.getLogger(__name__)


class SessionNotFound(TreasureHuntError):
    code = 'session_not_found'
    status_code = 404


@dataclass
class AuthoringSession:
    id: str
    workflow: AuthoringWorkflow
    stream: UploadedFrameStream
    location: FixedLocation

    def to_dict(self) -> dict:
        data = self.workflow.to_dict()
        data['sessionId'] = self.id
        return data


class SessionRegistry:
    """
    Workflows keyed by session id.

    Completed sessions stay readable until removed, or until more than
    ``max_completed`` of them pile up; the oldest are then forgotten.
    """

    MAX_COMPLETED = 20

    def __init__(self, hunt: TreasureHunt, max_completed: Optional[int] = None):
        self.hunt = hunt
        self.max_completed = self.MAX_COMPLETED if max_completed is None else max_completed
        self._sessions: Dict[str, AuthoringSession] = {}
        self._lock = threading.Lock()

    def start(
        self,
        max_treasures: Optional[int] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> AuthoringSession:
        """Create a workflow and move it to CAPTURING; nothing is registered on failure."""
        workflow = self.hunt.new_workflow(max_treasures)
        stream = UploadedFrameStream()
        location = FixedLocation(latitude, longitude)
        workflow.start(stream, location)

        session = AuthoringSession(uuid.uuid4().hex, workflow, stream, location)
        with self._lock:
            self._sessions[session.id] = session
            self._prune()
        logger.info(f"Started authoring session {session.id} (quota {workflow.max_treasures})")
        return session

    def get(self, session_id: str) -> AuthoringSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"No authoring session '{session_id}'", payload={'sessionId': session_id})
        return session

    def end(self, session_id: str) -> AuthoringSession:
        session = self.get(session_id)
        session.workflow.end_session()
        with self._lock:
            self._prune(keep=session_id)
        return session

    def remove(self, session_id: str) -> None:
        session = self.get(session_id)
        if session.workflow.state != WorkflowState.COMPLETE:
            session.workflow.end_session()
        with self._lock:
            self._sessions.pop(session_id, None)

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if s.workflow.state != WorkflowState.COMPLETE)

    def _prune(self, keep: Optional[str] = None) -> None:
        # Caller holds the lock; dict order is start order.
        completed = [
            sid for sid, s in self._sessions.items()
            if s.workflow.state == WorkflowState.COMPLETE and sid != keep
        ]
        limit = self.max_completed - (1 if keep is not None else 0)
        excess = len(completed) - max(limit, 0)
        for sid in completed[:max(excess, 0)]:
            del self._sessions[sid]
            logger.debug(f"Forgot completed authoring session {sid}")
