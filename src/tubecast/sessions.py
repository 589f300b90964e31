from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .errors import SessionNotFound
from .progress import ProgressChannel

logger = logging.getLogger(__name__)


@dataclass
class Session:
    id: str
    channel: ProgressChannel = field(default_factory=ProgressChannel)


class SessionRegistry:
    """Maps session ids to their progress channels.

    ``create``, ``get`` and ``remove`` share one lock, so a reader attaching
    while a job finishes sees either the live channel or ``SessionNotFound``.
    Ids are random UUIDs and are never handed out twice.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self) -> Tuple[str, ProgressChannel]:
        session = Session(id=str(uuid.uuid4()))
        with self._lock:
            self._sessions[session.id] = session
        logger.debug("Session created: %s", session.id)
        return session.id, session.channel

    def get(self, session_id: str) -> ProgressChannel:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session.channel

    def remove(self, session_id: str) -> None:
        """Drop the session and close its channel. Unknown ids are ignored."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.channel.close()
        logger.debug("Session removed: %s", session_id)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)
