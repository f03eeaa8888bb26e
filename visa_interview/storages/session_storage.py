from typing import Any, Dict, List, Protocol

from visa_interview.core.models import InterviewSession, ResponseRecord


class SessionRepository(Protocol):
    def save_session(self, session: InterviewSession) -> None: ...

    def save_response(self, session_id: str, index: int, response: ResponseRecord) -> None: ...


class SessionStorage:
    """In-process sink for session records.

    Stores serialized snapshots, so later mutation of the live session does
    not leak into what was persisted.
    """

    def __init__(self):
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._responses: Dict[str, List[Dict[str, Any]]] = {}

    def save_session(self, session: InterviewSession) -> None:
        self._sessions[session.id] = session.to_dict()

    def save_response(self, session_id: str, index: int, response: ResponseRecord) -> None:
        responses = self._responses.setdefault(session_id, [])
        record = response.to_dict()
        if index < len(responses):
            responses[index] = record
        else:
            responses.append(record)

    def get(self, session_id: str) -> Dict[str, Any] | None:
        return self._sessions.get(session_id)

    def responses(self, session_id: str) -> List[Dict[str, Any]]:
        return list(self._responses.get(session_id, []))

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._responses.pop(session_id, None)

    def exists(self, session_id: str) -> bool:
        return session_id in self._sessions
