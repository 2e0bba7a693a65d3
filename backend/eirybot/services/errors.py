# /eirybot/services/errors.py

# Exceptions raised by the service layer. Routes translate them into HTTP
# responses; the pure engine never raises any of these.


class SessionNotFoundError(Exception):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionConflictError(Exception):
    """The session moved while a transition was being applied."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} was updated concurrently")
        self.session_id = session_id


class DuplicateEventError(Exception):
    """A bot message for this step has already been logged in the current turn."""

    def __init__(self, session_id: str, step_id: str | None):
        super().__init__(f"Duplicate bot message for session {session_id}, step {step_id}")
        self.session_id = session_id
        self.step_id = step_id
