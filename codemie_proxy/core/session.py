"""Process-wide session identifier."""

import threading
import uuid


_session_id: str | None = None
_lock = threading.Lock()


def get_session_id() -> str:
    """Return the session id shared by every request in this process."""
    global _session_id

    if _session_id is None:
        with _lock:
            if _session_id is None:
                _session_id = str(uuid.uuid4())
    return _session_id


def reset_session_id() -> None:
    """Forget the current session id so the next call generates a new one."""
    global _session_id

    with _lock:
        _session_id = None
