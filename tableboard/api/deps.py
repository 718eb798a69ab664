from __future__ import annotations

from fastapi import HTTPException, Request

from tableboard.services.board_session import BoardSession


def get_board_session(request: Request) -> BoardSession:
    """Dependency for routes: the process-wide board session."""
    session = getattr(request.app.state, "board_session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Board not ready")
    return session
