"""
Session state persistence for activity runs.

Enables save/resume so learners can leave an activity and continue later.
Sessions are stored as JSON files in ~/.activity_flow/sessions/
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from loguru import logger

from .session import SessionState

# Default session directory
SESSION_DIR = Path.home() / ".activity_flow" / "sessions"


class SessionStore:
    """
    Manages session persistence.

    Sessions are stored as JSON files with naming: {session_id}.json
    Completed sessions are kept until they expire so hosts can read results.
    """

    def __init__(self, session_dir: Optional[Path] = None, expiry_hours: int = 24):
        self.session_dir = Path(session_dir) if session_dir else SESSION_DIR
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self.expiry_hours = expiry_hours

    def is_expired(self, state: SessionState) -> bool:
        last_saved = datetime.fromisoformat(state.last_saved_at)
        return datetime.now() - last_saved > timedelta(hours=self.expiry_hours)

    def save(self, state: SessionState) -> Path:
        """Save session state to disk."""
        state.last_saved_at = datetime.now().isoformat()
        filepath = self.session_dir / f"{state.session_id}.json"

        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2)

        logger.debug(f"Saved session {state.session_id} at node {state.current_node_id}")
        return filepath

    def load(self, session_id: str) -> Optional[SessionState]:
        """Load a specific session by ID."""
        filepath = self.session_dir / f"{session_id}.json"
        if not filepath.exists():
            return None
        return self._read(filepath)

    def get_latest(self, activity_id: str | None = None) -> Optional[SessionState]:
        """Get the most recent resumable session, optionally for one activity."""
        sessions = [
            state
            for state in self.list_sessions()
            if not state.completed and (activity_id is None or state.activity_id == activity_id)
        ]
        return sessions[0] if sessions else None

    def delete(self, session_id: str) -> bool:
        """Delete a session file."""
        filepath = self.session_dir / f"{session_id}.json"
        if filepath.exists():
            filepath.unlink()
            return True
        return False

    def cleanup_expired(self) -> int:
        """Remove expired and unreadable session files."""
        removed = 0
        for filepath in self.session_dir.glob("*.json"):
            state = self._read(filepath)
            if state is None or self.is_expired(state):
                filepath.unlink()
                removed += 1
        if removed:
            logger.info(f"Removed {removed} expired session file(s)")
        return removed

    def list_sessions(self) -> list[SessionState]:
        """List all non-expired sessions, newest first."""
        sessions = []
        for filepath in self.session_dir.glob("*.json"):
            state = self._read(filepath)
            if state is not None and not self.is_expired(state):
                sessions.append(state)
        return sorted(sessions, key=lambda x: x.last_saved_at, reverse=True)

    def _read(self, filepath: Path) -> Optional[SessionState]:
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
            state = SessionState.from_dict(data)
            # Expiry is computed from this, so it must parse
            datetime.fromisoformat(state.last_saved_at)
            return state
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {filepath.name}: {e}")
            return None
