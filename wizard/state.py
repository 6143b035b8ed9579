"""
Client-local wizard state.

Mirrors what the browser keeps in localStorage: enough to resume a
half-filled form after a reload. The whole record is discarded once it is
older than 24 hours or when the wizard is closed explicitly.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

EXPIRATION = timedelta(hours=24)


@dataclass
class WizardState:
    session_id: str
    answers: Dict[str, str] = field(default_factory=dict)
    current_step: int = 1
    last_answered_step: int = 0
    started_at: datetime = field(default_factory=datetime.utcnow)
    last_updated_at: datetime = field(default_factory=datetime.utcnow)
    pending_sync: bool = False
    selected_country: Optional[str] = None

    @classmethod
    def new(cls, selected_country: Optional[str] = None) -> "WizardState":
        return cls(session_id=str(uuid.uuid4()), selected_country=selected_country)

    def touch(self) -> None:
        self.last_updated_at = datetime.utcnow()

    def is_expired(self, now: Optional[datetime] = None, max_age: timedelta = EXPIRATION) -> bool:
        now = now or datetime.utcnow()
        return now - self.last_updated_at > max_age

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "answers": dict(self.answers),
            "currentStep": self.current_step,
            "lastAnsweredStep": self.last_answered_step,
            "startedAt": self.started_at.isoformat(),
            "lastUpdatedAt": self.last_updated_at.isoformat(),
            "pendingSync": self.pending_sync,
            "selectedCountry": self.selected_country,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WizardState":
        """
        Raises:
            KeyError, ValueError, TypeError: on a malformed record
        """
        return cls(
            session_id=data["sessionId"],
            answers={str(k): str(v) for k, v in (data.get("answers") or {}).items()},
            current_step=int(data.get("currentStep", 1)),
            last_answered_step=int(data.get("lastAnsweredStep", 0)),
            started_at=datetime.fromisoformat(data["startedAt"]),
            last_updated_at=datetime.fromisoformat(data["lastUpdatedAt"]),
            pending_sync=bool(data.get("pendingSync", False)),
            selected_country=data.get("selectedCountry"),
        )


class LocalStateStore:
    """JSON file holding a single WizardState."""

    def __init__(self, path: Path, max_age: timedelta = EXPIRATION):
        self.path = Path(path)
        self.max_age = max_age

    def load(self, now: Optional[datetime] = None) -> Optional[WizardState]:
        """Stored state, or None when absent, unreadable or expired (the file is then removed)."""
        if not self.path.exists():
            return None
        try:
            state = WizardState.from_dict(json.loads(self.path.read_text(encoding="utf-8")))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable wizard state {self.path}: {e}")
            self.clear()
            return None

        if not state.session_id or state.is_expired(now, self.max_age):
            logger.info(f"Discarding expired wizard state for session {state.session_id}")
            self.clear()
            return None
        return state

    def save(self, state: WizardState) -> None:
        state.touch()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(state.to_dict()), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
