"""
Form wizard client.

Talks to the progress upsert endpoint the same way the browser wizard
does: keystrokes are saved after a short debounce, option picks and step
changes are saved immediately, and advancing cancels any pending
debounced save so a stale value is never written after the user moved on.
Network failures only flip ``pending_sync``; local answers are kept.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from lead_scoring.form_config import FormConfig, Question, get_sorted_questions, normalize_config

from .state import LocalStateStore, WizardState

logger = logging.getLogger(__name__)

AUTOSAVE_DELAY_SECONDS = 0.4


class WizardClient:
    """
    Client-side state machine for the multi-step form.

    Args:
        base_url: API root, e.g. http://localhost:8000
        store: Local persistence for resumable state
        config: Form config; fetched from the API on open() when omitted
        autosave_delay: Debounce for change_answer saves, in seconds
        transport: Optional httpx transport (tests)
    """

    def __init__(
        self,
        base_url: str,
        store: LocalStateStore,
        config: Optional[FormConfig] = None,
        autosave_delay: float = AUTOSAVE_DELAY_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        url_origem: Optional[str] = None,
        utm: Optional[Dict[str, str]] = None,
    ):
        self.store = store
        self.config = config
        self.autosave_delay = autosave_delay
        self.url_origem = url_origem
        self.utm = utm or {}
        self.state: Optional[WizardState] = None
        self.last_error: Optional[str] = None
        self._autosave: Optional[asyncio.Task] = None
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=10.0)

    @property
    def questions(self) -> List[Question]:
        return get_sorted_questions(self.config) if self.config else []

    @property
    def total_steps(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[Question]:
        if not self.state or not self.questions:
            return None
        return self.questions[min(self.state.current_step, self.total_steps) - 1]

    @property
    def pending_sync(self) -> bool:
        return bool(self.state and self.state.pending_sync)

    async def open(self, selected_country: Optional[str] = None) -> WizardState:
        """Load config and any resumable state; re-sync if the last save failed."""
        if self.config is None:
            response = await self._http.get("/api/v1/form-config")
            response.raise_for_status()
            self.config = normalize_config(response.json())

        self.state = self.store.load()
        if self.state is None:
            self.state = WizardState.new(selected_country=selected_country)
            self.store.save(self.state)
        else:
            self.state.current_step = max(1, min(self.state.current_step, self.total_steps))
            if self.state.pending_sync or self.state.last_answered_step > 0:
                await self.resume()
        return self.state

    def _cancel_autosave(self) -> None:
        if self._autosave is not None and not self._autosave.done():
            self._autosave.cancel()
        self._autosave = None

    def change_answer(self, question_id: str, value: str) -> None:
        """Update a typed answer locally and schedule a debounced save."""
        self.state.answers[question_id] = value
        self.store.save(self.state)

        self._cancel_autosave()
        step = self.state.current_step
        self._autosave = asyncio.ensure_future(self._debounced_save(step))

    async def _debounced_save(self, step: int) -> None:
        await asyncio.sleep(self.autosave_delay)
        await self.persist(step)

    async def select_option(self, question_id: str, value: str) -> Optional[Dict[str, Any]]:
        """Pick a select option and save immediately."""
        self.state.answers[question_id] = value
        question = self.config.find_question(question_id) if self.config else None
        if question is not None and question.conditional_field is not None:
            if value != question.conditional_field.show_when:
                self.state.answers[question.conditional_field.id] = ""
        self.store.save(self.state)
        return await self.persist(self.state.current_step)

    async def advance(self) -> Optional[Dict[str, Any]]:
        """Move to the next step and save the one just answered."""
        self._cancel_autosave()
        question_number = self.state.current_step
        self.state.current_step = min(self.state.current_step + 1, self.total_steps)
        self.store.save(self.state)
        return await self.persist(question_number)

    def back(self) -> None:
        self._cancel_autosave()
        self.state.current_step = max(1, self.state.current_step - 1)
        self.store.save(self.state)

    async def finish(self) -> Optional[Dict[str, Any]]:
        """Submit the last step; local state is discarded once the server accepted it."""
        self._cancel_autosave()
        elapsed = int((datetime.utcnow() - self.state.started_at).total_seconds())
        lead = await self.persist(self.total_steps, mark_complete=True, total_time_seconds=max(0, elapsed))
        if lead is not None:
            self.store.clear()
        return lead

    async def resume(self) -> Optional[Dict[str, Any]]:
        """Retry the last unsynced save."""
        step = self.state.last_answered_step or self.state.current_step
        return await self.persist(step)

    async def close(self) -> None:
        """Discard local state and release the HTTP client."""
        self._cancel_autosave()
        self.store.clear()
        self.state = None
        await self._http.aclose()

    def build_payload(
        self,
        question_number: int,
        mark_complete: bool = False,
        total_time_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sessionId": self.state.session_id,
            "questionNumber": question_number,
            "answers": {k: v.strip() for k, v in self.state.answers.items()},
            "formCompleto": mark_complete,
            "startedAt": self.state.started_at.isoformat(),
        }
        if total_time_seconds is not None:
            payload["totalTimeSeconds"] = total_time_seconds
        if self.url_origem:
            payload["urlOrigem"] = self.url_origem
        for key in ("source", "medium", "campaign"):
            if self.utm.get(key):
                payload[f"utm{key.capitalize()}"] = self.utm[key]
        return payload

    async def persist(
        self,
        question_number: int,
        mark_complete: bool = False,
        total_time_seconds: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Send progress to the server.

        Returns the lead on success, None on failure (``pending_sync`` stays
        True and the answers stay in local storage).
        """
        payload = self.build_payload(question_number, mark_complete, total_time_seconds)
        self.state.pending_sync = True
        self.store.save(self.state)
        try:
            response = await self._http.post("/api/v1/form-leads/progress", json=payload)
            response.raise_for_status()
            lead = response.json()
        except httpx.HTTPError as e:
            self.last_error = str(e)
            logger.warning(f"Failed to sync lead progress for {self.state.session_id}: {e}")
            return None

        self.last_error = None
        self.state.pending_sync = False
        self.state.last_answered_step = max(self.state.last_answered_step, question_number)
        self.store.save(self.state)
        return lead
