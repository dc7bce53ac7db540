"""
Conversation engine: the multi-turn symptom interview.

Each ``submit_turn`` appends a user turn, sends the full prior history to the
oracle, and then either appends the follow-up question (in_progress) or
finalizes: normalize, build a symptom record, persist it, and start a
detached specialist lookup.

Rules:
  - One oracle round-trip in flight per session; a second submit is rejected.
  - Oracle/schema failures append exactly one assistant error turn; the
    result is untouched and the session stays retryable.
  - A record-store failure at finalize appends one assistant turn and then
    propagates; the session stays in progress.
  - Any failure of the detached specialist lookup is logged and dropped.
  - A submit after complete/abandoned starts a fresh session.
  - ``reset()`` bumps the session generation; responses (and lookup results)
    that belong to an older generation are dropped.
  - ``max_unresolved_rounds`` consecutive demotions abandon the interview;
    ``save_as_note`` then keeps the transcript as a manual note.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, Sequence

from mediscan.assessment.media import MediaPayload
from mediscan.assessment.oracle import format_history
from mediscan.assessment.record_builder import RecordBuilder
from mediscan.assessment.schema import (
    GENERIC_FOLLOW_UP,
    AssessmentResult,
    CompleteAssessment,
    InProgressAssessment,
    is_demotion,
    normalize_assessment,
)
from mediscan.errors import (
    InputError,
    LookupFailedError,
    OracleError,
    RecordStoreError,
    SchemaValidationError,
    SessionBusyError,
)
from mediscan.records.store import RecordStore
from mediscan.records.types import DoctorListing, HealthRecord, LookupLocation, PatientContext

logger = logging.getLogger(__name__)

ERROR_REPLY = "Error analyzing symptoms. Please try again."
ABANDONED_REPLY = (
    "I could not reach an assessment from this conversation. "
    "You can save it as a note in your timeline and consult a doctor directly."
)
ABANDONED_NOTE_SUMMARY = "Symptom check (no assessment)"
SAVE_FAILED_REPLY = "The assessment could not be saved to your timeline. Please try again."


class AssessmentOracle(Protocol):
    def analyze_symptoms(
        self,
        prompt: str,
        history: Sequence[str],
        images: Sequence[MediaPayload],
        language: str,
        patient_context: str | None = None,
    ) -> AssessmentResult: ...


class DoctorLookup(Protocol):
    def find_nearby(
        self,
        specialty: str,
        location: LookupLocation,
        language: str,
    ) -> list[DoctorListing]: ...


class SessionStatus(Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class ConversationTurn:
    role: str  # "user" | "assistant"
    text: str
    attachments: tuple[MediaPayload, ...] = ()
    timestamp: float = field(default_factory=time.time)


@dataclass
class SessionState:
    """Mutable state of one interview. Replaced wholesale on reset/restart."""
    turns: list[ConversationTurn] = field(default_factory=list)
    pending_attachments: list[MediaPayload] = field(default_factory=list)
    result: AssessmentResult | None = None
    status: SessionStatus = SessionStatus.IDLE
    context: PatientContext | None = None
    record: HealthRecord | None = None
    doctors: list[DoctorListing] = field(default_factory=list)
    unresolved_rounds: int = 0


@dataclass(frozen=True)
class TurnOutcome:
    """What one ``submit_turn`` produced."""
    status: SessionStatus
    reply: ConversationTurn | None = None
    record: HealthRecord | None = None
    error: OracleError | None = None
    discarded: bool = False  # session was reset while the oracle call was in flight


class ConversationEngine:
    """
    Drive the symptom interview against the diagnostic oracle.

    Usage::

        engine = ConversationEngine(oracle, store, lookup)
        outcome = await engine.submit_turn("Red itchy rash on my forearm", context=ctx, language="en")
        while outcome.status is SessionStatus.IN_PROGRESS:
            outcome = await engine.submit_turn(input(outcome.reply.text), context=ctx, language="en")
    """

    def __init__(
        self,
        oracle: AssessmentOracle,
        store: RecordStore,
        lookup: DoctorLookup | None = None,
        *,
        max_unresolved_rounds: int = 3,
        record_builder: RecordBuilder | None = None,
    ) -> None:
        self._oracle = oracle
        self._store = store
        self._lookup = lookup
        self._max_unresolved_rounds = max(1, max_unresolved_rounds)
        self._builder = record_builder or RecordBuilder()
        self._state = SessionState()
        self._generation = 0
        self._busy = False
        self._lookup_task: asyncio.Task | None = None

    # -----------------------------------------------------------------------
    # Read-only views
    # -----------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def turns(self) -> list[ConversationTurn]:
        return list(self._state.turns)

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def result(self) -> AssessmentResult | None:
        return self._state.result

    @property
    def doctors(self) -> list[DoctorListing]:
        return list(self._state.doctors)

    @property
    def busy(self) -> bool:
        return self._busy

    # -----------------------------------------------------------------------
    # Session control
    # -----------------------------------------------------------------------

    def attach(self, payload: MediaPayload) -> None:
        """Stage media for the next submit; it is sent along with any explicit attachments."""
        self._state.pending_attachments.append(payload)

    def reset(self) -> None:
        """Navigate away: drop the session, in-flight response and pending lookup."""
        self._generation += 1
        self._busy = False
        if self._lookup_task is not None and not self._lookup_task.done():
            self._lookup_task.cancel()
        self._lookup_task = None
        self._state = SessionState()
        logger.debug("Conversation reset (generation %d)", self._generation)

    def _start_fresh(self) -> None:
        """New topic after a finished interview; staged media is kept."""
        pending = self._state.pending_attachments
        self.reset()
        self._state.pending_attachments = pending

    async def wait_for_lookup(self) -> list[DoctorListing]:
        """Await the detached specialist lookup, if any. Never raises for lookup failures."""
        task = self._lookup_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self.doctors

    # -----------------------------------------------------------------------
    # submit_turn
    # -----------------------------------------------------------------------

    async def submit_turn(
        self,
        text: str = "",
        attachments: Sequence[MediaPayload] | None = None,
        *,
        context: PatientContext,
        language: str,
        location: LookupLocation | None = None,
    ) -> TurnOutcome:
        """
        Submit one user turn and wait for the oracle.

        Raises InputError for an empty submission or a different patient
        mid-session, SessionBusyError while a previous turn is pending.
        Oracle failures do not raise: they come back as an error turn.
        """
        if self._busy:
            raise SessionBusyError("previous turn is still awaiting the oracle")
        text = (text or "").strip()
        media = list(self._state.pending_attachments) + list(attachments or ())
        if not text and not media:
            raise InputError("enter a message or attach an image")

        if self._state.status in (SessionStatus.COMPLETE, SessionStatus.ABANDONED):
            self._start_fresh()
        if self._state.context is not None and self._state.context != context:
            raise InputError(
                f"session is pinned to profile {self._state.context.profile_id!r}; reset before switching"
            )

        state = self._state
        state.context = context
        state.pending_attachments = []
        history = format_history([(t.role, t.text) for t in state.turns])
        state.turns.append(ConversationTurn(role="user", text=text, attachments=tuple(media)))
        state.status = SessionStatus.IN_PROGRESS
        logger.info(
            "Turn submitted (profile=%s, turn=%d, images=%d)",
            context.profile_id, len(state.turns), len(media),
        )

        generation = self._generation
        self._busy = True
        try:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(
                None,
                functools.partial(
                    self._oracle.analyze_symptoms,
                    text,
                    history,
                    media,
                    language,
                    context.to_prompt_context(),
                ),
            )
        except SchemaValidationError as e:
            if generation != self._generation:
                return self._discarded()
            logger.error("Oracle contract violation: %s %s", e, e.errors)
            return self._error_turn(e)
        except OracleError as e:
            if generation != self._generation:
                return self._discarded()
            logger.warning("Oracle call failed: %s", e)
            return self._error_turn(e)
        finally:
            if generation == self._generation:
                self._busy = False

        if generation != self._generation:
            return self._discarded()
        return self._apply_result(result, context, language, location)

    def _discarded(self) -> TurnOutcome:
        logger.info("Discarding oracle response for a reset session")
        return TurnOutcome(status=self._state.status, discarded=True)

    def _append_assistant(self, text: str) -> ConversationTurn:
        turn = ConversationTurn(role="assistant", text=text)
        self._state.turns.append(turn)
        return turn

    def _error_turn(self, error: OracleError) -> TurnOutcome:
        reply = self._append_assistant(ERROR_REPLY)
        return TurnOutcome(status=self._state.status, reply=reply, error=error)

    def _apply_result(
        self,
        raw: AssessmentResult,
        context: PatientContext,
        language: str,
        location: LookupLocation | None,
    ) -> TurnOutcome:
        state = self._state
        result = normalize_assessment(raw)

        if isinstance(result, InProgressAssessment):
            if is_demotion(raw, result):
                state.unresolved_rounds += 1
                logger.info(
                    "Empty completion demoted to follow-up (%d/%d)",
                    state.unresolved_rounds, self._max_unresolved_rounds,
                )
                if state.unresolved_rounds >= self._max_unresolved_rounds:
                    state.status = SessionStatus.ABANDONED
                    logger.info("Interview abandoned after %d unresolved rounds", state.unresolved_rounds)
                    reply = self._append_assistant(ABANDONED_REPLY)
                    return TurnOutcome(status=state.status, reply=reply)
            else:
                state.unresolved_rounds = 0
            reply = self._append_assistant(result.next_question or GENERIC_FOLLOW_UP)
            return TurnOutcome(status=state.status, reply=reply)

        return self._finalize(result, context, language, location)

    def _finalize(
        self,
        result: CompleteAssessment,
        context: PatientContext,
        language: str,
        location: LookupLocation | None,
    ) -> TurnOutcome:
        state = self._state
        attachments = [m.data for t in state.turns for m in t.attachments]
        record = self._builder.symptom_record(result, context, attachments=attachments)
        try:
            self._store.append(record)
        except RecordStoreError:
            logger.exception("Could not save assessment record %s", record.id)
            self._append_assistant(SAVE_FAILED_REPLY)
            raise

        state.result = result
        state.record = record
        state.status = SessionStatus.COMPLETE
        state.unresolved_rounds = 0
        logger.info(
            "Assessment finalized (record=%s, triage=%s, summary=%r)",
            record.id, record.triage_level.value if record.triage_level else None, record.summary,
        )

        if result.recommended_specialist and self._lookup is not None:
            self._lookup_task = asyncio.create_task(
                self._run_lookup(self._generation, result.recommended_specialist, location or LookupLocation(), language)
            )
        return TurnOutcome(status=state.status, record=record)

    async def _run_lookup(
        self,
        generation: int,
        specialty: str,
        location: LookupLocation,
        language: str,
    ) -> None:
        """Detached: merge doctors into session state; failures are logged and swallowed."""
        assert self._lookup is not None
        loop = asyncio.get_running_loop()
        try:
            doctors = await loop.run_in_executor(
                None, functools.partial(self._lookup.find_nearby, specialty, location, language)
            )
        except LookupFailedError as e:
            logger.warning("Specialist lookup failed for %r: %s", specialty, e)
            return
        except Exception as e:
            logger.warning("Specialist lookup for %r raised %s: %s", specialty, type(e).__name__, e)
            return
        if generation != self._generation:
            logger.info("Discarding specialist lookup for a reset session")
            return
        self._state.doctors = list(doctors)
        logger.info("Specialist lookup: %d %s listing(s)", len(doctors), specialty)

    # -----------------------------------------------------------------------
    # Manual fallback
    # -----------------------------------------------------------------------

    def save_as_note(self, context: PatientContext | None = None) -> HealthRecord:
        """Persist an abandoned interview's transcript as a note record."""
        state = self._state
        if state.status is not SessionStatus.ABANDONED:
            raise InputError("only an abandoned interview can be saved as a note")
        ctx = context or state.context
        if ctx is None:
            raise InputError("no patient context for this session")
        record = self._builder.interview_note(state.turns, ctx, ABANDONED_NOTE_SUMMARY)
        self._store.append(record)
        state.record = record
        logger.info("Abandoned interview saved as note %s", record.id)
        return record
