from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Callable, Optional

from app.services.pwp_curriculum import format_structure, parse_structure


STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"

# Postgres function in backend/sql/pwp_record_attempt.sql
RECORD_ATTEMPT_RPC = "pwp_record_attempt"


class SessionNotFoundError(LookupError):
    def __init__(self, session_id):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class FormulaNotFoundError(LookupError):
    def __init__(self, session_id, formula_number):
        super().__init__(f"Formula {formula_number} not found in session {session_id}")
        self.session_id = session_id
        self.formula_number = formula_number


class SessionCompletedError(ValueError):
    def __init__(self, session_id):
        super().__init__(f"Session {session_id} is already completed")
        self.session_id = session_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class FormulaRecord:
    id: str
    session_id: str
    formula_number: int
    structure: list[str]
    labelled_example: str
    labelled_parts: list[dict] = field(default_factory=list)
    word_bank: list[str] = field(default_factory=list)
    new_elements: list[str] = field(default_factory=list)
    hint_text: str = ""
    concepts: list[str] = field(default_factory=list)
    pupil_sentence: Optional[str] = None
    attempts: int = 0
    is_correct: Optional[bool] = None
    completed_at: Optional[str] = None

    def to_dict(self):
        return asdict(self)


@dataclass
class AttemptRecord:
    id: str
    formula_id: str
    attempt_number: int
    pupil_sentence: str
    errors_detected: list[str] = field(default_factory=list)
    feedback_provided: dict = field(default_factory=dict)
    created_at: str = ""

    def to_dict(self):
        return asdict(self)


@dataclass
class SessionSummary:
    formulas_completed: int
    formulas_total: int
    accuracy_percentage: Optional[int]

    def to_dict(self):
        return asdict(self)


@dataclass
class PwpSession:
    id: str
    pupil_id: str
    lesson_number: int
    subject_text: str
    subject_type: str
    formulas_total: int
    formulas_completed: int = 0
    status: str = STATUS_IN_PROGRESS
    accuracy_percentage: Optional[int] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    formulas: list[FormulaRecord] = field(default_factory=list)

    def formula(self, formula_number: int) -> Optional[FormulaRecord]:
        return next((f for f in self.formulas if f.formula_number == formula_number), None)

    def summary(self) -> SessionSummary:
        return SessionSummary(
            formulas_completed=self.formulas_completed,
            formulas_total=self.formulas_total,
            accuracy_percentage=self.accuracy_percentage,
        )

    def to_dict(self):
        return asdict(self)


# ---------------------------------------------------------------------------
# Pure helpers (shared by every backend)
# ---------------------------------------------------------------------------

def compute_summary(formulas: list[FormulaRecord], formulas_total: int) -> SessionSummary:
    """accuracy = accepted formulas / total formulas * 100, rounded to a whole percent."""
    accepted = sum(1 for f in formulas if f.is_correct is True)
    accepted = min(accepted, formulas_total)
    accuracy = round(accepted / formulas_total * 100) if formulas_total else 0
    return SessionSummary(
        formulas_completed=accepted,
        formulas_total=formulas_total,
        accuracy_percentage=accuracy,
    )


def apply_attempt(formula: FormulaRecord, sentence: str, is_correct: bool, now: str) -> bool:
    """
    Fold one verdict into a formula record. Returns True when this attempt
    is the formula's first accepted one.

    Acceptance is sticky: a later failing attempt does not un-accept it.
    """
    formula.attempts += 1
    if not is_correct:
        if formula.is_correct is None:
            formula.is_correct = False
        return False

    newly_accepted = formula.is_correct is not True
    formula.is_correct = True
    formula.pupil_sentence = sentence.strip()
    formula.completed_at = now
    return newly_accepted


def _attempt_feedback(verdict) -> dict:
    payload = verdict.feedback.to_dict()
    payload["source"] = verdict.source
    payload["is_correct"] = verdict.is_correct
    return payload


# ---------------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------------

class SessionStore:
    def create_session(self, pupil_id: str, lesson_number: int, subject: str,
                       subject_type: str, formulas) -> str:
        raise NotImplementedError

    def get_session(self, session_id: str) -> PwpSession:
        raise NotImplementedError

    def get_formula(self, session_id: str, formula_number: int) -> FormulaRecord:
        raise NotImplementedError

    def record_attempt(self, session_id: str, formula_number: int, sentence: str, verdict) -> AttemptRecord:
        raise NotImplementedError

    def update_word_bank(self, session_id: str, formula_number: int, word_bank: list[str]) -> None:
        raise NotImplementedError

    def complete_session(self, session_id: str, stats: SessionSummary) -> PwpSession:
        raise NotImplementedError

    def list_attempts(self, session_id: str, formula_number: int) -> list[AttemptRecord]:
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._sessions: dict[str, PwpSession] = {}
        self._attempts: dict[str, list[AttemptRecord]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _now(self) -> str:
        return self._clock().isoformat()

    def _session(self, session_id: str) -> PwpSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _formula(self, session_id: str, formula_number: int) -> FormulaRecord:
        formula = self._session(session_id).formula(formula_number)
        if formula is None:
            raise FormulaNotFoundError(session_id, formula_number)
        return formula

    def create_session(self, pupil_id, lesson_number, subject, subject_type, formulas) -> str:
        session_id = str(uuid.uuid4())
        session = PwpSession(
            id=session_id,
            pupil_id=pupil_id,
            lesson_number=lesson_number,
            subject_text=subject,
            subject_type=subject_type,
            formulas_total=len(formulas),
            started_at=self._now(),
        )
        for f in formulas:
            session.formulas.append(FormulaRecord(
                id=str(uuid.uuid4()),
                session_id=session_id,
                formula_number=f.number,
                structure=list(f.structure),
                labelled_example=f.labelled_example,
                labelled_parts=[dict(p) for p in f.labelled_parts],
                word_bank=list(f.word_bank),
                new_elements=list(f.new_elements),
                hint_text=f.hint_text,
                concepts=list(f.concepts),
            ))
        with self._lock:
            self._sessions[session_id] = session
        return session_id

    def get_session(self, session_id):
        return self._session(session_id)

    def get_formula(self, session_id, formula_number):
        return self._formula(session_id, formula_number)

    def record_attempt(self, session_id, formula_number, sentence, verdict):
        with self._lock:
            session = self._session(session_id)
            formula = self._formula(session_id, formula_number)
            now = self._now()
            if apply_attempt(formula, sentence, verdict.is_correct, now):
                session.formulas_completed = min(session.formulas_completed + 1, session.formulas_total)
            attempt = AttemptRecord(
                id=str(uuid.uuid4()),
                formula_id=formula.id,
                attempt_number=formula.attempts,
                pupil_sentence=sentence,
                errors_detected=list(verdict.issues),
                feedback_provided=_attempt_feedback(verdict),
                created_at=now,
            )
            self._attempts.setdefault(formula.id, []).append(attempt)
            return attempt

    def update_word_bank(self, session_id, formula_number, word_bank):
        with self._lock:
            self._formula(session_id, formula_number).word_bank = list(word_bank)

    def complete_session(self, session_id, stats):
        with self._lock:
            session = self._session(session_id)
            session.status = STATUS_COMPLETED
            session.formulas_completed = stats.formulas_completed
            session.accuracy_percentage = stats.accuracy_percentage
            session.completed_at = self._now()
            return session

    def list_attempts(self, session_id, formula_number):
        formula = self._formula(session_id, formula_number)
        return list(self._attempts.get(formula.id, []))


class SupabaseSessionStore(SessionStore):
    """
    Tables:
      pwp_sessions(id, pupil_id, lesson_number, subject_text, subject_type, formulas_total,
                   formulas_completed, status, accuracy_percentage, started_at, completed_at)
      pwp_formulas(id, session_id, formula_number, formula_structure, labelled_example,
                   labelled_parts, word_bank, new_elements, hint_text, concepts,
                   pupil_sentence, attempts, is_correct, completed_at)
      formula_attempts(id, formula_id, attempt_number, pupil_sentence, errors_detected,
                       feedback_provided, created_at)

    record_attempt goes through the pwp_record_attempt function (backend/sql/)
    so one submission is a single transaction with a row lock on the formula.
    """

    def __init__(self, supabase_client, clock: Callable[[], datetime] = _utcnow):
        self.sb = supabase_client
        self._clock = clock

    def _now(self) -> str:
        return self._clock().isoformat()

    @staticmethod
    def _formula_from_row(d: dict) -> FormulaRecord:
        return FormulaRecord(
            id=d["id"],
            session_id=d["session_id"],
            formula_number=int(d["formula_number"]),
            structure=parse_structure(d.get("formula_structure", "")),
            labelled_example=d.get("labelled_example") or "",
            labelled_parts=d.get("labelled_parts") or [],
            word_bank=d.get("word_bank") or [],
            new_elements=d.get("new_elements") or [],
            hint_text=d.get("hint_text") or "",
            concepts=d.get("concepts") or [],
            pupil_sentence=d.get("pupil_sentence"),
            attempts=int(d.get("attempts") or 0),
            is_correct=d.get("is_correct"),
            completed_at=d.get("completed_at"),
        )

    @staticmethod
    def _attempt_from_row(d: dict) -> AttemptRecord:
        return AttemptRecord(
            id=d["id"],
            formula_id=d["formula_id"],
            attempt_number=int(d["attempt_number"]),
            pupil_sentence=d.get("pupil_sentence") or "",
            errors_detected=d.get("errors_detected") or [],
            feedback_provided=d.get("feedback_provided") or {},
            created_at=d.get("created_at") or "",
        )

    @staticmethod
    def _session_from_row(d: dict, formulas: list[FormulaRecord]) -> PwpSession:
        accuracy = d.get("accuracy_percentage")
        return PwpSession(
            id=d["id"],
            pupil_id=d["pupil_id"],
            lesson_number=int(d["lesson_number"]),
            subject_text=d["subject_text"],
            subject_type=d.get("subject_type") or "",
            formulas_total=int(d["formulas_total"]),
            formulas_completed=int(d.get("formulas_completed") or 0),
            status=d.get("status") or STATUS_IN_PROGRESS,
            accuracy_percentage=round(float(accuracy)) if accuracy is not None else None,
            started_at=d.get("started_at"),
            completed_at=d.get("completed_at"),
            formulas=sorted(formulas, key=lambda f: f.formula_number),
        )

    def _session_row(self, session_id: str) -> dict:
        r = (
            self.sb.table("pwp_sessions")
            .select("*")
            .eq("id", session_id)
            .maybe_single()
            .execute()
        )
        data = getattr(r, "data", None)
        if not data:
            raise SessionNotFoundError(session_id)
        return data

    def create_session(self, pupil_id, lesson_number, subject, subject_type, formulas) -> str:
        r = self.sb.table("pwp_sessions").insert({
            "pupil_id": pupil_id,
            "lesson_number": lesson_number,
            "subject_text": subject,
            "subject_type": subject_type,
            "formulas_total": len(formulas),
            "formulas_completed": 0,
            "status": STATUS_IN_PROGRESS,
            "started_at": self._now(),
        }).execute()
        rows = getattr(r, "data", None) or []
        if not rows:
            raise RuntimeError("Failed to create session")
        session_id = rows[0]["id"]

        self.sb.table("pwp_formulas").insert([
            {
                "session_id": session_id,
                "formula_number": f.number,
                "formula_structure": format_structure(f.structure),
                "labelled_example": f.labelled_example,
                "labelled_parts": f.labelled_parts,
                "word_bank": f.word_bank,
                "new_elements": f.new_elements,
                "hint_text": f.hint_text,
                "concepts": f.concepts,
                "attempts": 0,
            }
            for f in formulas
        ]).execute()
        return session_id

    def get_session(self, session_id):
        row = self._session_row(session_id)
        r = (
            self.sb.table("pwp_formulas")
            .select("*")
            .eq("session_id", session_id)
            .order("formula_number")
            .execute()
        )
        formulas = [self._formula_from_row(d) for d in (getattr(r, "data", None) or [])]
        return self._session_from_row(row, formulas)

    def get_formula(self, session_id, formula_number):
        r = (
            self.sb.table("pwp_formulas")
            .select("*")
            .eq("session_id", session_id)
            .eq("formula_number", formula_number)
            .maybe_single()
            .execute()
        )
        data = getattr(r, "data", None)
        if not data:
            raise FormulaNotFoundError(session_id, formula_number)
        return self._formula_from_row(data)

    def record_attempt(self, session_id, formula_number, sentence, verdict):
        # Counter bump, formula update and attempt insert commit together or not at all
        r = self.sb.rpc(RECORD_ATTEMPT_RPC, {
            "p_session_id": session_id,
            "p_formula_number": formula_number,
            "p_sentence": sentence,
            "p_is_correct": verdict.is_correct,
            "p_errors": list(verdict.issues),
            "p_feedback": _attempt_feedback(verdict),
            "p_now": self._now(),
        }).execute()
        rows = getattr(r, "data", None) or []
        if isinstance(rows, dict):
            rows = [rows]
        if not rows:
            raise FormulaNotFoundError(session_id, formula_number)
        return self._attempt_from_row(rows[0])

    def update_word_bank(self, session_id, formula_number, word_bank):
        (
            self.sb.table("pwp_formulas")
            .update({"word_bank": list(word_bank)})
            .eq("session_id", session_id)
            .eq("formula_number", formula_number)
            .execute()
        )

    def complete_session(self, session_id, stats):
        self.sb.table("pwp_sessions").update({
            "status": STATUS_COMPLETED,
            "formulas_completed": stats.formulas_completed,
            "accuracy_percentage": stats.accuracy_percentage,
            "completed_at": self._now(),
        }).eq("id", session_id).execute()
        return self.get_session(session_id)

    def list_attempts(self, session_id, formula_number):
        formula = self.get_formula(session_id, formula_number)
        r = (
            self.sb.table("formula_attempts")
            .select("*")
            .eq("formula_id", formula.id)
            .order("attempt_number")
            .execute()
        )
        return [self._attempt_from_row(d) for d in (getattr(r, "data", None) or [])]


SESSION_STORE = InMemorySessionStore()

STORE_BACKENDS = ("memory", "supabase")


def store_backend(settings) -> str:
    backend = (settings.pwp_session_store or "").strip().lower()
    if backend not in STORE_BACKENDS:
        raise ValueError(
            f"pwp_session_store must be one of {', '.join(STORE_BACKENDS)}, got {settings.pwp_session_store!r}"
        )
    return backend


def get_session_store(settings=None) -> SessionStore:
    if settings is None:
        from app.core.config import get_settings
        settings = get_settings()
    backend = store_backend(settings)
    if backend == "memory":
        return SESSION_STORE

    # lazy import so the memory backend never needs Supabase credentials
    from app.core.deps import get_supabase_client
    return SupabaseSessionStore(get_supabase_client())
