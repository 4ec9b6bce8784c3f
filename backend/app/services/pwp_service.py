"""
PWP session orchestration.

start_session  → look up the lesson, generate formulas, persist the session
submit_formula → rule-based gate, then AI check, record the attempt, refresh
                 the next formula's word bank from an accepted sentence
complete_session → finalise status and accuracy (idempotent once completed)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from app.services.ai_validator import AIValidator, Feedback, ValidationFailurePolicy, Verdict
from app.services.formula_generator import FormulaGenerator
from app.services.mastery_store import MasteryStore, update_concept_mastery
from app.services.pwp_curriculum import lookup
from app.services.pwp_session_store import (
    STATUS_COMPLETED,
    AttemptRecord,
    FormulaNotFoundError,
    FormulaRecord,
    PwpSession,
    SessionCompletedError,
    SessionStore,
    SessionSummary,
    compute_summary,
)
from app.services.sentence_validator import validate, words
from app.services.telemetry import emit_event

logger = logging.getLogger("pwp.service")


@dataclass
class SubmitResult:
    verdict: Verdict
    attempt: AttemptRecord
    next_formula: Optional[FormulaRecord]


class PwpService:
    def __init__(
        self,
        store: SessionStore,
        ai_validator: AIValidator,
        generator: Optional[FormulaGenerator] = None,
        mastery_store: Optional[MasteryStore] = None,
    ):
        self.store = store
        self.ai_validator = ai_validator
        self.generator = generator or FormulaGenerator()
        self.mastery_store = mastery_store

    # -- sessions ------------------------------------------------------------

    def start_session(self, pupil_id: str, lesson_number: int, subject: str, subject_type: str) -> PwpSession:
        spec = lookup(lesson_number)
        formulas = self.generator.generate(
            spec.lesson_number, subject, subject_type, spec.concepts_cumulative,
        )
        session_id = self.store.create_session(
            pupil_id, spec.lesson_number, subject.strip(), subject_type, formulas,
        )
        logger.info("Started PWP session %s: pupil=%s lesson=%s formulas=%d",
                    session_id, pupil_id, spec.lesson_number, len(formulas))
        emit_event("session_started", route="/api/pwp/start-session", version="v1",
                   session_id=session_id, pupil_id=pupil_id, lesson_number=spec.lesson_number)
        return self.store.get_session(session_id)

    def get_session(self, session_id: str) -> PwpSession:
        return self.store.get_session(session_id)

    def get_summary(self, session_id: str) -> SessionSummary:
        return self.store.get_session(session_id).summary()

    def complete_session(self, session_id: str) -> SessionSummary:
        session = self.store.get_session(session_id)
        if session.status == STATUS_COMPLETED:
            # Already finalised: return what was stored, never recompute
            return session.summary()

        stats = compute_summary(session.formulas, session.formulas_total)
        session = self.store.complete_session(session_id, stats)
        logger.info("Completed PWP session %s: %d/%d accuracy=%s%%",
                    session_id, stats.formulas_completed, stats.formulas_total, stats.accuracy_percentage)
        emit_event("session_completed", route="/api/pwp/complete-session", version="v1",
                   session_id=session_id, pupil_id=session.pupil_id, lesson_number=session.lesson_number)
        return session.summary()

    # -- formulas ------------------------------------------------------------

    def check_sentence(self, sentence: str, structure, new_elements) -> Verdict:
        rules = validate(sentence, structure, new_elements)
        if not rules.valid:
            return Verdict(
                is_correct=False,
                feedback=Feedback(type="error", message=rules.issues[0]),
                source="rules",
                issues=rules.issues,
            )
        return self.ai_validator.validate(sentence, structure, new_elements)

    def submit_formula(self, session_id: str, formula_number: int, sentence: str) -> SubmitResult:
        session = self.store.get_session(session_id)
        if session.status == STATUS_COMPLETED:
            raise SessionCompletedError(session_id)
        formula = session.formula(formula_number)
        if formula is None:
            raise FormulaNotFoundError(session_id, formula_number)

        verdict = self.check_sentence(sentence, formula.structure, formula.new_elements)
        attempt = self.store.record_attempt(session_id, formula_number, sentence, verdict)

        next_formula = None
        if formula_number < session.formulas_total:
            if verdict.is_correct:
                self.store.update_word_bank(session_id, formula_number + 1, words(sentence))
            next_formula = self.store.get_formula(session_id, formula_number + 1)

        if verdict.source != "fallback":
            self._record_mastery(session, formula, verdict.is_correct)

        emit_event("formula_submitted", route="/api/pwp/submit-formula", version="v1",
                   session_id=session_id, pupil_id=session.pupil_id,
                   lesson_number=session.lesson_number, formula_number=formula_number,
                   ok=verdict.is_correct, error_type=None if verdict.is_correct else verdict.source)
        return SubmitResult(verdict=verdict, attempt=attempt, next_formula=next_formula)

    # -- mastery -------------------------------------------------------------

    def _record_mastery(self, session: PwpSession, formula: FormulaRecord, is_correct: bool) -> None:
        if self.mastery_store is None or not formula.concepts:
            return
        try:
            update_concept_mastery(self.mastery_store, session.pupil_id, formula.concepts,
                                   is_correct, lesson_number=session.lesson_number)
        except Exception as e:
            # mastery is secondary to the pupil's recorded attempt
            logger.error(f"[pwp_service._record_mastery] {e}", exc_info=True)

    def pupil_mastery(self, pupil_id: str) -> list:
        if self.mastery_store is None:
            return []
        return self.mastery_store.list_pupil(pupil_id)


@lru_cache
def get_pwp_service() -> PwpService:
    from app.core.config import get_settings
    from app.services.ai import get_ai_service
    from app.services.mastery_store import get_mastery_store
    from app.services.pwp_session_store import get_session_store

    settings = get_settings()
    return PwpService(
        store=get_session_store(settings),
        ai_validator=AIValidator(
            get_ai_service(),
            policy=ValidationFailurePolicy(settings.pwp_validation_failure_policy),
        ),
        mastery_store=get_mastery_store(settings),
    )
