import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from app.models.pwp import (
    CompleteSessionRequest,
    CompleteSessionResponse,
    ConceptMasteryOut,
    FeedbackOut,
    FormulaOut,
    LessonOut,
    PupilMasteryResponse,
    SessionDetailResponse,
    SessionFormulaOut,
    SessionSummaryOut,
    StartSessionRequest,
    StartSessionResponse,
    SubmitFormulaRequest,
    SubmitFormulaResponse,
)
from app.services.pwp_curriculum import LessonNotFoundError, lookup
from app.services.pwp_service import PwpService, get_pwp_service
from app.services.pwp_session_store import (
    FormulaNotFoundError,
    SessionCompletedError,
    SessionNotFoundError,
)
from app.services.telemetry import instrument

logger = logging.getLogger("pwp.api")

router = APIRouter(prefix="/api/pwp", tags=["pwp"])


def _summary_out(summary) -> SessionSummaryOut:
    return SessionSummaryOut(
        formulas_completed=summary.formulas_completed,
        formulas_total=summary.formulas_total,
        accuracy_percentage=summary.accuracy_percentage,
    )


# ──────────────────────────────────────────────
# Sessions
# ──────────────────────────────────────────────

@router.post("/start-session", response_model=StartSessionResponse)
@instrument(route="/api/pwp/start-session", version="v1")
def start_session(
    request: StartSessionRequest,
    service: PwpService = Depends(get_pwp_service),
):
    """Generate the lesson's formulas for the pupil's subject and open a session."""
    try:
        session = service.start_session(
            request.pupil_id, request.lesson_number, request.subject, request.subject_type,
        )
    except LessonNotFoundError:
        raise HTTPException(status_code=400, detail="Invalid lesson number")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("[pwp.start_session] %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create session")

    return StartSessionResponse(
        session_id=session.id,
        lesson_number=session.lesson_number,
        subject=session.subject_text,
        subject_type=session.subject_type,
        formulas_total=session.formulas_total,
        formulas=[FormulaOut.from_record(f) for f in session.formulas],
    )


@router.post("/submit-formula", response_model=SubmitFormulaResponse)
@instrument(route="/api/pwp/submit-formula", version="v1")
def submit_formula(
    request: SubmitFormulaRequest,
    service: PwpService = Depends(get_pwp_service),
):
    """Check one sentence against its formula and record the attempt."""
    try:
        result = service.submit_formula(request.session_id, request.formula_number, request.sentence)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except FormulaNotFoundError:
        raise HTTPException(status_code=404, detail="Formula not found")
    except SessionCompletedError:
        raise HTTPException(status_code=409, detail="Session already completed")
    except Exception as e:
        logger.error("[pwp.submit_formula] %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record attempt")

    fb = result.verdict.feedback
    return SubmitFormulaResponse(
        is_correct=result.verdict.is_correct,
        feedback=FeedbackOut(type=fb.type, message=fb.message, socratic_questions=fb.socratic_questions),
        issues=result.verdict.issues,
        attempt=result.attempt.attempt_number,
        next_formula=FormulaOut.from_record(result.next_formula) if result.next_formula else None,
    )


@router.post("/complete-session", response_model=CompleteSessionResponse)
@instrument(route="/api/pwp/complete-session", version="v1")
def complete_session(
    request: CompleteSessionRequest,
    service: PwpService = Depends(get_pwp_service),
):
    try:
        summary = service.complete_session(request.session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except Exception as e:
        logger.error("[pwp.complete_session] %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to complete session")

    return CompleteSessionResponse(session_summary=_summary_out(summary))


@router.get("/sessions/{session_id}", response_model=SessionDetailResponse)
def get_session(
    session_id: str,
    service: PwpService = Depends(get_pwp_service),
):
    """Full session with formulas, for resuming an unfinished run."""
    try:
        session = service.get_session(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except Exception as e:
        logger.error("[pwp.get_session] %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load session")

    return SessionDetailResponse(
        session_id=session.id,
        pupil_id=session.pupil_id,
        lesson_number=session.lesson_number,
        subject=session.subject_text,
        subject_type=session.subject_type,
        status=session.status,
        formulas_total=session.formulas_total,
        formulas_completed=session.formulas_completed,
        accuracy_percentage=session.accuracy_percentage,
        started_at=session.started_at,
        completed_at=session.completed_at,
        formulas=[SessionFormulaOut.from_record(f) for f in session.formulas],
    )


@router.get("/sessions/{session_id}/summary", response_model=CompleteSessionResponse)
def get_session_summary(
    session_id: str,
    service: PwpService = Depends(get_pwp_service),
):
    try:
        summary = service.get_summary(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except Exception as e:
        logger.error("[pwp.get_session_summary] %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load session")

    return CompleteSessionResponse(session_summary=_summary_out(summary))


# ──────────────────────────────────────────────
# Curriculum / mastery
# ──────────────────────────────────────────────

@router.get("/curriculum", response_model=LessonOut)
def get_curriculum(lesson: int = Query(...)):
    """Authored formula table for one lesson."""
    try:
        return LessonOut(**lookup(lesson).to_dict())
    except LessonNotFoundError:
        raise HTTPException(status_code=404, detail="Lesson not found")


@router.get("/pupils/{pupil_id}/mastery", response_model=PupilMasteryResponse)
def get_pupil_mastery(
    pupil_id: str,
    service: PwpService = Depends(get_pwp_service),
):
    try:
        states = service.pupil_mastery(pupil_id)
    except Exception as e:
        logger.error("[pwp.get_pupil_mastery] %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load mastery")

    return PupilMasteryResponse(
        pupil_id=pupil_id,
        concepts=[
            ConceptMasteryOut(
                concept=s.concept,
                total_uses=s.total_uses,
                correct_uses=s.correct_uses,
                streak=s.streak,
                score=round(s.score),
                mastery_status=s.mastery_status,
            )
            for s in states
        ],
    )
