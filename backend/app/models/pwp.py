from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case accepted on input too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


SubjectType = Literal["person", "animal", "place", "thing"]


# ──────────────────────────────────────────────
# Requests
# ──────────────────────────────────────────────

class StartSessionRequest(CamelModel):
    pupil_id: str = Field(min_length=1)
    # unauthored lessons, zero and negatives included, are rejected by the curriculum lookup
    lesson_number: int
    subject: str = Field(min_length=1)
    subject_type: SubjectType


class SubmitFormulaRequest(CamelModel):
    session_id: str = Field(min_length=1)
    formula_number: int = Field(ge=1)
    # may be blank: the rule check answers with "Please write a sentence"
    sentence: str = Field(validation_alias=AliasChoices("sentence", "pupilSentence", "pupil_sentence"))


class CompleteSessionRequest(CamelModel):
    session_id: str = Field(min_length=1)


# ──────────────────────────────────────────────
# Responses
# ──────────────────────────────────────────────

class LabelledPart(CamelModel):
    text: str
    label: str


class FormulaOut(CamelModel):
    number: int
    structure: list[str]
    example: str
    labelled_parts: list[LabelledPart] = []
    word_bank: list[str] = []
    new_elements: list[str] = []
    hint_text: str = ""
    concepts: list[str] = []

    @classmethod
    def from_record(cls, f) -> "FormulaOut":
        return cls(
            number=f.formula_number,
            structure=f.structure,
            example=f.labelled_example,
            labelled_parts=[LabelledPart(**p) for p in f.labelled_parts],
            word_bank=f.word_bank,
            new_elements=f.new_elements,
            hint_text=f.hint_text,
            concepts=f.concepts,
        )


class SessionFormulaOut(FormulaOut):
    pupil_sentence: Optional[str] = None
    attempts: int = 0
    is_correct: Optional[bool] = None
    completed_at: Optional[str] = None

    @classmethod
    def from_record(cls, f) -> "SessionFormulaOut":
        base = FormulaOut.from_record(f).model_dump()
        return cls(
            **base,
            pupil_sentence=f.pupil_sentence,
            attempts=f.attempts,
            is_correct=f.is_correct,
            completed_at=f.completed_at,
        )


class StartSessionResponse(CamelModel):
    session_id: str
    lesson_number: int
    subject: str
    subject_type: str
    formulas_total: int
    formulas: list[FormulaOut]


class FeedbackOut(CamelModel):
    type: Literal["success", "error"]
    message: str
    socratic_questions: list[str] = []


class SubmitFormulaResponse(CamelModel):
    is_correct: bool
    feedback: FeedbackOut
    issues: list[str] = []
    attempt: int
    next_formula: Optional[FormulaOut] = None


class SessionSummaryOut(CamelModel):
    formulas_completed: int
    formulas_total: int
    accuracy_percentage: Optional[int] = None


class CompleteSessionResponse(CamelModel):
    session_summary: SessionSummaryOut


class SessionDetailResponse(CamelModel):
    session_id: str
    pupil_id: str
    lesson_number: int
    subject: str
    subject_type: str
    status: Literal["in_progress", "completed"]
    formulas_total: int
    formulas_completed: int
    accuracy_percentage: Optional[int] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    formulas: list[SessionFormulaOut]


class ConceptMasteryOut(CamelModel):
    concept: str
    total_uses: int
    correct_uses: int
    streak: int
    score: int
    mastery_status: str


class PupilMasteryResponse(CamelModel):
    pupil_id: str
    concepts: list[ConceptMasteryOut]


class FormulaTemplateOut(CamelModel):
    number: int
    structure: list[str]
    new_elements: list[str] = []
    concepts: list[str] = []
    hint: str = ""


class LessonOut(CamelModel):
    lesson_number: int
    lesson_name: str
    concepts_introduced: list[str]
    concepts_cumulative: list[str]
    pwp_stage: str
    duration_minutes: int
    subject_assignment_type: str
    subject_ideas: list[str] = []
    formula_count: int
    formulas: list[FormulaTemplateOut]
