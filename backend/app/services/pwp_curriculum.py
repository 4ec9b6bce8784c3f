"""
PWP curriculum table: lesson number → ordered formula templates.

Lessons 10–15 are hand-authored foundation lessons: each has a bespoke
sequence of sentence-structure templates rather than a generated one.
Any lesson outside that range has no table and lookup() raises
LessonNotFoundError; callers surface that as a client error.

Slot unlocking is cumulative: a concept introduced at lesson N stays
available at every later lesson, so concepts_cumulative only ever grows.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict

# ---------------------------------------------------------------------------
# Slots and concepts
# ---------------------------------------------------------------------------

SUBJECT = "subject"
VERB = "verb"
DETERMINER = "determiner"
ADJECTIVE = "adjective"
ADVERB = "adverb"
CONJUNCTION = "conjunction"
PRONOUN = "pronoun"

ALL_SLOTS = (SUBJECT, VERB, DETERMINER, ADJECTIVE, ADVERB, CONJUNCTION, PRONOUN)

# Curriculum concept tag → grammatical slot it unlocks
CONCEPT_SLOTS: dict[str, str] = {
    "noun": SUBJECT,
    "verb": VERB,
    "determiner": DETERMINER,
    "adjective": ADJECTIVE,
    "adverb": ADVERB,
    "conjunction": CONJUNCTION,
    "pronoun": PRONOUN,
}

SUBJECT_TYPES = ("person", "animal", "place", "thing")

STRUCTURE_SEPARATOR = " + "


def format_structure(structure) -> str:
    """['determiner', 'subject', 'verb'] → 'determiner + subject + verb'"""
    return STRUCTURE_SEPARATOR.join(structure)


def parse_structure(text: str) -> list[str]:
    """'determiner + subject + verb' → ['determiner', 'subject', 'verb']"""
    return [part.strip() for part in (text or "").split("+") if part.strip()]


def unlocked_slots(concepts_cumulative) -> set[str]:
    """Return the slots unlocked by a cumulative concept list. Unknown tags are ignored."""
    return {CONCEPT_SLOTS[c] for c in concepts_cumulative if c in CONCEPT_SLOTS}


class LessonNotFoundError(LookupError):
    def __init__(self, lesson_number):
        super().__init__(f"Lesson {lesson_number} has no PWP formula table")
        self.lesson_number = lesson_number


# ---------------------------------------------------------------------------
# Table types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FormulaTemplate:
    structure: tuple[str, ...]
    new_elements: tuple[str, ...] = ()
    concepts: tuple[str, ...] = ()
    hint: str = ""


@dataclass(frozen=True)
class LessonSpec:
    lesson_number: int
    lesson_name: str
    concepts_introduced: tuple[str, ...]
    concepts_cumulative: tuple[str, ...]
    formulas: tuple[FormulaTemplate, ...]
    pwp_stage: str = "foundation"
    duration_minutes: int = 5
    subject_assignment_type: str = "given"
    subject_ideas: tuple[str, ...] = field(default_factory=tuple)

    @property
    def formula_count(self) -> int:
        return len(self.formulas)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["formulas"] = [
            {
                "number": i,
                "structure": list(t.structure),
                "new_elements": list(t.new_elements),
                "concepts": list(t.concepts),
                "hint": t.hint,
            }
            for i, t in enumerate(self.formulas, start=1)
        ]
        d["formula_count"] = self.formula_count
        return d


# ---------------------------------------------------------------------------
# Hints
# ---------------------------------------------------------------------------

_HINT_START = "Think: What does your {subject} DO? Write the subject, then the verb."
_HINT_REWRITE = "REWRITE your last sentence. Use the words in your word bank."
_HINT_DETERMINER = "Determiners come before the noun: the, a, my, our."
_HINT_ADJECTIVE = "Adjectives describe the noun. Put one between the determiner and the noun."
_HINT_DETERMINER_ADJECTIVE = "Start with a determiner, then an adjective that describes your {subject}."
_HINT_ADVERB = "Adverbs describe HOW the action happens: quietly, slowly, happily."
_HINT_DETERMINER_ADJECTIVE_ADVERB = (
    "Add a determiner and an adjective before your {subject}, and an adverb before the verb."
)
_HINT_CONJUNCTION = "Use 'and' to join a second verb to your sentence."
_HINT_PRONOUN = "A pronoun (he, she, it) can take the place of your subject."

_SV = (SUBJECT, VERB)
_D_SV = (DETERMINER, SUBJECT, VERB)
_DA_SV = (DETERMINER, ADJECTIVE, SUBJECT, VERB)
_S_ADV_V = (SUBJECT, ADVERB, VERB)
_D_S_ADV_V = (DETERMINER, SUBJECT, ADVERB, VERB)
_DA_S_ADV_V = (DETERMINER, ADJECTIVE, SUBJECT, ADVERB, VERB)

_F_START = FormulaTemplate(_SV, (SUBJECT, VERB), ("noun", "verb"), _HINT_START)
_F_REPEAT = FormulaTemplate(_SV, (), ("noun", "verb"), _HINT_REWRITE)

_SUBJECT_IDEAS = ("dog", "cat", "bird", "fish", "rabbit", "lion", "elephant", "frog", "butterfly", "bear")

# ---------------------------------------------------------------------------
# Lessons 10–15
# ---------------------------------------------------------------------------

LESSONS: dict[int, LessonSpec] = {
    10: LessonSpec(
        lesson_number=10,
        lesson_name="Nouns and Verbs",
        concepts_introduced=("noun", "verb"),
        concepts_cumulative=("noun", "verb"),
        formulas=(_F_START, _F_REPEAT),
        subject_ideas=_SUBJECT_IDEAS,
    ),
    11: LessonSpec(
        lesson_number=11,
        lesson_name="Determiners",
        concepts_introduced=("determiner",),
        concepts_cumulative=("noun", "verb", "determiner"),
        formulas=(
            _F_START,
            _F_REPEAT,
            FormulaTemplate(_D_SV, (DETERMINER,), ("determiner", "noun", "verb"), _HINT_DETERMINER),
        ),
        subject_ideas=_SUBJECT_IDEAS,
    ),
    12: LessonSpec(
        lesson_number=12,
        lesson_name="Adjectives",
        concepts_introduced=("adjective",),
        concepts_cumulative=("noun", "verb", "determiner", "adjective"),
        formulas=(
            _F_START,
            FormulaTemplate(_D_SV, (DETERMINER,), ("determiner", "noun", "verb"), _HINT_DETERMINER),
            FormulaTemplate(
                _DA_SV, (ADJECTIVE,), ("determiner", "adjective", "noun", "verb"), _HINT_ADJECTIVE,
            ),
            FormulaTemplate(_DA_SV, (), ("determiner", "adjective", "noun", "verb"), _HINT_REWRITE),
        ),
        subject_ideas=_SUBJECT_IDEAS,
    ),
    13: LessonSpec(
        lesson_number=13,
        lesson_name="Adverbs",
        concepts_introduced=("adverb",),
        concepts_cumulative=("noun", "verb", "determiner", "adjective", "adverb"),
        formulas=(
            _F_START,
            FormulaTemplate(_S_ADV_V, (ADVERB,), ("noun", "adverb", "verb"), _HINT_ADVERB),
            FormulaTemplate(
                _D_S_ADV_V, (DETERMINER,), ("determiner", "noun", "adverb", "verb"), _HINT_DETERMINER,
            ),
            FormulaTemplate(
                _DA_S_ADV_V, (ADJECTIVE,),
                ("determiner", "adjective", "noun", "adverb", "verb"), _HINT_ADJECTIVE,
            ),
        ),
        subject_ideas=_SUBJECT_IDEAS,
    ),
    14: LessonSpec(
        lesson_number=14,
        lesson_name="Conjunctions",
        concepts_introduced=("conjunction",),
        concepts_cumulative=("noun", "verb", "determiner", "adjective", "adverb", "conjunction"),
        formulas=(
            _F_START,
            FormulaTemplate(_S_ADV_V, (ADVERB,), ("noun", "adverb", "verb"), _HINT_ADVERB),
            FormulaTemplate(
                _DA_S_ADV_V, (DETERMINER, ADJECTIVE),
                ("determiner", "adjective", "noun", "adverb", "verb"), _HINT_DETERMINER_ADJECTIVE,
            ),
            FormulaTemplate(
                _DA_S_ADV_V + (CONJUNCTION, VERB), (CONJUNCTION,),
                ("determiner", "adjective", "noun", "adverb", "verb", "conjunction"), _HINT_CONJUNCTION,
            ),
        ),
        subject_ideas=_SUBJECT_IDEAS,
    ),
    15: LessonSpec(
        lesson_number=15,
        lesson_name="Pronouns",
        concepts_introduced=("pronoun",),
        concepts_cumulative=("noun", "verb", "determiner", "adjective", "adverb", "conjunction", "pronoun"),
        formulas=(
            _F_START,
            FormulaTemplate(
                _DA_S_ADV_V, (DETERMINER, ADJECTIVE, ADVERB),
                ("determiner", "adjective", "noun", "adverb", "verb"), _HINT_DETERMINER_ADJECTIVE_ADVERB,
            ),
            FormulaTemplate(
                _DA_S_ADV_V, (), ("determiner", "adjective", "noun", "adverb", "verb"), _HINT_REWRITE,
            ),
            FormulaTemplate(
                (PRONOUN, ADVERB, VERB), (PRONOUN,), ("pronoun", "adverb", "verb"), _HINT_PRONOUN,
            ),
        ),
        subject_assignment_type="free_choice",
        subject_ideas=_SUBJECT_IDEAS,
    ),
}


def lookup(lesson_number: int) -> LessonSpec:
    """Return the authored table for a lesson or raise LessonNotFoundError."""
    try:
        return LESSONS[int(lesson_number)]
    except (KeyError, ValueError, TypeError):
        raise LessonNotFoundError(lesson_number) from None


def supported_lessons() -> list[int]:
    return sorted(LESSONS)
