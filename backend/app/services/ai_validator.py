"""
AI sentence check. Runs only after the rule-based gate has passed.

Asks the language model whether the pupil's sentence really satisfies the
formula (e.g. the adjective describes the subject, the adverb modifies the
verb) and for short, child-friendly feedback in a fixed JSON shape.

One call, no retries. If the call fails or the reply cannot be parsed, the
configured ValidationFailurePolicy decides the verdict:

  FAIL_OPEN:   treat the sentence as correct with a generic encouraging
               message.
  FAIL_CLOSED: treat it as not yet correct and ask the pupil to try again.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from app.services.pwp_curriculum import format_structure
from app.services.telemetry import emit_event

logger = logging.getLogger("pwp.ai_validator")


class ValidationFailurePolicy(str, Enum):
    FAIL_OPEN = "fail-open"
    FAIL_CLOSED = "fail-closed"


FAIL_OPEN_MESSAGE = "Great job! Your sentence follows the formula. Keep going!"
FAIL_CLOSED_MESSAGE = "We couldn't check your sentence just now. Please try again in a moment."


@dataclass
class Feedback:
    type: str
    message: str
    socratic_questions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = {"type": self.type, "message": self.message}
        if self.socratic_questions:
            d["socratic_questions"] = list(self.socratic_questions)
        return d


@dataclass
class Verdict:
    is_correct: bool
    feedback: Feedback
    source: str  # rules | ai | fallback
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "is_correct": self.is_correct,
            "feedback": self.feedback.to_dict(),
            "source": self.source,
            "issues": list(self.issues),
        }


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You are a kind, encouraging primary school writing teacher in the UK. "
    "You are giving feedback to a pupil aged 7 to 11 who is practising sentence formulas. "
    "Judge ONLY whether the sentence follows the required structure: every slot is present, "
    "in order, and each word plays its grammatical role (an adjective describes the subject, "
    "an adverb describes the verb). Ignore spelling, capital letters and full stops. "
    "Use short, simple words a young child understands. Never be harsh. "
    "Respond with JSON only."
)

USER_TEMPLATE = """PUPIL'S SENTENCE:
\"\"\"{sentence}\"\"\"

REQUIRED FORMULA: {structure}
NEW ELEMENT(S) TO PRACTISE: {new_elements}

Reply with exactly this JSON shape:
{{
  "isCorrect": true,
  "feedback": {{
    "type": "success",
    "message": "One or two encouraging sentences.",
    "socraticQuestions": ["Optional question that helps the pupil spot a mistake"]
  }}
}}

Rules:
- "type" is "success" when isCorrect is true, otherwise "error".
- When isCorrect is false, include 1-2 socraticQuestions that guide without giving the answer.
- When isCorrect is true, socraticQuestions may be an empty list."""


def build_prompt(sentence: str, structure, new_elements) -> str:
    return USER_TEMPLATE.format(
        sentence=sentence.strip(),
        structure=format_structure(structure),
        new_elements=", ".join(new_elements or []) or "none (rewrite practice)",
    )


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _clean_json(content: str) -> str:
    """Strip markdown code fences from LLM output."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def parse_verdict(content: str) -> Verdict:
    """
    Parse the model reply into a Verdict.

    Raises ValueError when the reply holds no JSON object or the object does
    not have a boolean isCorrect and a non-empty feedback message.
    """
    cleaned = _clean_json(content or "")
    match = re.search(r"\{[\s\S]*\}", cleaned)
    if not match:
        raise ValueError("No JSON object in LLM response")
    data = json.loads(match.group(0))

    is_correct = data.get("isCorrect", data.get("is_correct"))
    if not isinstance(is_correct, bool):
        raise ValueError("isCorrect missing or not a boolean")

    fb = data.get("feedback")
    if isinstance(fb, str):
        fb = {"message": fb}
    if not isinstance(fb, dict):
        raise ValueError("feedback missing")
    message = str(fb.get("message") or "").strip()
    if not message:
        raise ValueError("feedback.message empty")

    questions = fb.get("socraticQuestions", fb.get("socratic_questions")) or []
    if not isinstance(questions, list):
        questions = [questions]

    return Verdict(
        is_correct=is_correct,
        feedback=Feedback(
            type="success" if is_correct else "error",
            message=message,
            socratic_questions=[str(q) for q in questions if str(q).strip()],
        ),
        source="ai",
    )


def fallback_verdict(policy: ValidationFailurePolicy) -> Verdict:
    if policy == ValidationFailurePolicy.FAIL_CLOSED:
        return Verdict(False, Feedback("error", FAIL_CLOSED_MESSAGE), source="fallback")
    return Verdict(True, Feedback("success", FAIL_OPEN_MESSAGE), source="fallback")


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

class AIValidator:
    def __init__(
        self,
        llm,
        policy: ValidationFailurePolicy = ValidationFailurePolicy.FAIL_OPEN,
        model: Optional[str] = None,
    ):
        """llm is anything with generate_completion(prompt, system_prompt=..., ...) -> str."""
        self.llm = llm
        self.policy = ValidationFailurePolicy(policy)
        self.model = model

    def validate(self, sentence: str, structure, new_elements=None) -> Verdict:
        prompt = build_prompt(sentence, structure, new_elements)
        try:
            content = self.llm.generate_completion(
                prompt,
                system_prompt=SYSTEM_PROMPT,
                model=self.model,
                temperature=0.2,
                max_tokens=400,
                json_mode=True,
            )
        except Exception as exc:
            return self._fallback("transport", exc)

        try:
            return parse_verdict(content)
        except (ValueError, TypeError, AttributeError) as exc:
            # json.JSONDecodeError is a ValueError
            logger.debug("Unparseable LLM reply: %r", (content or "")[:500])
            return self._fallback("parse", exc)

    def _fallback(self, stage: str, exc: Exception) -> Verdict:
        logger.warning(
            "[ai_validator] %s failure (%s: %s); applying %s policy",
            stage, exc.__class__.__name__, exc, self.policy.value,
        )
        emit_event(
            "ai_validation_fallback",
            route="ai_validator",
            version="v1",
            error_type=f"{stage}:{exc.__class__.__name__}",
            ok=False,
        )
        return fallback_verdict(self.policy)


def ai_validate(sentence: str, structure, new_elements, llm,
                policy: ValidationFailurePolicy = ValidationFailurePolicy.FAIL_OPEN) -> Verdict:
    return AIValidator(llm, policy=policy).validate(sentence, structure, new_elements)
