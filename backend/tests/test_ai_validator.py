"""
Tests for the AI sentence check: reply parsing and the failure policy.
The language model is replaced by a FakeLLM; nothing leaves the process.
"""
import sys
import os

# Ensure the backend/ directory is on the path when running from project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from unittest.mock import patch

import pytest

from app.services.ai_validator import (
    FAIL_CLOSED_MESSAGE,
    FAIL_OPEN_MESSAGE,
    SYSTEM_PROMPT,
    AIValidator,
    ValidationFailurePolicy,
    ai_validate,
    build_prompt,
    parse_verdict,
)
from conftest import CORRECT_REPLY, INCORRECT_REPLY, FakeLLM

STRUCTURE = ["determiner", "adjective", "subject", "verb"]


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

class TestPrompt:
    def test_prompt_includes_sentence_and_formula(self):
        prompt = build_prompt("  The fluffy rabbit hops ", STRUCTURE, ["adjective"])
        assert '"""The fluffy rabbit hops"""' in prompt
        assert "determiner + adjective + subject + verb" in prompt
        assert "NEW ELEMENT(S) TO PRACTISE: adjective" in prompt

    def test_rewrite_formula_has_no_new_elements(self):
        assert "none (rewrite practice)" in build_prompt("The dog runs", STRUCTURE, [])

    def test_call_arguments(self):
        llm = FakeLLM()
        AIValidator(llm, model="gpt-test").validate("The fluffy rabbit hops", STRUCTURE, ["adjective"])
        assert len(llm.calls) == 1
        call = llm.calls[0]
        assert call["system_prompt"] == SYSTEM_PROMPT
        assert call["model"] == "gpt-test"
        assert call["json_mode"] is True


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParseVerdict:
    def test_correct_reply(self):
        verdict = parse_verdict(CORRECT_REPLY)
        assert verdict.is_correct is True
        assert verdict.source == "ai"
        assert verdict.feedback.type == "success"
        assert verdict.feedback.message == "Brilliant sentence!"
        assert verdict.feedback.socratic_questions == []

    def test_incorrect_reply_keeps_questions(self):
        verdict = parse_verdict(INCORRECT_REPLY)
        assert verdict.is_correct is False
        assert verdict.feedback.type == "error"
        assert verdict.feedback.socratic_questions == ["Which word describes the noun?"]

    def test_fenced_json(self):
        verdict = parse_verdict("```json\n" + CORRECT_REPLY + "\n```")
        assert verdict.is_correct is True

    def test_json_with_leading_chatter(self):
        verdict = parse_verdict("Here is my verdict: " + INCORRECT_REPLY)
        assert verdict.is_correct is False

    def test_feedback_as_plain_string(self):
        verdict = parse_verdict('{"isCorrect": true, "feedback": "Lovely!"}')
        assert verdict.feedback.message == "Lovely!"

    @pytest.mark.parametrize("content", [
        "",
        "not json at all",
        "{broken json",
        '{"feedback": {"message": "hi"}}',
        '{"isCorrect": "yes", "feedback": {"message": "hi"}}',
        '{"isCorrect": true}',
        '{"isCorrect": true, "feedback": {"message": "  "}}',
    ])
    def test_bad_replies_raise(self, content):
        with pytest.raises(ValueError):
            parse_verdict(content)


# ---------------------------------------------------------------------------
# Failure policy
# ---------------------------------------------------------------------------

class TestFailurePolicy:
    def test_transport_error_fails_open_by_default(self):
        llm = FakeLLM(error=TimeoutError("read timed out"))
        verdict = AIValidator(llm).validate("The big dog runs", STRUCTURE)
        assert verdict.is_correct is True
        assert verdict.source == "fallback"
        assert verdict.feedback.message == FAIL_OPEN_MESSAGE

    def test_transport_error_fail_closed(self):
        llm = FakeLLM(error=ConnectionError("provider down"))
        verdict = AIValidator(llm, policy=ValidationFailurePolicy.FAIL_CLOSED).validate(
            "The big dog runs", STRUCTURE,
        )
        assert verdict.is_correct is False
        assert verdict.source == "fallback"
        assert verdict.feedback.type == "error"
        assert verdict.feedback.message == FAIL_CLOSED_MESSAGE

    def test_unparseable_reply_fails_open(self):
        verdict = ai_validate("The big dog runs", STRUCTURE, [], FakeLLM(reply="I think so!"))
        assert verdict.is_correct is True
        assert verdict.source == "fallback"

    def test_unparseable_reply_fail_closed_from_string(self):
        validator = AIValidator(FakeLLM(reply="{}"), policy="fail-closed")
        assert validator.policy is ValidationFailurePolicy.FAIL_CLOSED
        assert validator.validate("The big dog runs", STRUCTURE).is_correct is False

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            AIValidator(FakeLLM(), policy="fail-sideways")

    def test_fallback_emits_telemetry(self):
        with patch("app.services.ai_validator.emit_event") as emit:
            AIValidator(FakeLLM(error=RuntimeError("boom"))).validate("The big dog runs", STRUCTURE)
        emit.assert_called_once()
        assert emit.call_args.args[0] == "ai_validation_fallback"
        assert emit.call_args.kwargs["error_type"] == "transport:RuntimeError"

    def test_ai_verdict_passes_through(self):
        verdict = AIValidator(FakeLLM(reply=INCORRECT_REPLY), policy="fail-closed").validate(
            "The dog big runs", STRUCTURE,
        )
        assert verdict.source == "ai"
        assert verdict.is_correct is False
