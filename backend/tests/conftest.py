import os
import random
import sys

# Ensure the backend/ directory is on the path when running from project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Settings requires Supabase credentials; tests never reach a real project
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("PWP_SESSION_STORE", "memory")

import pytest

from app.services.ai_validator import AIValidator, ValidationFailurePolicy
from app.services.formula_generator import FormulaGenerator
from app.services.mastery_store import InMemoryMasteryStore
from app.services.pwp_service import PwpService
from app.services.pwp_session_store import InMemorySessionStore


CORRECT_REPLY = (
    '{"isCorrect": true, "feedback": {"type": "success", '
    '"message": "Brilliant sentence!", "socraticQuestions": []}}'
)

INCORRECT_REPLY = (
    '{"isCorrect": false, "feedback": {"type": "error", '
    '"message": "Nearly there!", "socraticQuestions": ["Which word describes the noun?"]}}'
)


class FakeLLM:
    """Stands in for AIService: records prompts and replays canned replies."""

    def __init__(self, reply: str = CORRECT_REPLY, error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    def generate_completion(self, prompt, system_prompt=None, **kwargs):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, **kwargs})
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def mastery_store():
    return InMemoryMasteryStore()


@pytest.fixture
def service(session_store, mastery_store, fake_llm):
    return PwpService(
        store=session_store,
        ai_validator=AIValidator(fake_llm, policy=ValidationFailurePolicy.FAIL_OPEN),
        generator=FormulaGenerator(rng=random.Random(7)),
        mastery_store=mastery_store,
    )
