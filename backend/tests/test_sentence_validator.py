"""
Tests for the rule-based sentence check. Pure functions, no I/O.
"""
import sys
import os

# Ensure the backend/ directory is on the path when running from project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from app.services.sentence_validator import (
    ADVERB_ISSUE,
    DETERMINER_ISSUE,
    EMPTY_SENTENCE_ISSUE,
    SUBJECT_VERB_ISSUE,
    tokenize,
    validate,
    words,
)

SV = ["subject", "verb"]
D_SV = ["determiner", "subject", "verb"]
DA_S_ADV_V = ["determiner", "adjective", "subject", "adverb", "verb"]


class TestEmptySentence:
    @pytest.mark.parametrize("sentence", ["", "   ", "\n\t", None])
    @pytest.mark.parametrize("structure", [SV, D_SV, DA_S_ADV_V, []])
    def test_empty_is_always_the_single_issue(self, sentence, structure):
        result = validate(sentence, structure)
        assert result.valid is False
        assert result.issues == [EMPTY_SENTENCE_ISSUE]


class TestSubjectVerb:
    def test_one_word_fails(self):
        result = validate("Dog", SV)
        assert not result.valid
        assert result.issues == [SUBJECT_VERB_ISSUE]

    def test_two_words_pass(self):
        assert validate("Dog runs", SV).valid

    def test_not_required_without_both_slots(self):
        assert validate("Runs", ["verb"]).valid


class TestDeterminer:
    def test_missing_determiner(self):
        result = validate("Cat runs", D_SV)
        assert not result.valid
        assert DETERMINER_ISSUE in result.issues

    def test_with_determiner(self):
        result = validate("The cat runs", D_SV)
        assert result.valid
        assert result.issues == []

    @pytest.mark.parametrize("det", ["a", "An", "MY", "their", "Those"])
    def test_determiner_is_case_insensitive(self, det):
        assert validate(f"{det} cats run", D_SV).valid

    def test_leading_quote_is_ignored(self):
        assert validate('"The cat runs."', D_SV).valid

    def test_determiner_must_be_first(self):
        assert not validate("Cat the runs", D_SV).valid


class TestAdverb:
    def test_ly_word_passes(self):
        assert validate("The lion loudly roars", ["determiner", "subject", "adverb", "verb"]).valid

    @pytest.mark.parametrize("adverb", ["fast", "hard", "well"])
    def test_known_adverb_without_ly(self, adverb):
        assert validate(f"The dog runs {adverb}", ["determiner", "subject", "verb", "adverb"]).valid

    def test_missing_adverb(self):
        result = validate("The lion roars", ["determiner", "subject", "adverb", "verb"])
        assert result.issues == [ADVERB_ISSUE]

    def test_punctuation_after_adverb(self):
        assert validate("Lions roar loudly!", ["subject", "verb", "adverb"]).valid


class TestIssueOrder:
    def test_all_issues_collected_in_order(self):
        result = validate("Lion", DA_S_ADV_V)
        assert result.issues == [SUBJECT_VERB_ISSUE, DETERMINER_ISSUE, ADVERB_ISSUE]

    def test_to_dict(self):
        assert validate("Cat runs", D_SV).to_dict() == {"valid": False, "issues": [DETERMINER_ISSUE]}


class TestTokenizing:
    def test_tokenize_keeps_punctuation(self):
        assert tokenize("  The dog  runs. ") == ["The", "dog", "runs."]

    def test_words_strip_punctuation(self):
        assert words("The dog, runs!") == ["The", "dog", "runs"]

    def test_words_drop_bare_punctuation(self):
        assert words("Dog runs !") == ["Dog", "runs"]
