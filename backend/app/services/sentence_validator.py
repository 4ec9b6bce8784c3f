"""
Rule-based sentence check, the offline gate run before any AI call.

validate(sentence, structure, new_elements) applies four structural checks
in order and collects every issue rather than stopping at the first:

  1. Empty / whitespace-only input → "Please write a sentence" (stops here)
  2. subject + verb required but fewer than 2 words
  3. determiner required but the first word is not a determiner
  4. adverb required but no word ends in -ly or is a known adverb

It only checks that the required slots are plausibly present. Whether the
sentence actually satisfies the formula is left to the AI validator.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

EMPTY_SENTENCE_ISSUE = "Please write a sentence"
SUBJECT_VERB_ISSUE = "Your sentence needs at least a subject and a verb."
DETERMINER_ISSUE = 'This formula needs to start with a determiner like "The" or "A".'
ADVERB_ISSUE = 'Include an adverb that describes HOW, like "quietly" or "slowly".'

DETERMINERS = frozenset({
    "the", "a", "an", "my", "your", "his", "her", "its",
    "our", "their", "this", "that", "these", "those",
})

ADVERBS = frozenset({
    "quickly", "slowly", "happily", "quietly", "loudly",
    "gently", "bravely", "fast", "hard", "well",
})

_EDGE_PUNCTUATION = "\"'.,!?;:()"


@dataclass
class RuleResult:
    valid: bool
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "issues": list(self.issues)}


def tokenize(sentence: str) -> list[str]:
    """Split on whitespace. Punctuation is kept; use words() for bare words."""
    return [t for t in re.split(r"\s+", sentence or "") if t]


def words(sentence: str) -> list[str]:
    """Whitespace tokens with surrounding punctuation stripped, empties dropped."""
    out = []
    for token in tokenize(sentence):
        w = token.strip(_EDGE_PUNCTUATION)
        if w:
            out.append(w)
    return out


def _is_adverb(word: str) -> bool:
    lower = word.lower()
    return lower.endswith("ly") or lower in ADVERBS


def validate(sentence: str, structure, new_elements=None) -> RuleResult:
    """
    Structural pre-check of a pupil sentence against a formula.

    new_elements is accepted for symmetry with the AI validator; the rules
    key off the full structure so a slot is enforced whether or not it is new.
    """
    tokens = tokenize(sentence)
    if not tokens:
        return RuleResult(valid=False, issues=[EMPTY_SENTENCE_ISSUE])

    slots = set(structure or [])
    bare = [t.strip(_EDGE_PUNCTUATION) for t in tokens]
    issues: list[str] = []

    if "subject" in slots and "verb" in slots and len(tokens) < 2:
        issues.append(SUBJECT_VERB_ISSUE)

    if "determiner" in slots and bare[0].lower() not in DETERMINERS:
        issues.append(DETERMINER_ISSUE)

    if "adverb" in slots and not any(_is_adverb(w) for w in bare if w):
        issues.append(ADVERB_ISSUE)

    return RuleResult(valid=not issues, issues=issues)
