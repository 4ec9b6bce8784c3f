"""
Formula generator for PWP sessions.

Turns a lesson's authored templates into concrete formulas for one pupil's
chosen subject: picks one verb / adjective / adverb / determiner / pronoun
per session from small fixed pools, builds a labelled example for every
template, and seeds each word bank from the previous formula's example.

Word choice goes through an injected random.Random so tests can pin it.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, asdict
from typing import Optional

from app.services.pwp_curriculum import (
    SUBJECT_TYPES,
    format_structure,
    lookup,
    unlocked_slots,
)
from app.services.sentence_validator import words

logger = logging.getLogger("pwp.formula_generator")

# ---------------------------------------------------------------------------
# Word pools
# ---------------------------------------------------------------------------

VERBS_BY_TYPE: dict[str, tuple[str, ...]] = {
    "person": ("walks", "runs", "dances", "sings", "reads", "writes", "plays"),
    "animal": ("runs", "jumps", "sleeps", "plays", "eats", "hides"),
    "place": ("opens", "sits", "stands", "waits", "shines"),
    "thing": ("sits", "stands", "waits", "shines", "moves", "falls"),
}

SUBJECT_VERBS: dict[str, tuple[str, ...]] = {
    "ben": ("runs", "jumps"),
    "mum": ("cooks", "sings"),
    "teacher": ("teaches", "reads"),
    "dog": ("barks", "runs", "jumps"),
    "cat": ("purrs", "sleeps"),
    "bird": ("flies", "sings"),
    "fish": ("swims", "splashes"),
    "rabbit": ("hops", "eats"),
    "lion": ("roars", "prowls"),
    "elephant": ("walks", "splashes"),
    "frog": ("jumps", "croaks"),
    "butterfly": ("flies", "rests"),
    "bear": ("growls", "sleeps"),
    "library": ("opens", "waits"),
    "park": ("sits", "waits"),
    "school": ("welcomes", "opens"),
    "book": ("sits", "waits"),
    "car": ("moves", "stops"),
    "clock": ("ticks", "chimes"),
}

ADJECTIVES: tuple[str, ...] = ("big", "small", "happy", "bright", "busy", "quiet", "old", "tiny")

SUBJECT_ADJECTIVES: dict[str, tuple[str, ...]] = {
    "ben": ("energetic", "cheerful"),
    "mum": ("caring", "kind"),
    "teacher": ("patient", "kind"),
    "dog": ("playful", "friendly"),
    "cat": ("sleepy", "soft"),
    "bird": ("colourful", "little"),
    "fish": ("shiny", "tiny"),
    "rabbit": ("fluffy", "small"),
    "lion": ("mighty", "proud"),
    "elephant": ("gentle", "huge"),
    "frog": ("tiny", "green"),
    "butterfly": ("beautiful", "bright"),
    "bear": ("furry", "big"),
    "library": ("old", "quiet"),
    "park": ("peaceful", "green"),
    "school": ("busy", "friendly"),
    "book": ("interesting", "old"),
    "car": ("fast", "shiny"),
    "clock": ("antique", "old"),
}

ADVERBS: tuple[str, ...] = ("quietly", "slowly", "quickly", "gently", "happily", "carefully", "softly")

ADVERBS_BY_VERB: dict[str, tuple[str, ...]] = {
    "runs": ("quickly", "happily"),
    "walks": ("slowly", "carefully"),
    "cooks": ("carefully", "happily"),
    "teaches": ("patiently", "kindly"),
    "barks": ("loudly", "happily"),
    "purrs": ("softly", "quietly"),
    "flies": ("gracefully", "swiftly"),
    "swims": ("smoothly", "quickly"),
    "hops": ("quickly", "happily"),
    "roars": ("loudly", "fiercely"),
    "jumps": ("quickly", "happily"),
    "growls": ("fiercely", "loudly"),
    "opens": ("quietly", "slowly"),
    "sits": ("peacefully", "quietly"),
    "welcomes": ("warmly", "happily"),
    "moves": ("smoothly", "slowly"),
    "ticks": ("steadily", "quietly"),
}

DETERMINERS: tuple[str, ...] = ("The", "A", "My", "This", "Our")

MALE_NAMES = frozenset({"ben", "james", "tom", "sam", "dad"})
FEMALE_NAMES = frozenset({"mum", "sarah", "maya", "emma"})

CONJUNCTION_WORD = "and"

_VOWELS = "aeiou"

# Silent h takes "an"; a "yoo" or "w" sound takes "a"
_AN_PREFIXES = ("hour", "honest", "honour", "honor", "heir")
_A_PREFIXES = ("uni", "use", "usu", "uti", "eu", "ewe", "one", "once")


# ---------------------------------------------------------------------------
# Formula
# ---------------------------------------------------------------------------

@dataclass
class Formula:
    number: int
    structure: list[str]
    labelled_example: str
    labelled_parts: list[dict] = field(default_factory=list)
    word_bank: list[str] = field(default_factory=list)
    new_elements: list[str] = field(default_factory=list)
    hint_text: str = ""
    concepts: list[str] = field(default_factory=list)

    @property
    def structure_text(self) -> str:
        return format_structure(self.structure)

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def _key(subject: str) -> str:
    return subject.strip().lower()


def _article_agreement(determiner: str, next_word: str) -> str:
    if determiner.lower() in ("a", "an") and next_word:
        word = next_word.lower()
        if word.startswith(_AN_PREFIXES):
            article = "an"
        elif word.startswith(_A_PREFIXES):
            article = "a"
        else:
            article = "an" if word[0] in _VOWELS else "a"
        return article.capitalize() if determiner[0].isupper() else article
    return determiner


def _subject_text(subject: str, subject_type: str, sentence_start: bool) -> str:
    if sentence_start:
        return subject[0].upper() + subject[1:]
    # Names keep their capital letter mid-sentence
    if subject_type == "person" and subject[0].isupper():
        return subject
    return subject.lower()


def build_labelled_parts(structure, chosen: dict, subject: str, subject_type: str) -> list[dict]:
    """Fill each slot of a structure with the session's chosen word."""
    parts: list[dict] = []
    verbs_seen = 0
    for i, slot in enumerate(structure):
        if slot == "subject":
            text = _subject_text(subject, subject_type, sentence_start=(i == 0))
        elif slot == "verb":
            text = chosen["verb"] if verbs_seen == 0 else chosen["second_verb"]
            verbs_seen += 1
        elif slot == "conjunction":
            text = CONJUNCTION_WORD
        else:
            text = chosen[slot]
        parts.append({"text": text, "label": slot})

    for i, part in enumerate(parts):
        if part["label"] == "determiner" and i + 1 < len(parts):
            part["text"] = _article_agreement(part["text"], parts[i + 1]["text"])

    if parts:
        first = parts[0]["text"]
        parts[0]["text"] = first[0].upper() + first[1:]
        for part in parts[1:]:
            if part["label"] in ("determiner", "adjective", "adverb", "verb", "pronoun"):
                part["text"] = part["text"].lower()
    return parts


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class FormulaGenerator:
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def choose_words(self, subject: str, subject_type: str) -> dict:
        """One word per slot for the whole session, so every example reuses the same words."""
        key = _key(subject)
        verb_pool = SUBJECT_VERBS.get(key) or VERBS_BY_TYPE[subject_type]
        verb = self.rng.choice(verb_pool)

        second_pool = [v for v in dict.fromkeys(verb_pool + VERBS_BY_TYPE[subject_type]) if v != verb]
        second_verb = self.rng.choice(second_pool)

        adjective = self.rng.choice(SUBJECT_ADJECTIVES.get(key) or ADJECTIVES)
        adverb = self.rng.choice(ADVERBS_BY_VERB.get(verb) or ADVERBS)
        determiner = self.rng.choice(DETERMINERS)

        if subject_type == "person":
            if key in MALE_NAMES:
                pronoun = "He"
            elif key in FEMALE_NAMES:
                pronoun = "She"
            else:
                pronoun = self.rng.choice(("He", "She"))
        else:
            pronoun = "It"

        return {
            "verb": verb,
            "second_verb": second_verb,
            "adjective": adjective,
            "adverb": adverb,
            "determiner": determiner,
            "pronoun": pronoun,
        }

    def generate(
        self,
        lesson_number: int,
        subject: str,
        subject_type: str,
        concepts_cumulative=None,
    ) -> list[Formula]:
        """
        Build the ordered formulas for one session.

        Raises LessonNotFoundError for lessons without an authored table, and
        ValueError for a blank subject, an unknown subject type, or a
        concept list that does not unlock a slot the lesson needs.
        """
        spec = lookup(lesson_number)

        subject = (subject or "").strip()
        if not subject:
            raise ValueError("subject must not be empty")
        if subject_type not in SUBJECT_TYPES:
            raise ValueError(f"subject_type must be one of {', '.join(SUBJECT_TYPES)}")

        if concepts_cumulative is None:
            concepts_cumulative = spec.concepts_cumulative
        available = unlocked_slots(concepts_cumulative)

        chosen = self.choose_words(subject, subject_type)

        formulas: list[Formula] = []
        previous_words: list[str] = []
        for number, template in enumerate(spec.formulas, start=1):
            locked = [s for s in template.structure if s not in available]
            if locked:
                raise ValueError(
                    f"Lesson {spec.lesson_number} formula {number} needs slots not yet unlocked: "
                    f"{', '.join(sorted(set(locked)))}"
                )

            parts = build_labelled_parts(template.structure, chosen, subject, subject_type)
            example = " ".join(p["text"] for p in parts)
            formulas.append(Formula(
                number=number,
                structure=list(template.structure),
                labelled_example=example,
                labelled_parts=parts,
                word_bank=list(previous_words),
                new_elements=list(template.new_elements),
                hint_text=template.hint.format(subject=subject.lower()),
                concepts=list(template.concepts),
            ))
            previous_words = words(example)

        logger.info(
            "Generated %d formulas for lesson %s subject=%r verb=%s",
            len(formulas), spec.lesson_number, subject, chosen["verb"],
        )
        return formulas


def generate_formulas(lesson_number, subject, subject_type, concepts_cumulative=None, rng=None) -> list[Formula]:
    return FormulaGenerator(rng=rng).generate(lesson_number, subject, subject_type, concepts_cumulative)
