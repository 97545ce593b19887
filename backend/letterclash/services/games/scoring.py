"""Answer evaluation and turn scoring.

Two strategies share the aggregation rules below:

- ``CommonnessScoring`` judges every answer against the lexicon and pays more
  for rarer answers (8..23 points per category).
- ``LetterScoring`` only checks the starting letter and pays a flat 15 points
  per category. It needs no data and is meant for offline/approximate play.

Both are pure: the same letter, answers, elapsed time and prior streak always
produce the same ``EvaluationResult`` for a given lexicon.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Dict, Mapping, NamedTuple, Optional

from .lexicon import (
    LexiconIndex,
    clamp01,
    normalize_lookup,
    singularize,
    split_tokens,
    strip_city_word,
)

CATEGORIES = ('name', 'place', 'animal', 'thing')
ROUND_TIME_SECONDS = 60
SPEED_BONUS_PER_SECOND = 0.5

# Commonness used when a valid answer is missing from the frequency list
DEFAULT_COMMONNESS = {'name': 0.55, 'animal': 0.35, 'thing': 0.45}

DIFFICULTY_LABELS = (
    (0.82, 'Very Common'),
    (0.62, 'Common'),
    (0.40, 'Uncommon'),
    (0.22, 'Rare'),
)

_FIRST_LETTER = re.compile(r"[a-z]")
_WHITESPACE = re.compile(r"\s+")


class ScoreRules(NamedTuple):
    participation: int
    completion_bonus: int
    streak_step: int
    streak_cap: int


COMMONNESS_RULES = ScoreRules(participation=8, completion_bonus=15, streak_step=4, streak_cap=20)
LETTER_RULES = ScoreRules(participation=8, completion_bonus=20, streak_step=5, streak_cap=15)
LETTER_POINTS = 15


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class CategoryVerdict:
    answer: str
    valid: bool
    reason: Optional[str] = None
    points: int = 0
    difficulty_label: Optional[str] = None
    commonness: Optional[float] = None
    detected_as: Optional[str] = None

    def to_dict(self):
        return {
            'answer': self.answer,
            'valid': self.valid,
            'reason': self.reason,
            'points': self.points,
            'difficultyLabel': self.difficulty_label,
            'commonness': self.commonness,
            'detectedAs': self.detected_as,
        }


@dataclass(frozen=True)
class EvaluationResult:
    verdicts: Mapping[str, CategoryVerdict]
    elapsed_seconds: float
    valid_count: int
    participation: int
    category_points: int
    speed_bonus: int
    completion_bonus: int
    streak_bonus: int
    total: int
    timed_out: bool = False
    strategy: str = field(default='commonness', compare=False)

    @property
    def full_clear(self) -> bool:
        return self.valid_count == len(CATEGORIES)

    def breakdown(self):
        return {
            'participation': self.participation,
            'categoryPoints': self.category_points,
            'speedBonus': self.speed_bonus,
            'completionBonus': self.completion_bonus,
            'streakBonus': self.streak_bonus,
            'total': self.total,
            'validCount': self.valid_count,
        }

    def to_dict(self):
        payload = {
            'answers': {c: v.answer for c, v in self.verdicts.items()},
            'validity': {c: v.valid for c, v in self.verdicts.items()},
            'categoryDetails': {c: v.to_dict() for c, v in self.verdicts.items()},
            'elapsedSeconds': self.elapsed_seconds,
            'fullClear': self.full_clear,
            'timedOut': self.timed_out,
            'strategy': self.strategy,
        }
        payload.update(self.breakdown())
        return payload


def clean_answer(raw) -> str:
    if not isinstance(raw, str):
        return ''
    return _WHITESPACE.sub(' ', raw.strip())


def starts_with_letter(normalized: str, letter: str) -> bool:
    first = _FIRST_LETTER.search(normalized)
    return bool(first and letter and first.group(0) == letter.lower())


def difficulty_label(commonness: float) -> str:
    for threshold, label in DIFFICULTY_LABELS:
        if commonness >= threshold:
            return label
    return 'Very Rare'


def points_for_commonness(commonness: float) -> int:
    return round_half_up(8 + (1 - clamp01(commonness)) * 15)


def aggregate(verdicts, elapsed_seconds, streak_before, rules: ScoreRules,
              timed_out=False, round_seconds=ROUND_TIME_SECONDS,
              strategy='commonness') -> EvaluationResult:
    """Combine per-category verdicts into the turn score."""
    valid_count = sum(1 for v in verdicts.values() if v.valid)
    category_points = sum(v.points for v in verdicts.values() if v.valid)
    speed_bonus = max(0, round_half_up((round_seconds - elapsed_seconds) * SPEED_BONUS_PER_SECOND))
    full_clear = valid_count == len(CATEGORIES)
    completion_bonus = rules.completion_bonus if full_clear else 0
    streak_bonus = 0
    if full_clear and streak_before > 0:
        streak_bonus = min(rules.streak_cap, streak_before * rules.streak_step)
    total = rules.participation + category_points + speed_bonus + completion_bonus + streak_bonus
    return EvaluationResult(
        verdicts=dict(verdicts),
        elapsed_seconds=elapsed_seconds,
        valid_count=valid_count,
        participation=rules.participation,
        category_points=category_points,
        speed_bonus=speed_bonus,
        completion_bonus=completion_bonus,
        streak_bonus=streak_bonus,
        total=total,
        timed_out=timed_out,
        strategy=strategy,
    )


class _Judgement(NamedTuple):
    valid: bool
    reason: Optional[str] = None
    commonness: Optional[float] = None
    detected_as: Optional[str] = None


def _rejected(reason, detected_as=None):
    return _Judgement(False, reason, None, detected_as)


class CommonnessScoring:
    """Lexicon-backed evaluator; rarer valid answers earn more points."""

    name = 'commonness'
    rules = COMMONNESS_RULES

    def __init__(self, lexicon: LexiconIndex, round_seconds: int = ROUND_TIME_SECONDS):
        self.lexicon = lexicon
        self.round_seconds = round_seconds
        self._judges = {
            'name': self._judge_name,
            'place': self._judge_place,
            'animal': self._judge_animal,
            'thing': self._judge_thing,
        }

    def evaluate(self, letter, answers, elapsed_seconds, streak_before, timed_out=False):
        answers = answers if isinstance(answers, Mapping) else {}
        verdicts = {c: self.evaluate_category(c, answers.get(c), letter) for c in CATEGORIES}
        return aggregate(verdicts, elapsed_seconds, streak_before, self.rules,
                         timed_out=timed_out, round_seconds=self.round_seconds,
                         strategy=self.name)

    def evaluate_category(self, category, raw_answer, letter) -> CategoryVerdict:
        cleaned = clean_answer(raw_answer)
        normalized = normalize_lookup(cleaned)
        if not normalized:
            return CategoryVerdict(answer=cleaned, valid=False, reason=f"No {category} provided.")
        if not starts_with_letter(normalized, letter):
            return CategoryVerdict(answer=cleaned, valid=False, reason=f"Must start with {letter}.")

        judgement = self._judges[category](normalized)
        if not judgement.valid:
            return CategoryVerdict(answer=cleaned, valid=False, reason=judgement.reason,
                                   detected_as=judgement.detected_as)

        commonness = clamp01(judgement.commonness)
        return CategoryVerdict(
            answer=cleaned,
            valid=True,
            points=points_for_commonness(commonness),
            difficulty_label=difficulty_label(commonness),
            commonness=round(commonness, 3),
            detected_as=judgement.detected_as,
        )

    def _word_commonness(self, term, category):
        commonness = self.lexicon.word_commonness(term)
        return DEFAULT_COMMONNESS[category] if commonness is None else commonness

    def _judge_name(self, normalized):
        first_token = normalized.split(' ')[0]
        if not self.lexicon.is_name(first_token):
            return _rejected("Not recognized as a common first name.")
        return _Judgement(True, commonness=self._word_commonness(first_token, 'name'))

    def _judge_place(self, normalized):
        for candidate in dict.fromkeys((normalized, strip_city_word(normalized))):
            if not candidate:
                continue
            match = self.lexicon.find_place(candidate)
            if match:
                return _Judgement(True, commonness=self.lexicon.place_commonness(match),
                                  detected_as=match.kind)
        return _rejected("Place not found in city/country data.")

    def _judge_animal(self, normalized):
        tokens = split_tokens(normalized)
        last_token = tokens[-1] if tokens else ''
        candidates = (normalized, singularize(normalized), last_token, singularize(last_token))
        for candidate in dict.fromkeys(candidates):
            if candidate and self.lexicon.is_animal(candidate):
                return _Judgement(True, commonness=self._word_commonness(candidate, 'animal'))
        return _rejected("Not recognized in the animal list.")

    def _is_thing_word(self, token):
        if self.lexicon.is_word(token):
            return True
        singular = singularize(token)
        return bool(singular) and self.lexicon.is_word(singular)

    def _judge_thing(self, normalized):
        if self.lexicon.is_place(normalized):
            return _rejected("That is a place, not a random thing.")
        tokens = split_tokens(normalized)
        if not tokens or not all(self._is_thing_word(t) for t in tokens):
            return _rejected("Not recognized as an English thing/object word.")
        if len(tokens) == 1 and (self.lexicon.is_animal(tokens[0]) or self.lexicon.is_name(tokens[0])):
            return _rejected("Looks like an animal or name, not a thing.")
        return _Judgement(True, commonness=self._word_commonness(normalized, 'thing'))


class LetterScoring:
    """Starting-letter check only, flat points per category."""

    name = 'letter'
    rules = LETTER_RULES

    def __init__(self, round_seconds: int = ROUND_TIME_SECONDS):
        self.round_seconds = round_seconds

    def evaluate(self, letter, answers, elapsed_seconds, streak_before, timed_out=False):
        answers = answers if isinstance(answers, Mapping) else {}
        verdicts: Dict[str, CategoryVerdict] = {}
        for category in CATEGORIES:
            cleaned = clean_answer(answers.get(category))
            if not cleaned:
                verdicts[category] = CategoryVerdict(cleaned, False, f"No {category} provided.")
            elif cleaned[0].upper() != letter:
                verdicts[category] = CategoryVerdict(cleaned, False, f"Must start with {letter}.")
            else:
                verdicts[category] = CategoryVerdict(cleaned, True, points=LETTER_POINTS)
        return aggregate(verdicts, elapsed_seconds, streak_before, self.rules,
                         timed_out=timed_out, round_seconds=self.round_seconds,
                         strategy=self.name)


STRATEGIES = (CommonnessScoring.name, LetterScoring.name)


def make_scoring(name, lexicon, round_seconds=ROUND_TIME_SECONDS):
    if name == CommonnessScoring.name:
        return CommonnessScoring(lexicon, round_seconds=round_seconds)
    if name == LetterScoring.name:
        return LetterScoring(round_seconds=round_seconds)
    raise ValueError(f"Unknown scoring strategy: {name!r}")
