"""Read-only word lists and gazetteers used to judge answers.

The index is built once at startup from plain data files and never mutated
afterwards, so it can be shared by every room without locking. A data file
that is missing or unreadable leaves its source empty (and is logged); the
evaluator then falls back to neutral commonness values instead of failing.

Data directory layout::

    first_names.txt     one given name per line
    animals.txt         one animal per line
    english_words.txt   one dictionary word per line
    popular_words.txt   words ordered from most to least frequent
    cities.json         [{"name", "altName", "population"}, ...]
    countries.json      [{"name", "official", "population", "altSpellings"}, ...]
"""
import json
import logging
import math
import re
import unicodedata
from pathlib import Path
from typing import Dict, Iterable, NamedTuple, Optional

logger = logging.getLogger(__name__)

BUNDLED_DATA_DIR = Path(__file__).resolve().parents[2] / 'data'

IRREGULAR_SINGULARS = {
    'mice': 'mouse',
    'geese': 'goose',
    'teeth': 'tooth',
    'feet': 'foot',
    'wolves': 'wolf',
    'leaves': 'leaf',
    'children': 'child',
    'men': 'man',
    'women': 'woman',
}

DEFAULT_CITY_POPULATION = 1000
DEFAULT_COUNTRY_POPULATION = 1000000
MISSING_POPULATION_COMMONNESS = 0.25

_NON_WORD_CHARS = re.compile(r"[^a-z0-9\s'-]")
_WHITESPACE = re.compile(r"\s+")
_TOKEN_SPLIT = re.compile(r"[\s-]+")
_CITY_WORD = re.compile(r"\bcity\b")


def clamp01(value: float) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, value))


def normalize_lookup(raw) -> str:
    """Canonical lookup key: no accents, lower case, only [a-z0-9 '-]."""
    if raw is None:
        return ''
    text = unicodedata.normalize('NFD', str(raw))
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    text = _NON_WORD_CHARS.sub(' ', text.casefold())
    return _WHITESPACE.sub(' ', text).strip()


def split_tokens(normalized: str) -> list:
    return [token for token in _TOKEN_SPLIT.split(normalized) if token]


def strip_city_word(normalized: str) -> str:
    return _WHITESPACE.sub(' ', _CITY_WORD.sub('', normalized)).strip()


def singularize(word: str) -> str:
    """Best-effort singular of an English noun.

    Only the irregular table and four suffix rules are applied, so plenty of
    plurals (and some singulars ending in "s") come out wrong.
    """
    text = normalize_lookup(word)
    if not text:
        return ''
    if text in IRREGULAR_SINGULARS:
        return IRREGULAR_SINGULARS[text]
    if text.endswith('ies') and len(text) > 4:
        return text[:-3] + 'y'
    if text.endswith('ves') and len(text) > 4:
        return text[:-3] + 'f'
    if text.endswith('es') and len(text) > 3:
        return text[:-2]
    if text.endswith('s') and len(text) > 2:
        return text[:-1]
    return text


class PlaceMatch(NamedTuple):
    kind: str  # 'country' or 'city'
    population: float


class PopulationBounds(NamedTuple):
    min_log: float
    max_log: float


def _population_value(value, fallback):
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(parsed) or parsed <= 0:
        return fallback
    return parsed


def _population_bounds(populations: Iterable[float]) -> PopulationBounds:
    logs = [math.log10(p) for p in populations if p and p > 0 and math.isfinite(p)]
    if not logs or min(logs) == max(logs):
        return PopulationBounds(1.0, 8.0)
    return PopulationBounds(min(logs), max(logs))


class LexiconIndex:
    """Membership and commonness lookups over normalized terms."""

    def __init__(self, names=(), animals=(), words=(), popular_words=(),
                 cities=(), countries=()):
        self._names = frozenset(filter(None, (normalize_lookup(n) for n in names)))

        animal_keys = set()
        for animal in animals:
            animal_keys.add(normalize_lookup(animal))
            animal_keys.add(singularize(animal))
        animal_keys.discard('')
        self._animals = frozenset(animal_keys)

        self._words = frozenset(filter(None, (normalize_lookup(w) for w in words)))

        popular = list(popular_words)
        ranks: Dict[str, int] = {}
        for idx, word in enumerate(popular):
            key = normalize_lookup(word)
            if key and key not in ranks:
                ranks[key] = idx
        self._rank_by_word = ranks
        self._popular_count = len(popular)

        self._city_population = self._index_cities(cities)
        self._country_population = self._index_countries(countries)
        self._city_bounds = _population_bounds(self._city_population.values())
        self._country_bounds = _population_bounds(self._country_population.values())

    @staticmethod
    def _index_cities(rows) -> Dict[str, float]:
        by_name: Dict[str, float] = {}
        for row in rows:
            population = _population_value(row.get('population'), DEFAULT_CITY_POPULATION)
            for variant in (row.get('name'), row.get('altName')):
                key = normalize_lookup(variant)
                if key and population > by_name.get(key, 0):
                    by_name[key] = population
        return by_name

    @staticmethod
    def _index_countries(rows) -> Dict[str, float]:
        rows = list(rows)
        by_name: Dict[str, float] = {}
        # Primary names first so an alternate spelling never shadows a real country
        for row in rows:
            population = _population_value(row.get('population'), DEFAULT_COUNTRY_POPULATION)
            for variant in (row.get('name'), row.get('official')):
                key = normalize_lookup(variant)
                if key:
                    by_name.setdefault(key, population)
        for row in rows:
            population = _population_value(row.get('population'), DEFAULT_COUNTRY_POPULATION)
            for variant in row.get('altSpellings') or ():
                key = normalize_lookup(variant)
                if key:
                    by_name.setdefault(key, population)
        return by_name

    @classmethod
    def from_directory(cls, directory=None) -> 'LexiconIndex':
        root = Path(directory) if directory else BUNDLED_DATA_DIR
        logger.info(f"[lexicon] loading data from {root}")
        return cls(
            names=_load_source(root / 'first_names.txt', _read_lines),
            animals=_load_source(root / 'animals.txt', _read_lines),
            words=_load_source(root / 'english_words.txt', _read_lines),
            popular_words=_load_source(root / 'popular_words.txt', _read_lines),
            cities=_load_source(root / 'cities.json', _read_json_rows),
            countries=_load_source(root / 'countries.json', _read_json_rows),
        )

    # ---- membership ----

    def is_name(self, token: str) -> bool:
        return token in self._names

    def is_animal(self, term: str) -> bool:
        return term in self._animals

    def is_word(self, token: str) -> bool:
        return token in self._words

    def is_place(self, term: str) -> bool:
        return term in self._city_population or term in self._country_population

    def find_place(self, term: str) -> Optional[PlaceMatch]:
        """Countries win over cities sharing a name."""
        if term in self._country_population:
            return PlaceMatch('country', self._country_population[term])
        if term in self._city_population:
            return PlaceMatch('city', self._city_population[term])
        return None

    # ---- commonness ----

    def place_commonness(self, match: PlaceMatch) -> float:
        if not match.population or match.population <= 0:
            return MISSING_POPULATION_COMMONNESS
        bounds = self._country_bounds if match.kind == 'country' else self._city_bounds
        log_pop = math.log10(match.population)
        return clamp01((log_pop - bounds.min_log) / (bounds.max_log - bounds.min_log))

    def word_commonness(self, term: str) -> Optional[float]:
        """Frequency percentile of the best-ranked variant, or None if unranked."""
        normalized = normalize_lookup(term)
        if not normalized or self._popular_count == 0:
            return None

        candidates = {normalized, singularize(normalized)}
        for token in split_tokens(normalized):
            candidates.add(token)
            candidates.add(singularize(token))

        ranks = [self._rank_by_word[c] for c in candidates if c in self._rank_by_word]
        if not ranks:
            return None
        return clamp01(1 - min(ranks) / max(1, self._popular_count - 1))

    def stats(self) -> dict:
        return {
            'names': len(self._names),
            'animals': len(self._animals),
            'words': len(self._words),
            'popular_words': self._popular_count,
            'cities': len(self._city_population),
            'countries': len(self._country_population),
        }


def _read_lines(path: Path) -> list:
    with open(path, encoding='utf-8') as fh:
        return [line.strip() for line in fh if line.strip() and not line.startswith('#')]


def _read_json_rows(path: Path) -> list:
    with open(path, encoding='utf-8') as fh:
        rows = json.load(fh)
    if not isinstance(rows, list):
        raise ValueError(f"expected a JSON list in {path.name}")
    return [row for row in rows if isinstance(row, dict)]


def _load_source(path: Path, reader) -> list:
    try:
        rows = reader(path)
    except (OSError, ValueError) as exc:
        logger.warning(f"[lexicon] failed to load {path.name}: {exc}")
        return []
    logger.info(f"[lexicon] loaded {path.name} entries={len(rows)}")
    return rows
