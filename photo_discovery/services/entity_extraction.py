"""
Entity Extraction Module
Extracts typed, spanned entities from natural language photo queries using
prioritized regex tables + fuzzy vocabulary matching
"""
import calendar
import re
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz, process

from photo_discovery.models.query import Entity, EntityType, Span
import logging

logger = logging.getLogger(__name__)


# Matcher priorities (higher wins when spans overlap)
PRIORITIES = {
    "date_range": 100,
    "album": 96,
    "quoted_keyword": 95,
    "date": 90,
    "file_type": 80,
    "camera": 75,
    "action_type": 70,
    "color": 60,
    "location_vocabulary": 55,
    "location": 50,
    "person_vocabulary": 47,
    "person": 45,
    "keyword_vocabulary": 20,
    "keyword": 10,
}

MONTHS = {
    name: index for index, name in enumerate([
        "january", "february", "march", "april", "may", "june", "july",
        "august", "september", "october", "november", "december",
    ], start=1)
}

SEASONS = {
    "spring": (3, 5),
    "summer": (6, 8),
    "fall": (9, 11),
    "autumn": (9, 11),
    "winter": (12, 2),
}

COLORS = [
    "black and white", "red", "orange", "yellow", "green", "blue", "purple", "pink",
    "brown", "black", "white", "gray", "grey", "golden", "silver", "teal", "turquoise",
]

FILE_TYPES = {
    "jpg": "jpg", "jpeg": "jpg", "png": "png", "gif": "gif", "heic": "heic",
    "raw": "raw", "dng": "dng", "tif": "tiff", "tiff": "tiff", "webp": "webp",
    "mp4": "mp4", "mov": "mov",
}

PEOPLE_WORDS = [
    "family", "friends", "kids", "children", "mom", "dad", "parents", "grandma",
    "grandpa", "baby", "couple", "group",
]

# Words that never become keywords on their own
STOPWORDS = {
    "a", "an", "the", "of", "in", "at", "on", "from", "to", "with", "and", "or", "for",
    "by", "me", "my", "our", "i", "we", "you", "it", "is", "are", "was", "were", "be",
    "show", "find", "search", "get", "display", "look", "looking", "see", "view", "give",
    "want", "need", "please", "can", "could", "would", "let", "lets", "us", "some", "any",
    "all", "every", "these", "those", "this", "that", "them", "there", "here", "only",
    "just", "also", "more", "less", "filter", "filtered", "taken", "shot", "captured",
    "photos", "photo", "pictures", "picture", "pics", "pic", "images", "image", "shots",
    "files", "file", "selected", "selection", "do", "something", "stuff", "thing",
    "things", "like", "about", "near", "around", "between", "during", "since", "until",
    "through", "last", "past", "next", "today", "yesterday", "year", "years", "month",
    "months", "week", "weeks", "day", "days", "as", "into", "onto", "than", "then",
    "what", "which", "where", "when", "who", "how", "hey", "u", "pls", "not", "no",
}

# Tokens that end a free-text location or person capture
BOUNDARY_WORDS = sorted(
    STOPWORDS | set(MONTHS) | set(SEASONS) | set(FILE_TYPES) | set(COLORS) | {"album", "albums", "camera"},
    key=len,
    reverse=True,
)
_BOUNDARY = "(?:" + "|".join(re.escape(word) for word in BOUNDARY_WORDS) + r")\b"

DATE_EXPRESSION = (
    r"(?:\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{2,4}|"
    r"(?:" + "|".join(MONTHS) + r")(?:\s+\d{4})?|(?:19|20)\d{2})"
)


# Regex patterns for table-driven entity types: (pattern, normalizer)
PATTERNS: Dict[str, List[Tuple[str, Optional[Callable[[str], str]]]]] = {
    "quoted_keyword": [
        (r"\"([^\"]+)\"", None),
        (r"(?:^|(?<=\s))'([^']+)'(?=\s|$|[.,!?])", None),
    ],
    "album": [
        (r"\balbums?\s+(?:called\s+|named\s+|titled\s+)?[\"']?([a-z0-9][\w' -]*?)[\"']?"
         r"(?=\s+(?:with|from|for|and|containing|of)\b|[.,!?]|$)", None),
    ],
    "file_type": [
        (r"\b(" + "|".join(FILE_TYPES) + r")s?\b", lambda value: FILE_TYPES[value]),
    ],
    "camera": [
        (r"\b((?:iphone|pixel|galaxy)(?:\s+\d+)?(?:\s+(?:pro|max|ultra|plus))*)\b", None),
        (r"\b((?:canon|nikon|sony|fujifilm|fuji|olympus|panasonic|leica|gopro|dji)"
         r"(?:\s+(?:eos|alpha|hero))?(?:\s+[a-z]*\d[a-z0-9-]*)?)\b", None),
    ],
    "action_type": [
        (r"\b(remove\s+(?:the\s+)?tags?|untag)\b", lambda _: "untag"),
        (r"\b(?:add\s+(?:the\s+)?)?(tags?|label|labels)\b", lambda _: "tag"),
        (r"\b(download|save)\b", lambda _: "download"),
        (r"\b(export(?:\s+(?:the\s+)?(?:metadata|data|info))?)\b", lambda _: "export_metadata"),
        (r"\b((?:create|make|build|start)\s+(?:[\w'-]+\s+){0,3}?albums?)\b", lambda _: "album_create"),
        (r"\b((?:add|put|move)\s+(?:them\s+|these\s+|it\s+)?to(?:\s+the|\s+my|\s+an?)?\s+album)\b", lambda _: "album_add"),
        (r"\b(re-?analy[sz]e|analy[sz]e|scan)\b", lambda _: "analyze"),
        (r"\b(delete|remove|trash|erase)\b", lambda _: "delete"),
    ],
    "color": [
        (r"\b(" + "|".join(re.escape(color) for color in COLORS) + r")\b",
         lambda value: "gray" if value == "grey" else value),
    ],
    "location": [
        (r"\b(?:in|at|near|around)\s+(?:the\s+)?((?!" + _BOUNDARY + r")[a-z][a-z'-]*"
         r"(?:\s+(?!" + _BOUNDARY + r")[a-z][a-z'-]*){0,2})", None),
    ],
    "person": [
        (r"\b(" + "|".join(PEOPLE_WORDS) + r")\b", None),
    ],
}

# Confidence per entity type (regex matches are confident, free text less so)
CONFIDENCE = {
    "quoted_keyword": 0.95,
    "album": 0.9,
    "file_type": 0.95,
    "camera": 0.85,
    "action_type": 0.9,
    "color": 0.8,
    "location": 0.7,
    "person": 0.7,
    "keyword": 0.6,
}


def normalize_query(text: Optional[str]) -> str:
    """
    Normalize query text: lowercase, trim, collapse whitespace

    Args:
        text: Raw query text

    Returns:
        Normalized text (empty string for None)
    """
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip().lower()


class EntityMatcher:
    """Base class for entity matchers; subclasses implement match()"""

    def __init__(self, name: str, entity_type: EntityType, priority: int):
        self.name = name
        self.entity_type = entity_type
        self.priority = priority

    def match(self, text: str) -> List[Entity]:
        raise NotImplementedError

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name!r}, priority={self.priority})"


class RegexEntityMatcher(EntityMatcher):
    """Runs a table of regex patterns; group 1 is the entity value"""

    def __init__(
        self,
        name: str,
        entity_type: EntityType,
        patterns: Sequence[Tuple[str, Optional[Callable[[str], str]]]],
        confidence: float,
        priority: int,
    ):
        super().__init__(name, entity_type, priority)
        self.confidence = confidence
        self.patterns = [(re.compile(pattern), normalizer) for pattern, normalizer in patterns]

    def match(self, text: str) -> List[Entity]:
        entities = []
        for pattern, normalizer in self.patterns:
            for found in pattern.finditer(text):
                group = 1 if found.re.groups else 0
                value = found.group(group)
                if value is None:
                    continue
                value = value.strip()
                if not value:
                    continue
                start = found.start(group)
                entities.append(Entity(
                    type=self.entity_type,
                    value=value,
                    normalized_value=normalizer(value) if normalizer else value,
                    confidence=self.confidence,
                    span=Span(start=start, end=start + len(value)),
                ))
        return entities


class VocabularyMatcher(EntityMatcher):
    """
    Table-based matcher over a registered vocabulary

    Exact phrase hits score 1.0; close misspellings are matched with rapidfuzz
    and scored below that.
    """

    def __init__(
        self,
        name: str,
        entity_type: EntityType,
        terms: Iterable[str],
        priority: int,
        threshold: float = 0.85,
        min_fuzzy_length: int = 4,
    ):
        super().__init__(name, entity_type, priority)
        self.threshold = threshold
        self.min_fuzzy_length = min_fuzzy_length
        self.terms: List[str] = []
        self.add_terms(terms)

    def add_terms(self, terms: Iterable[str]):
        for term in terms:
            term = normalize_query(term)
            if term and term not in self.terms:
                self.terms.append(term)

    def match(self, text: str) -> List[Entity]:
        if not self.terms:
            return []

        entities = []
        claimed: List[Span] = []

        # Exact phrase hits first, longest terms first
        for term in sorted(self.terms, key=len, reverse=True):
            for found in re.finditer(r"\b" + re.escape(term) + r"\b", text):
                span = Span(start=found.start(), end=found.end())
                if any(span.overlaps(other) for other in claimed):
                    continue
                claimed.append(span)
                entities.append(Entity(
                    type=self.entity_type,
                    value=found.group(0),
                    normalized_value=term,
                    confidence=1.0,
                    span=span,
                ))

        # Fuzzy hits over unclaimed word n-grams
        max_words = max(len(term.split()) for term in self.terms)
        words = list(re.finditer(r"[a-z0-9][a-z0-9'-]*", text))
        for size in range(max_words, 0, -1):
            for index in range(len(words) - size + 1):
                window = words[index:index + size]
                if window[0].group(0) in STOPWORDS or window[-1].group(0) in STOPWORDS:
                    continue
                span = Span(start=window[0].start(), end=window[-1].end())
                if any(span.overlaps(other) for other in claimed):
                    continue
                gram = text[span.start:span.end]
                if len(gram) < self.min_fuzzy_length:
                    continue
                best = process.extractOne(
                    gram,
                    self.terms,
                    scorer=fuzz.ratio,
                    score_cutoff=self.threshold * 100,
                )
                if best is None:
                    continue
                term, score, _ = best
                claimed.append(span)
                entities.append(Entity(
                    type=self.entity_type,
                    value=gram,
                    normalized_value=term,
                    confidence=round(score / 100.0 * 0.9, 4),
                    span=span,
                ))

        return entities


class KeywordFallbackMatcher(EntityMatcher):
    """Every remaining content word becomes a low-priority keyword"""

    def __init__(self, priority: int = PRIORITIES["keyword"], confidence: float = CONFIDENCE["keyword"]):
        super().__init__("keyword", EntityType.KEYWORD, priority)
        self.confidence = confidence

    def match(self, text: str) -> List[Entity]:
        entities = []
        for found in re.finditer(r"[a-z][a-z'-]*[a-z]", text):
            word = found.group(0)
            if word in STOPWORDS:
                continue
            entities.append(Entity(
                type=EntityType.KEYWORD,
                value=word,
                normalized_value=word,
                confidence=self.confidence,
                span=Span(start=found.start(), end=found.end()),
            ))
        return entities


# ============================================================================
# DATES
# ============================================================================

def _day_bounds(day: datetime) -> Tuple[datetime, datetime]:
    start = day.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start.replace(hour=23, minute=59, second=59)


def _month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, 1), datetime(year, month, last_day, 23, 59, 59)


def _year_bounds(year: int) -> Tuple[datetime, datetime]:
    return datetime(year, 1, 1), datetime(year, 12, 31, 23, 59, 59)


def _season_bounds(season: str, year: int) -> Tuple[datetime, datetime]:
    """Season of ``year``; winter starts in December of ``year``"""
    first, last = SEASONS[season]
    start = datetime(year, first, 1)
    end_year = year + 1 if last < first else year
    return start, _month_bounds(end_year, last)[1]


class DateResolver:
    """Turns date expressions into concrete {start, end} windows relative to now()"""

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        self.now = now or datetime.now

    def resolve_expression(self, expression: str) -> Optional[Tuple[datetime, datetime]]:
        """Resolve a single date expression (ISO, slash, month [year], year)"""
        expression = expression.strip()
        today = self.now()

        iso = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", expression)
        if iso:
            try:
                return _day_bounds(datetime(int(iso.group(1)), int(iso.group(2)), int(iso.group(3))))
            except ValueError:
                return None

        slash = re.fullmatch(r"(\d{1,2})/(\d{1,2})/(\d{2,4})", expression)
        if slash:
            month, day, year = (int(part) for part in slash.groups())
            if year < 100:
                year += 2000
            try:
                return _day_bounds(datetime(year, month, day))
            except ValueError:
                return None

        month_year = re.fullmatch(r"([a-z]+)(?:\s+(\d{4}))?", expression)
        if month_year and month_year.group(1) in MONTHS:
            month = MONTHS[month_year.group(1)]
            if month_year.group(2):
                year = int(month_year.group(2))
            else:
                # Most recent occurrence of that month
                year = today.year if month <= today.month else today.year - 1
            return _month_bounds(year, month)

        if re.fullmatch(r"(?:19|20)\d{2}", expression):
            return _year_bounds(int(expression))

        return None

    def resolve_relative(self, qualifier: str, unit: str) -> Tuple[datetime, datetime]:
        """Resolve 'last/this/past' + year/month/week/season"""
        today = self.now()

        if unit in SEASONS:
            if qualifier == "this":
                year = today.year - 1 if unit == "winter" and today.month <= 2 else today.year
                return _season_bounds(unit, year)
            # Most recent season that has already ended
            year = today.year
            while _season_bounds(unit, year)[1] >= today:
                year -= 1
            return _season_bounds(unit, year)

        if qualifier == "past":
            days = {"year": 365, "month": 30, "week": 7}[unit]
            return (today - timedelta(days=days)).replace(microsecond=0), today.replace(microsecond=0)

        if unit == "year":
            return _year_bounds(today.year - 1 if qualifier == "last" else today.year)

        if unit == "month":
            if qualifier == "last":
                year, month = (today.year, today.month - 1) if today.month > 1 else (today.year - 1, 12)
                return _month_bounds(year, month)
            return _month_bounds(today.year, today.month)

        # week: Monday to Sunday
        monday = _day_bounds(today - timedelta(days=today.weekday()))[0]
        if qualifier == "last":
            monday -= timedelta(days=7)
        return monday, (monday + timedelta(days=6)).replace(hour=23, minute=59, second=59)

    def resolve_span_of_days(self, count: int, unit: str) -> Tuple[datetime, datetime]:
        today = self.now().replace(microsecond=0)
        days = count * {"day": 1, "week": 7, "month": 30, "year": 365}[unit]
        return _day_bounds(today - timedelta(days=days))[0], today


def _window(start: datetime, end: datetime) -> Dict[str, str]:
    if start > end:
        start, end = end, start
    return {"start": start.isoformat(), "end": end.isoformat()}


class DateRangeMatcher(EntityMatcher):
    """Explicit ranges, relative periods, months and years"""

    RANGE_PATTERNS = [
        re.compile(r"\bbetween\s+(" + DATE_EXPRESSION + r")\s+and\s+(" + DATE_EXPRESSION + r")\b"),
        re.compile(r"\bfrom\s+(" + DATE_EXPRESSION + r")\s+(?:to|until|through|till)\s+(" + DATE_EXPRESSION + r")\b"),
    ]
    RELATIVE_PATTERN = re.compile(
        r"\b(last|this|past)\s+(year|month|week|summer|winter|spring|fall|autumn)\b"
    )
    ROLLING_PATTERN = re.compile(r"\b(?:last|past)\s+(\d+)\s+(day|week|month|year)s?\b")
    SEASON_YEAR_PATTERN = re.compile(r"\b(summer|winter|spring|fall|autumn)\s+((?:19|20)\d{2})\b")
    MONTH_PATTERN = re.compile(r"\b(" + "|".join(MONTHS) + r")(?:\s+((?:19|20)\d{2}))?\b")
    YEAR_PATTERN = re.compile(r"(?<![\d/-])\b((?:19|20)\d{2})\b(?![\d/-])")

    def __init__(self, resolver: DateResolver, priority: int = PRIORITIES["date_range"]):
        super().__init__("date_range", EntityType.DATE_RANGE, priority)
        self.resolver = resolver

    def _entity(self, found, start: datetime, end: datetime, confidence: float) -> Entity:
        return Entity(
            type=EntityType.DATE_RANGE,
            value=found.group(0),
            normalized_value=_window(start, end),
            confidence=confidence,
            span=Span(start=found.start(), end=found.end()),
        )

    def match(self, text: str) -> List[Entity]:
        entities = []

        for pattern in self.RANGE_PATTERNS:
            for found in pattern.finditer(text):
                first = self.resolver.resolve_expression(found.group(1))
                second = self.resolver.resolve_expression(found.group(2))
                if first and second:
                    entities.append(self._entity(found, first[0], second[1], 1.0))

        for found in self.RELATIVE_PATTERN.finditer(text):
            start, end = self.resolver.resolve_relative(found.group(1), found.group(2))
            entities.append(self._entity(found, start, end, 0.9))

        for found in self.ROLLING_PATTERN.finditer(text):
            start, end = self.resolver.resolve_span_of_days(int(found.group(1)), found.group(2))
            entities.append(self._entity(found, start, end, 0.9))

        for found in self.SEASON_YEAR_PATTERN.finditer(text):
            start, end = _season_bounds(found.group(1), int(found.group(2)))
            entities.append(self._entity(found, start, end, 1.0))

        for found in self.MONTH_PATTERN.finditer(text):
            if found.group(1) == "may" and not found.group(2) and not self._has_date_preposition(text, found.start()):
                continue
            start, end = self.resolver.resolve_expression(found.group(0))
            entities.append(self._entity(found, start, end, 1.0 if found.group(2) else 0.9))

        for found in self.YEAR_PATTERN.finditer(text):
            start, end = _year_bounds(int(found.group(1)))
            entities.append(self._entity(found, start, end, 1.0))

        return entities

    @staticmethod
    def _has_date_preposition(text: str, position: int) -> bool:
        preceding = text[:position].split()
        return bool(preceding) and preceding[-1] in {"in", "from", "during", "since", "of", "until"}


class DateMatcher(EntityMatcher):
    """Single days: today, yesterday, ISO and slash dates"""

    DAY_PATTERN = re.compile(r"(?<![\d/-])(\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{2,4})(?![\d/-])")
    RELATIVE_DAY_PATTERN = re.compile(r"\b(today|yesterday)\b")

    def __init__(self, resolver: DateResolver, priority: int = PRIORITIES["date"]):
        super().__init__("date", EntityType.DATE, priority)
        self.resolver = resolver

    def match(self, text: str) -> List[Entity]:
        entities = []

        for found in self.DAY_PATTERN.finditer(text):
            bounds = self.resolver.resolve_expression(found.group(1))
            if bounds is None:
                continue
            entities.append(Entity(
                type=EntityType.DATE,
                value=found.group(1),
                normalized_value=_window(*bounds),
                confidence=1.0,
                span=Span(start=found.start(1), end=found.end(1)),
            ))

        for found in self.RELATIVE_DAY_PATTERN.finditer(text):
            day = self.resolver.now()
            if found.group(1) == "yesterday":
                day -= timedelta(days=1)
            entities.append(Entity(
                type=EntityType.DATE,
                value=found.group(1),
                normalized_value=_window(*_day_bounds(day)),
                confidence=1.0,
                span=Span(start=found.start(1), end=found.end(1)),
            ))

        return entities


# ============================================================================
# EXTRACTOR
# ============================================================================

ENTITY_TYPE_FOR_PATTERN = {
    "quoted_keyword": EntityType.KEYWORD,
    "album": EntityType.ALBUM,
    "file_type": EntityType.FILE_TYPE,
    "camera": EntityType.CAMERA,
    "action_type": EntityType.ACTION_TYPE,
    "color": EntityType.COLOR,
    "location": EntityType.LOCATION,
    "person": EntityType.PERSON,
}

VOCABULARY_PRIORITIES = {
    EntityType.LOCATION: PRIORITIES["location_vocabulary"],
    EntityType.PERSON: PRIORITIES["person_vocabulary"],
    EntityType.KEYWORD: PRIORITIES["keyword_vocabulary"],
    EntityType.CAMERA: PRIORITIES["camera"] + 1,
}


def default_matchers(now: Optional[Callable[[], datetime]] = None) -> List[EntityMatcher]:
    """Build the standard matcher set"""
    resolver = DateResolver(now)
    matchers: List[EntityMatcher] = [
        DateRangeMatcher(resolver),
        DateMatcher(resolver),
    ]
    for name, entity_type in ENTITY_TYPE_FOR_PATTERN.items():
        matchers.append(RegexEntityMatcher(
            name=name,
            entity_type=entity_type,
            patterns=PATTERNS[name],
            confidence=CONFIDENCE[name],
            priority=PRIORITIES[name],
        ))
    matchers.append(KeywordFallbackMatcher())
    return matchers


class EntityExtractor:
    """
    Runs an ordered, prioritized list of matchers and resolves overlapping spans

    When two candidate spans overlap, the one from the higher-priority matcher
    wins and the other is dropped entirely.
    """

    def __init__(
        self,
        matchers: Optional[List[EntityMatcher]] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.matchers: List[EntityMatcher] = list(matchers) if matchers is not None else default_matchers(now)

    def register(self, matcher: EntityMatcher):
        self.matchers.append(matcher)
        logger.debug(f"Registered entity matcher {matcher!r}")

    def register_vocabulary(
        self,
        entity_type: EntityType,
        terms: Iterable[str],
        priority: Optional[int] = None,
        threshold: float = 0.85,
    ) -> VocabularyMatcher:
        """
        Add terms to the vocabulary matcher for an entity type, creating it on first use

        Args:
            entity_type: Type the vocabulary produces
            terms: Known values (locations, people, cameras, keywords)
            priority: Override the default priority for this type
            threshold: Minimum fuzzy similarity (0-1)

        Returns:
            The vocabulary matcher holding the terms
        """
        name = f"{entity_type.value}_vocabulary"
        for matcher in self.matchers:
            if isinstance(matcher, VocabularyMatcher) and matcher.name == name:
                matcher.add_terms(terms)
                return matcher

        matcher = VocabularyMatcher(
            name=name,
            entity_type=entity_type,
            terms=terms,
            priority=priority if priority is not None else VOCABULARY_PRIORITIES.get(entity_type, 30),
            threshold=threshold,
        )
        self.register(matcher)
        return matcher

    def extract(self, text: str) -> List[Entity]:
        """
        Extract entities from already-normalized text

        Args:
            text: Normalized query text

        Returns:
            Non-overlapping entities ordered by span start
        """
        if not text:
            return []

        candidates = []
        for order, matcher in enumerate(self.matchers):
            for entity in matcher.match(text):
                candidates.append((matcher.priority, order, entity))

        entities = resolve_overlaps(candidates)
        logger.debug(f"Extracted {len(entities)} entities from {len(candidates)} candidates: "
                     f"{[(e.type.value, e.value) for e in entities]}")
        return entities


def resolve_overlaps(candidates: List[Tuple[int, int, Entity]]) -> List[Entity]:
    """
    Greedy span resolution

    Candidates are taken by priority, then confidence, then span length,
    then position, then matcher order. A candidate overlapping an accepted
    span is discarded.
    """
    ranked = sorted(
        candidates,
        key=lambda item: (
            -item[0],
            -item[2].confidence,
            -(item[2].span.end - item[2].span.start),
            item[2].span.start,
            item[1],
        ),
    )

    accepted: List[Entity] = []
    for _, _, entity in ranked:
        if any(entity.span.overlaps(other.span) for other in accepted):
            continue
        accepted.append(entity)

    return sorted(accepted, key=lambda entity: entity.span.start)


def extract_entities(query: str, now: Optional[Callable[[], datetime]] = None) -> List[Entity]:
    """
    Extract all entities from query text with the default matcher set

    Args:
        query: Natural language query
        now: Reference clock for relative dates

    Returns:
        List of entities over the normalized query
    """
    return EntityExtractor(now=now).extract(normalize_query(query))
