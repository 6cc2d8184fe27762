"""
Search / Ranking Engine
Fuzzy multi-field matching over a PhotoIndex snapshot with weighted relevance scoring

The engine keeps no per-call state: every search reads one snapshot and
returns a fresh SearchResult.
"""
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from rapidfuzz import fuzz, process

from photo_discovery.config import Settings, settings as default_settings
from photo_discovery.errors import NoResultsError, SearchTimeoutError
from photo_discovery.models.filters import CombinationMode, DateRange, FilterCategory, FilterState, GeoFilter
from photo_discovery.models.query import SemanticQuery
from photo_discovery.models.search import (
    PerformanceMetrics,
    RankedPhoto,
    SearchMetadata,
    SearchOptions,
    SearchResult,
)
from photo_discovery.services.photo_index import IndexedPhoto, PhotoIndex, normalize_file_type, to_naive_utc
import logging

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

# Filter attribute -> index fields it is matched against
MATCH_FIELDS = {
    "keywords": ("keywords", "objects", "scenes"),
    "objects": ("objects",),
    "scenes": ("scenes",),
    "people": ("people",),
    "location": ("location",),
    "camera": ("camera",),
}


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


@dataclass
class FieldMatch:
    score: float
    highlights: List[str] = field(default_factory=list)


@dataclass
class PhotoMatch:
    entry: IndexedPhoto
    score: float
    matched_categories: List[FilterCategory]
    highlights: Dict[str, List[str]]


@dataclass
class Criterion:
    """One populated filter field prepared for matching"""
    category: FilterCategory
    attribute: str
    index_field: str
    value: Any
    weight: float


class SearchEngine:
    """
    Multi-field fuzzy search over an index snapshot

    Args:
        settings: Thresholds, weights and the performance budget
        clock: Monotonic clock in seconds; injectable for timeout tests
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Callable[[], float] = time.perf_counter):
        self.settings = settings or default_settings
        self.clock = clock

    def search(
        self,
        criteria: Union[FilterState, SemanticQuery, None],
        index: Optional[PhotoIndex],
        combination_mode: Optional[CombinationMode] = None,
        options: Optional[SearchOptions] = None,
    ) -> SearchResult:
        """
        Rank photos in ``index`` against ``criteria``

        Args:
            criteria: Structured filters or a parsed query
            index: Snapshot to search; None means no collection yet
            combination_mode: Overrides the mode carried by a parsed query
            options: Paging and result limits

        Returns:
            SearchResult ordered by relevance (stable on ties)

        Raises:
            SearchTimeoutError: matching exceeded the performance budget
            NoResultsError: nothing matched and options.require_results is set
        """
        started = self.clock()
        options = options or SearchOptions()

        if isinstance(criteria, SemanticQuery):
            filters = criteria.filters
            mode = combination_mode or criteria.combination_mode
            query_text = criteria.original_query
        else:
            filters = criteria or FilterState()
            mode = combination_mode or CombinationMode.AND
            query_text = None

        if index is None or index.photo_count == 0:
            logger.info("Search against empty collection; returning no results")
            result = SearchResult.empty(query=query_text, filters=filters, combination_mode=mode)
            return self._check_required(result, options)

        # Index lookup: resolve populated criteria against indexed fields
        lookup_started = self.clock()
        criteria_list = self._prepare_criteria(filters)
        if not criteria_list:
            logger.info("No populated criteria; returning no results")
            result = SearchResult.empty(query=query_text, filters=filters, combination_mode=mode)
            return self._check_required(result, options)

        active_categories = []
        for criterion in criteria_list:
            if criterion.category not in active_categories:
                active_categories.append(criterion.category)
        entries = index.entries
        lookup_ms = (self.clock() - lookup_started) * 1000

        # Fuzzy matching
        match_started = self.clock()
        matches: List[PhotoMatch] = []
        budget = self.settings.performance_budget_seconds
        for entry in entries:
            elapsed = self.clock() - started
            if elapsed > budget:
                logger.warning(f"Search aborted after {elapsed:.3f}s (budget {budget:.3f}s)")
                raise SearchTimeoutError(elapsed, budget)

            match = self._match_photo(entry, criteria_list, active_categories, mode)
            if match is not None:
                matches.append(match)
        match_ms = (self.clock() - match_started) * 1000

        # Sorting (stable: ties keep index order)
        sort_started = self.clock()
        matches.sort(key=lambda match: -match.score)
        max_results = options.max_results or self.settings.max_results
        page = matches[options.offset:options.offset + max_results]
        sort_ms = (self.clock() - sort_started) * 1000

        matched_criteria: List[str] = []
        for match in matches:
            for category in match.matched_categories:
                if category.value not in matched_criteria:
                    matched_criteria.append(category.value)

        result = SearchResult(
            photos=[self._ranked(match) for match in page],
            total_count=len(matches),
            search_time=round((self.clock() - started) * 1000, 3),
            query=query_text,
            search_metadata=SearchMetadata(
                applied_filters=filters,
                combination_mode=mode,
                matched_criteria=matched_criteria,
                performance_metrics=PerformanceMetrics(
                    index_lookup_time=round(lookup_ms, 3),
                    fuzzy_match_time=round(match_ms, 3),
                    sorting_time=round(sort_ms, 3),
                ),
            ),
        )

        logger.info(
            f"Search matched {result.total_count} of {index.photo_count} photos "
            f"(mode={mode.value}, returned={len(result.photos)}, {result.search_time:.1f}ms)"
        )
        return self._check_required(result, options)

    @staticmethod
    def _check_required(result: SearchResult, options: SearchOptions) -> SearchResult:
        if options.require_results and result.total_count == 0:
            raise NoResultsError(
                f"No photos matched '{result.query}'" if result.query else "No photos matched the filters"
            )
        return result

    def _prepare_criteria(self, filters: FilterState) -> List[Criterion]:
        weights = self.settings.field_weights
        return [
            Criterion(
                category=category,
                attribute=attribute,
                index_field=index_field,
                value=value,
                weight=weights.get(index_field, 0.5),
            )
            for category, attribute, index_field, value in filters.populated_fields()
        ]

    def _match_photo(
        self,
        entry: IndexedPhoto,
        criteria: Sequence[Criterion],
        active_categories: Sequence[FilterCategory],
        mode: CombinationMode,
    ) -> Optional[PhotoMatch]:
        weighted = 0.0
        total_weight = 0.0
        matched_categories: List[FilterCategory] = []
        highlights: Dict[str, List[str]] = {}

        for criterion in criteria:
            result = self._score_field(entry, criterion)
            total_weight += criterion.weight
            if result.score <= 0.0:
                continue
            weighted += result.score * criterion.weight
            if criterion.category not in matched_categories:
                matched_categories.append(criterion.category)
            for value in result.highlights:
                values = highlights.setdefault(criterion.index_field, [])
                if value not in values:
                    values.append(value)

        if not matched_categories:
            return None
        if mode == CombinationMode.AND and len(matched_categories) < len(active_categories):
            return None

        confidence_weight = self.settings.confidence_weight
        score = (weighted / total_weight) * (1.0 - confidence_weight + confidence_weight * entry.confidence)
        score = round(min(max(score, 0.0), 1.0), 4)
        if score <= 0.0:
            return None

        ordered = [category for category in active_categories if category in matched_categories]
        return PhotoMatch(entry=entry, score=score, matched_categories=ordered, highlights=highlights)

    def _score_field(self, entry: IndexedPhoto, criterion: Criterion) -> FieldMatch:
        attribute = criterion.attribute

        if attribute == "date_range":
            return self._score_date(entry, criterion.value)
        if attribute == "coordinates":
            return self._score_coordinates(entry, criterion.value)
        if attribute == "file_type":
            wanted = {normalize_file_type(value) for value in criterion.value}
            hits = [value for value in entry.fields["file_type"] if value in wanted]
            return FieldMatch(1.0 if hits else 0.0, hits)

        terms = criterion.value if isinstance(criterion.value, list) else [criterion.value]
        field_key = "people" if attribute == "named_people" else attribute
        values: List[str] = []
        for name in MATCH_FIELDS[field_key]:
            values.extend(entry.fields[name])
        return self.score_terms(terms, values)

    def score_terms(self, terms: Sequence[str], values: Sequence[str]) -> FieldMatch:
        """
        Mean per-term similarity of ``terms`` against indexed ``values``

        Exact value matches score 1.0; otherwise the best fuzzy ratio against
        values and their individual words, if it clears the threshold.
        """
        if not terms or not values:
            return FieldMatch(0.0)

        candidates = list(values)
        for value in values:
            for word in value.split():
                if word not in candidates:
                    candidates.append(word)

        cutoff = self.settings.fuzzy_match_threshold * 100
        total = 0.0
        highlights: List[str] = []
        for term in terms:
            term = term.strip().lower()
            if not term:
                continue
            if term in values:
                total += 1.0
                highlights.append(term)
                continue
            best = process.extractOne(term, candidates, scorer=fuzz.ratio, score_cutoff=cutoff)
            if best is None:
                continue
            candidate, score, _ = best
            total += score / 100.0
            highlights.append(self._owning_value(candidate, values))

        return FieldMatch(total / len(terms), highlights)

    @staticmethod
    def _owning_value(candidate: str, values: Sequence[str]) -> str:
        if candidate in values:
            return candidate
        for value in values:
            if candidate in value.split():
                return value
        return candidate

    @staticmethod
    def _score_date(entry: IndexedPhoto, date_range: DateRange) -> FieldMatch:
        if entry.taken_at is None:
            return FieldMatch(0.0)
        start = to_naive_utc(date_range.start)
        end = to_naive_utc(date_range.end)
        if start is not None and entry.taken_at < start:
            return FieldMatch(0.0)
        if end is not None and entry.taken_at > end:
            return FieldMatch(0.0)
        return FieldMatch(1.0, [entry.taken_at.isoformat()])

    @staticmethod
    def _score_coordinates(entry: IndexedPhoto, geo: GeoFilter) -> FieldMatch:
        if entry.coordinates is None:
            return FieldMatch(0.0)
        distance = haversine_km(geo.lat, geo.lng, entry.coordinates.lat, entry.coordinates.lng)
        if distance > geo.radius_km:
            return FieldMatch(0.0)
        # Centre scores 1.0, the edge of the radius 0.5
        return FieldMatch(1.0 - 0.5 * (distance / geo.radius_km), [f"{distance:.2f}km"])

    @staticmethod
    def _ranked(match: PhotoMatch) -> RankedPhoto:
        photo = match.entry.photo
        return RankedPhoto(
            id=photo.id,
            filename=photo.filename,
            metadata=photo.metadata,
            relevance_score=match.score,
            matched_criteria=[category.value for category in match.matched_categories],
            highlighted_fields=match.highlights,
        )
