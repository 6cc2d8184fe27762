"""
Query Parser
Turns natural-language photo queries into a SemanticQuery:
normalization -> entity extraction -> intent detection -> filter parameters
"""
import re
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TYPE_CHECKING

from photo_discovery.config import Settings, settings as default_settings
from photo_discovery.errors import InvalidQueryError
from photo_discovery.models.filters import CombinationMode, DateRange, FilterState
from photo_discovery.models.query import Entity, EntityType, IntentType, SemanticQuery
from photo_discovery.services.entity_extraction import EntityExtractor, EntityMatcher, normalize_query
from photo_discovery.services.intent_detection import IntentDetector, IntentRule
import logging

if TYPE_CHECKING:
    from photo_discovery.services.photo_index import PhotoIndex

logger = logging.getLogger(__name__)


def build_filters(entities: Sequence[Entity]) -> FilterState:
    """
    Map extracted entities onto filter categories

    Args:
        entities: Entities in span order

    Returns:
        FilterState populated from the entities
    """
    keywords: List[str] = []
    people: List[str] = []
    file_types: List[str] = []
    location = None
    camera = None
    date_range = None

    for entity in entities:
        value = entity.normalized_value if isinstance(entity.normalized_value, str) else entity.value

        if entity.type in (EntityType.KEYWORD, EntityType.COLOR):
            if value not in keywords:
                keywords.append(value)
        elif entity.type == EntityType.LOCATION and location is None:
            location = value
        elif entity.type == EntityType.PERSON:
            if value not in people:
                people.append(value)
        elif entity.type == EntityType.CAMERA and camera is None:
            camera = value
        elif entity.type == EntityType.FILE_TYPE:
            if value not in file_types:
                file_types.append(value)
        elif entity.type in (EntityType.DATE, EntityType.DATE_RANGE) and date_range is None:
            if isinstance(entity.normalized_value, dict):
                date_range = DateRange(
                    start=datetime.fromisoformat(entity.normalized_value["start"]),
                    end=datetime.fromisoformat(entity.normalized_value["end"]),
                )

    return FilterState.model_validate({
        "semantic": {"keywords": keywords},
        "spatial": {"location": location},
        "temporal": {"date_range": date_range},
        "people": {"named_people": people},
        "technical": {"camera": camera, "file_type": file_types},
    })


def detect_combination_mode(normalized_query: str) -> CombinationMode:
    return CombinationMode.OR if re.search(r"\bor\b", normalized_query) else CombinationMode.AND


class QueryParser:
    """
    Deterministic natural-language query parser

    Given the same text and the same registered matchers, vocabularies and
    intent rules, parse() always returns the same SemanticQuery.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        extractor: Optional[EntityExtractor] = None,
        detector: Optional[IntentDetector] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or default_settings
        self.extractor = extractor or EntityExtractor(now=now)
        self.detector = detector or IntentDetector()

    @classmethod
    def from_index(cls, index: "PhotoIndex", **kwargs) -> "QueryParser":
        """Build a parser whose vocabularies are seeded from an index snapshot"""
        parser = cls(**kwargs)
        vocabulary = index.vocabulary()
        parser.register_vocabulary(EntityType.LOCATION, vocabulary["location"])
        parser.register_vocabulary(EntityType.PERSON, vocabulary["people"])
        parser.register_vocabulary(EntityType.CAMERA, vocabulary["camera"])
        parser.register_vocabulary(
            EntityType.KEYWORD,
            vocabulary["keywords"] + vocabulary["objects"] + vocabulary["scenes"],
        )
        return parser

    def register_vocabulary(self, entity_type: EntityType, terms: Iterable[str], **kwargs):
        terms = list(terms)
        if terms:
            self.extractor.register_vocabulary(entity_type, terms, **kwargs)

    def register_matcher(self, matcher: EntityMatcher):
        self.extractor.register(matcher)

    def register_intent(self, rule: IntentRule):
        self.detector.register(rule)

    def parse(self, text: Optional[str]) -> SemanticQuery:
        """
        Parse a natural-language query

        Args:
            text: Raw query text

        Returns:
            SemanticQuery with intent, entities and filter parameters

        Raises:
            InvalidQueryError: text exceeds the configured maximum length
        """
        original = text or ""
        if len(original) > self.settings.max_query_length:
            raise InvalidQueryError(
                f"Query is {len(original)} characters; the limit is {self.settings.max_query_length}",
                {"length": len(original), "max_length": self.settings.max_query_length},
            )

        normalized = normalize_query(original)
        if not normalized:
            return SemanticQuery(
                intent=IntentType.UNKNOWN,
                confidence=0.0,
                original_query=original,
                normalized_query="",
                parameters={"filters": FilterState(), "combination_mode": CombinationMode.AND},
            )

        entities = self.extractor.extract(normalized)
        candidates = self.detector.rank(normalized, entities)

        if candidates:
            best = candidates[0]
            intent, confidence = best.intent, best.confidence
        else:
            intent, confidence = IntentType.UNKNOWN, 0.0

        parameters: Dict[str, object] = {
            "filters": build_filters(entities),
            "combination_mode": detect_combination_mode(normalized),
        }
        for entity in entities:
            if entity.type == EntityType.ALBUM and "album_name" not in parameters:
                parameters["album_name"] = entity.value
            elif entity.type == EntityType.ACTION_TYPE and "action_type" not in parameters:
                parameters["action_type"] = entity.normalized_value

        query = SemanticQuery(
            intent=intent,
            entities=entities,
            confidence=confidence,
            parameters=parameters,
            original_query=original,
            normalized_query=normalized,
        )

        if confidence < self.settings.intent_confidence_threshold:
            query.needs_clarification = True
            rule = self.detector.rule_for(intent)
            query.clarification_questions = list(rule.clarification) if rule else [
                "Could you describe the photos you are looking for?"
            ]
            query.suggested_actions = [
                self._suggestion_for(candidate.intent) for candidate in candidates[1:3]
            ]

        logger.debug(
            f"Parsed query '{normalized}': intent={intent.value} confidence={confidence:.2f} "
            f"entities={len(entities)} clarification={query.needs_clarification}"
        )
        return query

    def _suggestion_for(self, intent: IntentType) -> str:
        rule = self.detector.rule_for(intent)
        return rule.suggestion if rule and rule.suggestion else intent.value
