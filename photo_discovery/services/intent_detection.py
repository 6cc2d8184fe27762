"""
Intent Detection Module
Maps photo queries to intents based on extracted entities and keywords
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from photo_discovery.models.query import Entity, EntityType, IntentCandidate, IntentType
import logging

logger = logging.getLogger(__name__)


@dataclass
class IntentRule:
    """One intent pattern: required/optional entity types plus trigger keywords"""
    intent: IntentType
    confidence_base: float
    priority: int = 0
    required: List[EntityType] = field(default_factory=list)
    optional: List[EntityType] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    clarification: List[str] = field(default_factory=list)
    suggestion: str = ""


# Intent detection rules (registration order is the final tie-breaker)
INTENT_RULES = [
    IntentRule(
        intent=IntentType.BULK_OPERATION,
        confidence_base=0.90,
        priority=40,
        required=[EntityType.ACTION_TYPE],
        optional=[EntityType.ALBUM, EntityType.FILE_TYPE],
        keywords=["all", "selected", "these", "every", "bulk", "batch"],
        clarification=[
            "Which photos should this apply to?",
            "Which operation do you want to run (download, tag, album, export, analyze, delete)?",
        ],
        suggestion="Run a bulk operation on the selected photos",
    ),
    IntentRule(
        intent=IntentType.CREATE,
        confidence_base=0.85,
        priority=30,
        optional=[EntityType.ALBUM],
        keywords=["create", "make", "new", "album", "build", "generate", "collection"],
        clarification=[
            "What should the new album be called?",
            "Which photos should go into it?",
        ],
        suggestion="Create an album from these photos",
    ),
    IntentRule(
        intent=IntentType.FILTER,
        confidence_base=0.80,
        priority=20,
        optional=[
            EntityType.DATE,
            EntityType.DATE_RANGE,
            EntityType.LOCATION,
            EntityType.CAMERA,
            EntityType.FILE_TYPE,
            EntityType.PERSON,
            EntityType.COLOR,
        ],
        keywords=["filter", "only", "taken", "shot", "captured", "limit to", "narrow", "just"],
        clarification=[
            "Which date range, place or camera should the photos be limited to?",
        ],
        suggestion="Filter photos by date, place or camera",
    ),
    IntentRule(
        intent=IntentType.SEARCH,
        confidence_base=0.75,
        priority=10,
        optional=[
            EntityType.KEYWORD,
            EntityType.LOCATION,
            EntityType.DATE_RANGE,
            EntityType.PERSON,
            EntityType.COLOR,
        ],
        keywords=["show", "find", "search", "look for", "photos", "pictures", "images", "get", "display"],
        clarification=[
            "What should the photos show?",
            "Do you remember where or when they were taken?",
        ],
        suggestion="Search photos by what they show",
    ),
]


def contains_keyword(query: str, keyword: str) -> bool:
    return re.search(r"\b" + re.escape(keyword) + r"\b", query) is not None


def calculate_intent_confidence(query: str, entities: Sequence[Entity], rule: IntentRule) -> float:
    """
    Calculate confidence score for a specific intent rule

    Args:
        query: Query text (normalized)
        entities: Extracted entities
        rule: Intent rule definition

    Returns:
        Confidence score (0.0 to 1.0)
    """
    present = {entity.type for entity in entities}

    # Check required entities
    if not all(entity_type in present for entity_type in rule.required):
        return 0.0

    # Start with base confidence
    confidence = rule.confidence_base

    # Bonus for optional entities present
    optional_present = sum(1 for entity_type in rule.optional if entity_type in present)
    if rule.optional:
        optional_bonus = (optional_present / len(rule.optional)) * 0.10
        confidence = min(confidence + optional_bonus, 1.0)

    # Keyword matching
    keywords_found = sum(1 for keyword in rule.keywords if contains_keyword(query, keyword))
    if rule.keywords:
        keyword_ratio = keywords_found / len(rule.keywords)

        # Strong keyword match boosts confidence
        if keyword_ratio > 0.3:
            confidence = min(confidence + (keyword_ratio * 0.15), 1.0)
        elif keyword_ratio == 0:
            # Nothing supports this rule beyond its base
            confidence *= 0.7 if optional_present or rule.required else 0.5

    return round(confidence, 4)


def build_reasoning(query: str, entities: Sequence[Entity], rule: IntentRule) -> str:
    """
    Build human-readable reasoning for intent selection

    Args:
        query: Query text
        entities: Extracted entities
        rule: Matched rule

    Returns:
        Reasoning string
    """
    reasons = []
    present = {entity.type for entity in entities}

    if rule.required:
        reasons.append(f"Required entities detected: {', '.join(t.value for t in rule.required)}")

    optional_present = [t.value for t in rule.optional if t in present]
    if optional_present:
        reasons.append(f"Supporting entities: {', '.join(optional_present)}")

    keywords_found = [kw for kw in rule.keywords if contains_keyword(query, kw)]
    if keywords_found:
        reasons.append(f"Keywords matched: {', '.join(keywords_found[:3])}")

    if not reasons:
        return "Pattern match"

    return "; ".join(reasons)


class IntentDetector:
    """Scores every registered rule and ranks the candidates"""

    def __init__(self, rules: Optional[List[IntentRule]] = None):
        self.rules: List[IntentRule] = list(rules) if rules is not None else list(INTENT_RULES)

    def register(self, rule: IntentRule):
        self.rules.append(rule)

    def rule_for(self, intent: IntentType) -> Optional[IntentRule]:
        for rule in self.rules:
            if rule.intent == intent:
                return rule
        return None

    def rank(self, query: str, entities: Sequence[Entity]) -> List[IntentCandidate]:
        """
        Rank intents by confidence, then rule priority, then registration order

        Rules whose required entities are missing are left out.
        """
        scored = []
        for order, rule in enumerate(self.rules):
            confidence = calculate_intent_confidence(query, entities, rule)
            if confidence <= 0.0:
                continue
            scored.append((confidence, rule.priority, order, rule))

        scored.sort(key=lambda item: (-item[0], -item[1], item[2]))

        return [
            IntentCandidate(
                intent=rule.intent,
                confidence=confidence,
                reasoning=build_reasoning(query, entities, rule),
            )
            for confidence, _, _, rule in scored
        ]

    def detect(self, query: str, entities: Sequence[Entity]) -> IntentCandidate:
        """
        Detect user intent from query and extracted entities

        Args:
            query: Normalized query text
            entities: Extracted entities

        Returns:
            Winning candidate; UNKNOWN with confidence 0 when nothing applies
        """
        candidates = self.rank(query, entities)
        if not candidates:
            return IntentCandidate(intent=IntentType.UNKNOWN, confidence=0.0, reasoning="No intent rule applies")

        best = candidates[0]
        logger.info(f"Detected intent: {best.intent.value} (confidence: {best.confidence:.2f})")
        return best


def detect_intent(query: str, entities: Sequence[Entity]) -> IntentCandidate:
    """Detect intent with the default rule set"""
    return IntentDetector().detect(query, entities)
