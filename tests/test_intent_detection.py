"""
Tests for intent detection module
"""
import pytest

from photo_discovery.models.query import EntityType, IntentType
from photo_discovery.services.entity_extraction import extract_entities
from photo_discovery.services.intent_detection import (
    INTENT_RULES,
    IntentDetector,
    IntentRule,
    calculate_intent_confidence,
    detect_intent,
)


def detect(query):
    return detect_intent(query, extract_entities(query))


def test_detect_search_intent():
    """Test plain descriptive queries are searches"""
    result = detect("sunset beach photos")

    assert result.intent == IntentType.SEARCH
    assert result.confidence >= 0.5


def test_detect_bulk_operation_intent():
    """Test action words with selection keywords are bulk operations"""
    result = detect("download all selected photos as zip")

    assert result.intent == IntentType.BULK_OPERATION
    assert result.confidence == pytest.approx(0.95)


def test_detect_create_intent():
    """Test album creation outranks the bulk reading of the same sentence"""
    result = detect("create album called hawaii trip")

    assert result.intent == IntentType.CREATE


def test_detect_filter_intent():
    """Test restrictive wording with technical entities is a filter"""
    result = detect("only raw photos taken in 2023")

    assert result.intent == IntentType.FILTER


def test_required_entity_missing_scores_zero():
    """Test a rule is excluded when its required entity is absent"""
    bulk_rule = next(rule for rule in INTENT_RULES if rule.intent == IntentType.BULK_OPERATION)

    assert calculate_intent_confidence("all selected photos", [], bulk_rule) == 0.0


def test_rank_orders_by_confidence_then_priority():
    """Test equal confidence falls back to rule priority"""
    detector = IntentDetector([
        IntentRule(intent=IntentType.SEARCH, confidence_base=0.6, priority=1),
        IntentRule(intent=IntentType.FILTER, confidence_base=0.6, priority=5),
    ])

    ranked = detector.rank("anything", [])

    assert [candidate.intent for candidate in ranked] == [IntentType.FILTER, IntentType.SEARCH]


def test_detect_unknown_when_no_rule_applies():
    """Test UNKNOWN with zero confidence when every rule is excluded"""
    detector = IntentDetector([
        IntentRule(intent=IntentType.BULK_OPERATION, confidence_base=0.9, required=[EntityType.ACTION_TYPE]),
    ])

    result = detector.detect("sunset", [])

    assert result.intent == IntentType.UNKNOWN
    assert result.confidence == 0.0


def test_reasoning_mentions_matched_keywords():
    """Test reasoning explains which keywords supported the intent"""
    query = "download all selected photos"
    ranked = IntentDetector().rank(query, extract_entities(query))

    assert "Keywords matched" in ranked[0].reasoning
    assert "action_type" in ranked[0].reasoning


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
