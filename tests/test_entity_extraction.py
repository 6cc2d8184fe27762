"""
Tests for entity extraction module
"""
import pytest

from photo_discovery.models.query import Entity, EntityType, Span
from photo_discovery.services.entity_extraction import (
    EntityExtractor,
    RegexEntityMatcher,
    extract_entities,
    normalize_query,
    resolve_overlaps,
)


def pairs(entities):
    return [(entity.type, entity.normalized_value) for entity in entities]


def test_normalize_query():
    """Test lowercasing, trimming and whitespace collapsing"""
    assert normalize_query("  Sunset   BEACH\tphotos ") == "sunset beach photos"
    assert normalize_query(None) == ""


def test_extract_keywords():
    """Test content words become keywords and stopwords are dropped"""
    entities = extract_entities("sunset beach photos")

    assert pairs(entities) == [(EntityType.KEYWORD, "sunset"), (EntityType.KEYWORD, "beach")]
    assert entities[0].span == Span(start=0, end=6)


def test_extract_relative_season(now):
    """Test 'last summer' resolves to the most recent completed summer"""
    entities = extract_entities("photos from last summer", now=now)

    assert len(entities) == 1
    assert entities[0].type == EntityType.DATE_RANGE
    assert entities[0].normalized_value == {"start": "2024-06-01T00:00:00", "end": "2024-08-31T23:59:59"}


def test_extract_explicit_range(now):
    """Test 'between X and Y' wins over the single dates inside it"""
    entities = extract_entities("between 2023-01-01 and 2023-03-31", now=now)

    assert pairs(entities) == [
        (EntityType.DATE_RANGE, {"start": "2023-01-01T00:00:00", "end": "2023-03-31T23:59:59"}),
    ]


def test_extract_month_and_year(now):
    """Test month + year becomes one range"""
    entities = extract_entities("photos from may 2023", now=now)

    assert pairs(entities) == [
        (EntityType.DATE_RANGE, {"start": "2023-05-01T00:00:00", "end": "2023-05-31T23:59:59"}),
    ]


def test_may_is_not_always_a_month(now):
    """Test the modal verb 'may' is not read as a month"""
    entities = extract_entities("photos i may like", now=now)

    assert EntityType.DATE_RANGE not in [entity.type for entity in entities]


def test_extract_yesterday(now):
    """Test yesterday is a single-day window"""
    entities = extract_entities("yesterday", now=now)

    assert pairs(entities) == [
        (EntityType.DATE, {"start": "2024-10-14T00:00:00", "end": "2024-10-14T23:59:59"}),
    ]


def test_extract_file_type_and_year(now):
    """Test file types are normalized and bare years become ranges"""
    entities = extract_entities("jpeg pictures from 2023", now=now)

    assert pairs(entities) == [
        (EntityType.FILE_TYPE, "jpg"),
        (EntityType.DATE_RANGE, {"start": "2023-01-01T00:00:00", "end": "2023-12-31T23:59:59"}),
    ]


def test_extract_camera():
    """Test camera model extraction"""
    entities = extract_entities("shot on canon eos r5")

    assert (EntityType.CAMERA, "canon eos r5") in pairs(entities)


def test_quoted_phrase_beats_color():
    """Test a quoted phrase stays one keyword even when it contains a color"""
    entities = extract_entities('"golden hour" in paris')

    assert pairs(entities) == [(EntityType.KEYWORD, "golden hour"), (EntityType.LOCATION, "paris")]
    assert entities[0].confidence == 0.95


def test_location_stops_at_boundary_words(now):
    """Test a free-text location does not swallow the date after it"""
    entities = extract_entities("photos in santa monica from last summer", now=now)

    assert pairs(entities)[0] == (EntityType.LOCATION, "santa monica")
    assert entities[1].type == EntityType.DATE_RANGE


def test_extract_action_type():
    """Test bulk actions are recognised"""
    entities = extract_entities("download all selected photos as zip")

    assert pairs(entities)[0] == (EntityType.ACTION_TYPE, "download")


def test_extract_album_name():
    """Test album names are captured after 'album called'"""
    entities = extract_entities("create album called hawaii trip")

    albums = [entity for entity in entities if entity.type == EntityType.ALBUM]
    actions = [entity for entity in entities if entity.type == EntityType.ACTION_TYPE]
    assert albums[0].value == "hawaii trip"
    assert actions[0].normalized_value == "album_create"


def test_create_action_spans_words_before_album():
    """Test 'make a new summer album' is one album_create action"""
    entities = extract_entities("make a new summer album")

    assert pairs(entities) == [(EntityType.ACTION_TYPE, "album_create")]
    assert entities[0].value == "make a new summer album"


def test_vocabulary_fuzzy_match():
    """Test a misspelled registered location still matches"""
    extractor = EntityExtractor()
    extractor.register_vocabulary(EntityType.LOCATION, ["Santorini"])

    entities = extractor.extract("sunset in santorni")

    locations = [entity for entity in entities if entity.type == EntityType.LOCATION]
    assert len(locations) == 1
    assert locations[0].normalized_value == "santorini"
    assert 0.0 < locations[0].confidence < 1.0


def test_vocabulary_exact_match_scores_full_confidence():
    """Test exact vocabulary hits score 1.0"""
    extractor = EntityExtractor()
    extractor.register_vocabulary(EntityType.PERSON, ["Alice"])

    entities = extractor.extract("photos of alice")

    assert pairs(entities) == [(EntityType.PERSON, "alice")]
    assert entities[0].confidence == 1.0


def test_register_custom_matcher():
    """Test matchers can be registered at runtime"""
    extractor = EntityExtractor()
    extractor.register(RegexEntityMatcher(
        name="hashtag",
        entity_type=EntityType.KEYWORD,
        patterns=[(r"#(\w+)", None)],
        confidence=0.99,
        priority=99,
    ))

    entities = extractor.extract("#sunset at the pier")

    assert (EntityType.KEYWORD, "sunset") in pairs(entities)


def test_resolve_overlaps_prefers_priority():
    """Test the higher-priority matcher wins an overlapping span"""
    low = Entity(type=EntityType.KEYWORD, value="summer", confidence=1.0, span=Span(start=5, end=11))
    high = Entity(type=EntityType.DATE_RANGE, value="last summer", confidence=0.9, span=Span(start=0, end=11))

    resolved = resolve_overlaps([(10, 0, low), (100, 1, high)])

    assert resolved == [high]


def test_resolve_overlaps_prefers_longer_span_on_tie():
    """Test equal priority and confidence fall back to the longer span"""
    short = Entity(type=EntityType.DATE_RANGE, value="2023", confidence=1.0, span=Span(start=4, end=8))
    long = Entity(type=EntityType.DATE_RANGE, value="may 2023", confidence=1.0, span=Span(start=0, end=8))

    assert resolve_overlaps([(100, 0, short), (100, 0, long)]) == [long]


def test_extraction_is_deterministic():
    """Test repeated extraction yields identical entities"""
    query = "family photos in boston from 2024 or birthday cake"

    assert extract_entities(query) == extract_entities(query)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
