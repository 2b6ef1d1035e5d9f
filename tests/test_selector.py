import pytest

from core.domain.models import MetadataMatcher, ObjectMeta
from core.errors import PatternError
from core.services.selector import matches


def test_name_pattern_is_unanchored():
    selector = MetadataMatcher(name="eb-")
    assert matches(selector, ObjectMeta(name="web-1"))
    assert not matches(selector, ObjectMeta(name="db-1"))


def test_empty_namespace_pattern_uses_candidate_namespace():
    selector = MetadataMatcher(name="web-.*")
    assert matches(selector, ObjectMeta(name="web-1", namespace="prod"))
    assert matches(selector, ObjectMeta(name="web-2", namespace="staging"))


def test_namespace_pattern_restricts_selection():
    selector = MetadataMatcher(name="web-.*", namespace="^prod$")
    assert matches(selector, ObjectMeta(name="web-1", namespace="prod"))
    assert not matches(selector, ObjectMeta(name="web-1", namespace="staging"))
    assert not matches(selector, ObjectMeta(name="web-1", namespace="preprod"))


def test_both_patterns_must_match():
    selector = MetadataMatcher(name="^db", namespace="prod")
    assert not matches(selector, ObjectMeta(name="web-1", namespace="prod"))


def test_invalid_name_pattern():
    with pytest.raises(PatternError, match="^invalid matcher: name:"):
        matches(MetadataMatcher(name="web-("), ObjectMeta(name="web-1"))


def test_invalid_namespace_pattern():
    with pytest.raises(PatternError, match="^invalid matcher: namespace:"):
        matches(MetadataMatcher(name="web", namespace="[prod"), ObjectMeta(name="web-1"))
