from __future__ import annotations

import pytest

from keygroup.variations import are_variations, phrase_similarity, variation_key


@pytest.mark.parametrize(
    ("first", "second"),
    [
        ("dog treats", "dog treat"),
        ("dog treats", "the dog treats"),
        ("men's long john", "mens long john"),
        ("men long johns", "men's long johns"),
        ("Dog Treats", "Dog Treats"),
    ],
)
def test_are_variations_matches_same_key(first: str, second: str) -> None:
    assert are_variations(first, second)
    assert are_variations(second, first)


@pytest.mark.parametrize(
    ("first", "second"),
    [
        ("organic dog treats", "dog treats"),
        ("treats for dogs", "dog treats"),
        ("teeth whitener", "teeth whitening"),
        ("whitening teeth", "teeth whitening"),
        ("repellent for mice", "mouse repellent"),
    ],
)
def test_are_variations_rejects_different_keys(first: str, second: str) -> None:
    assert not are_variations(first, second)


def test_empty_keys_never_match() -> None:
    assert not are_variations("the a an", "of the")
    assert not are_variations("the", "the")
    assert not are_variations("", "")
    assert variation_key("the a an") is None


def test_phrase_similarity_is_binary() -> None:
    assert phrase_similarity("dog treats", "dog treat") == 1.0
    assert phrase_similarity("dog treats", "cat treats") == 0.0


def test_custom_normalize_is_used() -> None:
    assert are_variations("ABC", "abc", normalize=str.lower)
    assert variation_key("ABC", normalize=str.lower) == "abc"
