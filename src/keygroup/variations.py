"""Strict phrase-variation checks built on canonical keys."""

from __future__ import annotations

from typing import Callable

from .normalizer import normalize_phrase

Normalize = Callable[[str], str]


def variation_key(phrase: str, *, normalize: Normalize = normalize_phrase) -> str | None:
    """Return the key under which ``phrase`` matches its variations.

    Phrases with an empty canonical key match nothing, so they get ``None``.
    """

    key = normalize(phrase)
    return key or None


def are_variations(first: str, second: str, *, normalize: Normalize = normalize_phrase) -> bool:
    """Return ``True`` when both keywords reduce to the same non-empty key.

    Word order matters: "treats for dogs" is not a variation of "dog treats",
    and an added modifier ("organic dog treats") changes the key.
    """

    first_key = variation_key(first, normalize=normalize)
    if first_key is None:
        return False
    return first_key == normalize(second)


def phrase_similarity(first: str, second: str, *, normalize: Normalize = normalize_phrase) -> float:
    """Binary similarity score: ``1.0`` for variations, ``0.0`` otherwise."""

    return 1.0 if are_variations(first, second, normalize=normalize) else 0.0


__all__ = ["are_variations", "phrase_similarity", "variation_key"]
