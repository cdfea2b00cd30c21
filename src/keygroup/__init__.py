"""Keyword normalization and grouping package."""

from __future__ import annotations

from .config import Settings
from .grouping import group_keywords, grouping_stats
from .lexicon import Lexicon, load_lexicon
from .models import GroupedKeywordResult, KeywordMeta, KeywordRecord, KeywordType
from .normalizer import PhraseNormalizer, lemmatize_phrase, lemmatize_word, normalize_phrase
from .processor import KeywordProcessor
from .variations import are_variations

__all__ = [
    "Settings",
    "GroupedKeywordResult",
    "KeywordMeta",
    "KeywordProcessor",
    "KeywordRecord",
    "KeywordType",
    "Lexicon",
    "PhraseNormalizer",
    "are_variations",
    "group_keywords",
    "grouping_stats",
    "lemmatize_phrase",
    "lemmatize_word",
    "load_lexicon",
    "normalize_phrase",
    "create_app",
]


def __getattr__(name: str):  # pragma: no cover - small helper
    if name == "create_app":
        from .app import create_app

        return create_app
    raise AttributeError(f"module 'keygroup' has no attribute {name}")
