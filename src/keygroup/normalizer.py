"""Reduce keyword phrases to canonical comparison keys.

A canonical key is the phrase cleaned of punctuation, stripped of stop words
and with every remaining token lemmatized, joined back in the original order.
Two phrases with the same non-empty key are treated as the same phrase.
"""

from __future__ import annotations

import re
from typing import Dict, List

from .lexicon import Lexicon

_PUNCTUATION_RE = re.compile(r"[\"()+*,.:;!?/#]")
_WHITESPACE_RE = re.compile(r"\s+")
_POSSESSIVE_RE = re.compile(r"['’]s$")
_PLURAL_POSSESSIVE_RE = re.compile(r"s['’]$")

# First match wins.
_PLURAL_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"ies$"), "y"),
    (re.compile(r"ves$"), "f"),
    (re.compile(r"(s|x|z|ch|sh)es$"), r"\1"),
    (re.compile(r"([^aeiou])ies$"), r"\1y"),
    (re.compile(r"s$"), ""),
)

_DEFAULT_LEXICON = Lexicon.default()


def clean_text(text: str) -> str:
    """Lowercase, blank out punctuation (apostrophes kept) and collapse spaces."""

    lowered = text.lower()
    spaced = _PUNCTUATION_RE.sub(" ", lowered)
    return _WHITESPACE_RE.sub(" ", spaced).strip()


def lemmatize_word(word: str, lexicon: Lexicon | None = None) -> str:
    """Reduce a single token to its singular, possessive-free form."""

    lexicon = lexicon or _DEFAULT_LEXICON
    cleaned = word.lower().strip()

    cleaned = _POSSESSIVE_RE.sub("", cleaned)
    cleaned = _PLURAL_POSSESSIVE_RE.sub("s", cleaned)

    irregular = lexicon.irregular_singulars.get(cleaned)
    if irregular is not None:
        return irregular

    # Only doubled-consonant gerunds ("running" -> "run"); anything looser
    # starts eating real words.
    if cleaned.endswith("ing") and len(cleaned) > 6:
        base = cleaned[:-3]
        if len(base) > 2 and base[-1] == base[-2]:
            return base[:-1]

    for pattern, replacement in _PLURAL_RULES:
        if pattern.search(cleaned):
            return pattern.sub(replacement, cleaned, count=1)
    return cleaned


def remove_stop_words(phrase: str, lexicon: Lexicon | None = None) -> List[str]:
    """Tokenize ``phrase`` and drop stop words, preserving order."""

    lexicon = lexicon or _DEFAULT_LEXICON
    tokens = clean_text(phrase).split(" ")
    return [token for token in tokens if token and token not in lexicon.stop_words]


def normalize_phrase(phrase: str, lexicon: Lexicon | None = None) -> str:
    """Return the canonical key for ``phrase``.

    Empty or stop-word-only input yields ``""``.
    """

    if not phrase:
        return ""
    lexicon = lexicon or _DEFAULT_LEXICON
    lemmas = (lemmatize_word(token, lexicon) for token in remove_stop_words(phrase, lexicon))
    # A bare possessive token lemmatizes to "" and is left out of the key.
    return " ".join(lemma for lemma in lemmas if lemma)


def lemmatize_phrase(phrase: str, lexicon: Lexicon | None = None) -> str:
    """Lemmatize every token of ``phrase`` without removing stop words."""

    tokens = [token for token in clean_text(phrase or "").split(" ") if token]
    lemmas = (lemmatize_word(token, lexicon) for token in tokens)
    return " ".join(lemma for lemma in lemmas if lemma)


class PhraseNormalizer:
    """Memoizing normalizer owned by a single grouping run."""

    def __init__(self, lexicon: Lexicon | None = None) -> None:
        self._lexicon = lexicon or _DEFAULT_LEXICON
        self._cache: Dict[str, str] = {}

    @property
    def lexicon(self) -> Lexicon:
        return self._lexicon

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def normalize(self, phrase: str) -> str:
        cached = self._cache.get(phrase)
        if cached is not None:
            return cached
        normalized = normalize_phrase(phrase, self._lexicon)
        self._cache[phrase] = normalized
        return normalized

    def clear_cache(self) -> None:
        self._cache.clear()

    def __call__(self, phrase: str) -> str:
        return self.normalize(phrase)


__all__ = [
    "PhraseNormalizer",
    "clean_text",
    "lemmatize_phrase",
    "lemmatize_word",
    "normalize_phrase",
    "remove_stop_words",
]
