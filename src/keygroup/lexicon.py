"""Word tables used by phrase normalization, optionally extended from YAML."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

import yaml


# Function words that do not change what a keyword phrase means.
DEFAULT_STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "were",
        "been", "be", "have", "has", "had", "do", "does", "did", "will",
        "would", "could", "should", "may", "might", "must", "can", "shall",
        "that", "this", "these", "those", "i", "you", "he", "she", "it",
        "we", "they", "them", "their", "what", "which", "who", "when",
        "where", "why", "how", "all", "each", "every", "both", "few",
        "more", "most", "other", "some", "such", "only", "own", "same",
        "so", "than", "too", "very", "just", "about",
    }
)

# "mens" without an apostrophe is a common spelling of "men's".
DEFAULT_IRREGULAR_SINGULARS: Mapping[str, str] = {
    "mens": "men",
    "womens": "women",
    "childrens": "children",
}


@dataclass(frozen=True, slots=True)
class Lexicon:
    """Stop words and exact-token irregular forms for one normalizer."""

    stop_words: frozenset[str] = DEFAULT_STOP_WORDS
    irregular_singulars: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_IRREGULAR_SINGULARS)
    )

    @classmethod
    def default(cls) -> "Lexicon":
        return cls()

    def extend(
        self,
        *,
        stop_words: Iterable[str] = (),
        irregular_singulars: Mapping[str, str] | None = None,
    ) -> "Lexicon":
        merged_stop_words = set(self.stop_words)
        merged_stop_words.update(word.strip().lower() for word in stop_words if word and word.strip())
        merged_irregulars = dict(self.irregular_singulars)
        for source, target in (irregular_singulars or {}).items():
            key = str(source).strip().lower()
            value = str(target).strip().lower()
            if key and value:
                merged_irregulars[key] = value
        return Lexicon(stop_words=frozenset(merged_stop_words), irregular_singulars=merged_irregulars)


class LexiconLoadError(RuntimeError):
    """Raised when a lexicon file exists but cannot be parsed."""


def load_lexicon(path: str | Path | None) -> Lexicon:
    """Load lexicon extensions from YAML; return the default lexicon if missing.

    The file may contain a ``stopwords`` list and an ``irregular_singulars``
    mapping, both of which are added on top of the built-in tables::

        stopwords: [best, cheap]
        irregular_singulars:
          teeth: tooth
          mice: mouse
    """

    lexicon = Lexicon.default()
    if path is None:
        return lexicon
    lexicon_path = Path(path)
    if not lexicon_path.exists():
        return lexicon

    try:
        data = yaml.safe_load(lexicon_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise LexiconLoadError(f"Invalid lexicon file {lexicon_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise LexiconLoadError(f"Lexicon file {lexicon_path} must contain a mapping")

    stop_words = data.get("stopwords") or []
    if isinstance(stop_words, str):
        stop_words = [stop_words]
    if not isinstance(stop_words, list):
        raise LexiconLoadError("'stopwords' must be a list of words")

    irregulars = data.get("irregular_singulars") or {}
    if not isinstance(irregulars, dict):
        raise LexiconLoadError("'irregular_singulars' must map plural forms to singular forms")

    return lexicon.extend(
        stop_words=[str(word) for word in stop_words],
        irregular_singulars={str(key): str(value) for key, value in irregulars.items()},
    )


__all__ = [
    "DEFAULT_IRREGULAR_SINGULARS",
    "DEFAULT_STOP_WORDS",
    "Lexicon",
    "LexiconLoadError",
    "load_lexicon",
]
