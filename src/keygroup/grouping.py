"""Partition keyword records into parent/variation clusters."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Sequence

from .models import GroupedKeywordResult, KeywordRecord
from .normalizer import PhraseNormalizer
from .variations import Normalize, variation_key

logger = logging.getLogger(__name__)

RecordCallback = Callable[[int, int], None]


class GroupingCancelled(Exception):
    """Raised from a record callback to abandon the current grouping pass."""


def sort_by_volume(records: Iterable[KeywordRecord]) -> List[KeywordRecord]:
    """Sort by search volume descending; unknown volume ranks as 0.

    ``sorted`` is stable, so equal volumes keep their input order.
    """

    return sorted(records, key=lambda record: -record.ranking_volume)


def group_keywords(
    records: Sequence[KeywordRecord],
    *,
    normalizer: Normalize | None = None,
    on_record: RecordCallback | None = None,
) -> List[GroupedKeywordResult]:
    """Group ``records`` by canonical key, highest-volume member as parent.

    Runs one pass over the volume-sorted records with a key lookup table, so
    the cost is dominated by the sort. Records whose key is empty never join
    another record and each becomes its own group.

    ``on_record(processed, total)`` is called before each record is placed;
    raising :class:`GroupingCancelled` from it aborts the pass.
    """

    normalize = normalizer or PhraseNormalizer()
    ordered = sort_by_volume(records)
    total = len(ordered)
    by_key: Dict[str, GroupedKeywordResult] = {}
    groups: List[GroupedKeywordResult] = []

    for processed, record in enumerate(ordered, start=1):
        if on_record is not None:
            on_record(processed, total)
        key = variation_key(record.keyword, normalize=normalize)
        group = by_key.get(key) if key is not None else None
        if group is not None:
            group.variations.append(record)
            continue
        group = GroupedKeywordResult(parent=record, lemma=key or "")
        groups.append(group)
        if key is not None:
            by_key[key] = group

    groups.sort(key=lambda item: -item.parent.ranking_volume)
    logger.debug("grouping.complete records=%s groups=%s", total, len(groups))
    return groups


def flatten_groups(groups: Iterable[GroupedKeywordResult]) -> List[KeywordRecord]:
    """Return every record, each parent followed by its variations."""

    flattened: List[KeywordRecord] = []
    for group in groups:
        flattened.append(group.parent)
        flattened.extend(group.variations)
    return flattened


@dataclass(slots=True)
class GroupingStats:
    total_groups: int
    total_keywords: int
    groups_with_variations: int
    average_variations_per_group: float

    def to_payload(self) -> dict[str, object]:
        return {
            "totalGroups": self.total_groups,
            "totalKeywords": self.total_keywords,
            "groupsWithVariations": self.groups_with_variations,
            "averageVariationsPerGroup": self.average_variations_per_group,
        }


def grouping_stats(groups: Sequence[GroupedKeywordResult]) -> GroupingStats:
    variation_total = sum(group.total_variations for group in groups)
    average = variation_total / len(groups) if groups else 0.0
    return GroupingStats(
        total_groups=len(groups),
        total_keywords=len(groups) + variation_total,
        groups_with_variations=sum(1 for group in groups if group.variations),
        average_variations_per_group=round(average, 1),
    )


__all__ = [
    "GroupingCancelled",
    "GroupingStats",
    "flatten_groups",
    "group_keywords",
    "grouping_stats",
    "sort_by_volume",
]
