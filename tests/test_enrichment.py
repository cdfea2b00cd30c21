from __future__ import annotations

import pytest

from keygroup.enrichment import (
    build_metadata_map,
    enrich_records,
    metadata_key,
    parse_search_volume,
)
from keygroup.models import KeywordMeta, metadata_map_from_payload


def test_enrichment_overrides_existing_volume(make_record) -> None:
    records = [make_record("Dog Treats", 120), make_record("cat toys")]
    meta = {"dog treats": KeywordMeta(search_volume=500), "cat toys": KeywordMeta(search_volume=42)}

    enriched = enrich_records(records, meta)

    assert [record.search_volume for record in enriched] == [500, 42]
    # Input records are untouched.
    assert records[0].search_volume == 120
    assert records[1].search_volume is None


def test_enrichment_keeps_volume_without_metadata(make_record) -> None:
    records = [make_record("dog treats", 120), make_record("cat toys", 7)]
    meta = {"dog treats": KeywordMeta(search_volume=None)}

    enriched = enrich_records(records, meta)

    assert [record.search_volume for record in enriched] == [120, 7]


def test_enrichment_returns_new_list(make_record) -> None:
    records = [make_record("dog treats", 1)]

    enriched = enrich_records(records)

    assert enriched == records
    assert enriched is not records


def test_metadata_key_normalizes_case_and_whitespace() -> None:
    assert metadata_key("  Dog Treats ") == "dog treats"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("12,000", 12000),
        (" 1 500 ", 1500),
        ("12.5", 12.5),
        (300, 300),
        ("", None),
        (None, None),
        ("n/a", None),
        ("inf", None),
        (True, None),
    ],
)
def test_parse_search_volume(raw, expected) -> None:
    assert parse_search_volume(raw) == expected


def test_build_metadata_map_first_volume_wins() -> None:
    rows = [
        {"Keyword": "Dog Treats", "Search Volume": "1,200"},
        {"Keyword": "dog treats", "Search Volume": "99"},
        {"Keyword": "cat toys", "Search Volume": ""},
        {"Keyword": "", "Search Volume": "10"},
    ]

    meta = build_metadata_map(rows, "Keyword", "Search Volume")

    assert meta == {"dog treats": KeywordMeta(search_volume=1200)}


def test_build_metadata_map_without_volume_column() -> None:
    assert build_metadata_map([{"Keyword": "dog treats"}], "Keyword", None) == {}


def test_metadata_map_from_payload_lowercases_keys() -> None:
    meta = metadata_map_from_payload({" Dog Treats ": {"searchVolume": 500}, "cat toys": {}, "": {"searchVolume": 1}})

    assert meta == {
        "dog treats": KeywordMeta(search_volume=500),
        "cat toys": KeywordMeta(search_volume=None),
    }
