from __future__ import annotations

import pytest

from keygroup.models import KeywordRecord, KeywordType


def _make_record(keyword: str, volume=None, *, score: float = 5, type_: KeywordType = KeywordType.GENERIC) -> KeywordRecord:
    return KeywordRecord(
        keyword=keyword,
        type=type_,
        score=score,
        reasoning=f"reasoning for {keyword}",
        search_volume=volume,
    )


@pytest.fixture
def sample_records() -> list[KeywordRecord]:
    return [
        _make_record("dog treats", 12000),
        _make_record("dog treat", 8000),
        _make_record("the dog treats", 45000),
        _make_record("Dog Treats!", 15000),
        _make_record("organic dog treats", 3000),
        _make_record("treats for dogs", 2500),
        _make_record("men's long john", 900),
        _make_record("men's long johns", 1500),
        _make_record("men long johns", 400),
        _make_record("mens long john", None),
        _make_record("teeth whitening", 22000),
        _make_record("tooth whitening", 6000),
        _make_record("teeth whitener", 1800),
        _make_record("whitening teeth", 700),
        _make_record("mouse repellent", 5000),
        _make_record("mice repellent", 1200),
        _make_record("repellent for mice", 600),
    ]


@pytest.fixture
def make_record():
    return _make_record
