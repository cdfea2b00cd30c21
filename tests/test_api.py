from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from keygroup.app import create_app
from keygroup.config import Settings
from keygroup.lexicon import Lexicon
from keygroup.models import KeywordRecord, KeywordType
from keygroup.normalizer import PhraseNormalizer
from keygroup.observability import MetricsRecorder
from keygroup.processor import KeywordProcessor
from keygroup.scoring import KeywordAnalysisResponse, ScoringError


class FakeScoringClient:
    def __init__(self, *, fail: bool = False) -> None:
        self.base_url = "http://scoring.test"
        self.fail = fail
        self.calls: list[tuple] = []

    def analyze_keywords(self, product, keywords):
        self.calls.append(("analyze", product, list(keywords)))
        if self.fail:
            raise ScoringError("Analysis request failed: connection refused")
        results = [
            KeywordRecord(keyword=keyword, type=KeywordType.GENERIC, score=7, reasoning="relevant")
            for keyword in keywords
        ]
        return KeywordAnalysisResponse(
            results=results,
            summary={"total_keywords": len(keywords), "analyzed": len(keywords)},
        )

    def analyze_keyword_roots(self, members, *, mode="full"):
        self.calls.append(("roots", list(members), mode))
        if self.fail:
            raise ScoringError("Root analysis failed with status 500")
        return {"mode": mode, "results": [{"normalized_term": "treat", "frequency": len(members)}]}

    def get_negative_phrases(self, asin, *, country="US"):
        self.calls.append(("negative", asin, country))
        if self.fail:
            raise ScoringError("Negative phrase generation failed with status 500")
        return ["free", "toy"]


def _build_client(
    *,
    scoring: FakeScoringClient | None = None,
    prometheus: bool = False,
    **overrides,
) -> TestClient:
    settings = Settings(progress_interval_seconds=0.0, **overrides)
    metrics = MetricsRecorder(prometheus_enabled=prometheus)
    app = create_app(settings=settings, scoring_client=scoring or FakeScoringClient(), metrics=metrics)
    return TestClient(app)


def _wait_for_job(client: TestClient, job_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        response = client.get(f"/keywords/groups/{job_id}")
        assert response.status_code == 200
        payload = response.json()
        if payload["status"] in {"success", "error", "cancelled"}:
            return payload
        time.sleep(0.02)
    raise AssertionError("grouping job did not finish in time")


@pytest.fixture
def api_client():
    with _build_client() as client:
        yield client


def test_health_endpoint(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["service"] == "keygroup"
    assert payload["environment"] == "development"


def test_grouping_job_roundtrip(api_client: TestClient, sample_records) -> None:
    body = {
        "keywords": [record.to_payload() for record in sample_records],
        "keywordMeta": {"Dog Treat": {"searchVolume": 99999}},
    }

    response = api_client.post("/keywords/groups", json=body)

    assert response.status_code == 202
    job_id = response.json()["jobId"]
    payload = _wait_for_job(api_client, job_id)
    assert payload["status"] == "success"
    assert payload["progress"] == 100
    assert payload["stats"]["totalKeywords"] == len(sample_records)
    first_group = payload["groups"][0]
    assert first_group["parent"]["keyword"] == "dog treat"
    assert first_group["parent"]["searchVolume"] == 99999
    assert first_group["lemma"] == "dog treat"
    assert first_group["totalVariations"] == 3


@pytest.mark.parametrize(
    "body",
    [
        {"keywords": []},
        {"keywords": "dog treats"},
        {"keywords": [{"keyword": "dog", "type": "mystery"}]},
        ["not", "an", "object"],
    ],
)
def test_grouping_job_rejects_invalid_input(api_client: TestClient, body) -> None:
    response = api_client.post("/keywords/groups", json=body)

    assert response.status_code == 400


def test_grouping_job_rejects_invalid_json(api_client: TestClient) -> None:
    response = api_client.post(
        "/keywords/groups",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400


def test_unknown_job_returns_404(api_client: TestClient) -> None:
    assert api_client.get("/keywords/groups/missing").status_code == 404
    assert api_client.post("/keywords/groups/missing/cancel").status_code == 404


def test_cancel_finished_job_keeps_status(api_client: TestClient) -> None:
    response = api_client.post("/keywords/groups", json={"keywords": ["dog treats", "dog treat"]})
    job_id = response.json()["jobId"]
    _wait_for_job(api_client, job_id)

    cancelled = api_client.post(f"/keywords/groups/{job_id}/cancel")

    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "success"
    assert "groups" not in cancelled.json()


def test_analyze_uses_backend_and_enqueues_grouping() -> None:
    scoring = FakeScoringClient()
    with _build_client(scoring=scoring) as client:
        response = client.post(
            "/keywords/analyze",
            json={
                "mode": "asin",
                "asin": "B000TEST",
                "keywords": "dog treats\nDog Treats\ndog treat\n\ncat toys",
                "keywordMeta": {"cat toys": {"searchVolume": 700}},
            },
        )

        assert response.status_code == 202
        payload = response.json()
        assert payload["source"] == "backend"
        assert payload["summary"]["analyzed"] == 3
        assert scoring.calls[0][2] == ["dog treats", "dog treat", "cat toys"]

        job = _wait_for_job(client, payload["jobId"])
        assert job["status"] == "success"
        assert job["groups"][0]["parent"]["keyword"] == "cat toys"
        assert job["stats"]["totalGroups"] == 2


def test_analyze_falls_back_when_backend_unavailable() -> None:
    with _build_client(scoring=FakeScoringClient(fail=True)) as client:
        response = client.post(
            "/keywords/analyze",
            json={"mode": "description", "description": "Chewy dog treats", "keywords": ["dog treats", "dog treat"]},
        )

        assert response.status_code == 202
        payload = response.json()
        assert payload["source"] == "fallback"
        assert payload["summary"]["total_keywords"] == 2

        job = _wait_for_job(client, payload["jobId"])
        assert job["status"] == "success"
        assert all(1 <= record["score"] <= 10 for record in job["results"])
        assert job["stats"]["totalGroups"] == 1


def test_analyze_without_fallback_returns_502() -> None:
    with _build_client(scoring=FakeScoringClient(fail=True), scoring_fallback_enabled=False) as client:
        response = client.post("/keywords/analyze", json={"asin": "B000TEST", "keywords": ["dog treats"]})

    assert response.status_code == 502
    assert "connection refused" in response.json()["detail"]


@pytest.mark.parametrize(
    "body",
    [
        {"asin": "B000TEST", "keywords": []},
        {"keywords": ["dog treats"]},
        {"asin": "B000TEST", "keywords": ["dog treats"], "keywordMeta": ["bad"]},
    ],
)
def test_analyze_rejects_invalid_input(api_client: TestClient, body) -> None:
    assert api_client.post("/keywords/analyze", json=body).status_code == 400


def test_queue_full_returns_429() -> None:
    def slow_factory(lexicon: Lexicon):
        normalizer = PhraseNormalizer(lexicon)

        def normalize(phrase: str) -> str:
            time.sleep(0.005)
            return normalizer(phrase)

        return normalize

    settings = Settings(grouping_job_max_queue=1)
    processor = KeywordProcessor(cancel_check_interval=4, normalizer_factory=slow_factory)
    app = create_app(settings=settings, scoring_client=FakeScoringClient(), processor=processor)
    body = {"keywords": [f"keyword {index}" for index in range(400)]}
    with TestClient(app) as client:
        statuses = [client.post("/keywords/groups", json=body).status_code for _ in range(3)]

    assert statuses[0] == 202
    assert statuses[-1] == 429


def test_roots_and_negative_phrases_proxy_backend() -> None:
    scoring = FakeScoringClient()
    with _build_client(scoring=scoring) as client:
        roots = client.post("/keywords/roots", json={"keywords": [{"keyword": "dog treats"}, "cat treats"], "mode": "simple"})
        phrases = client.post("/keywords/negative-phrases", json={"asin": "B000TEST"})
        missing_asin = client.post("/keywords/negative-phrases", json={})

    assert roots.status_code == 200
    assert roots.json()["results"][0]["frequency"] == 2
    assert scoring.calls[0] == ("roots", [{"keyword": "dog treats"}, {"keyword": "cat treats"}], "simple")
    assert phrases.json() == {"asin": "B000TEST", "country": "US", "phrases": ["free", "toy"]}
    assert missing_asin.status_code == 400


def test_backend_failures_on_proxies_return_502() -> None:
    with _build_client(scoring=FakeScoringClient(fail=True)) as client:
        assert client.post("/keywords/roots", json={"keywords": ["dog treats"]}).status_code == 502
        assert client.post("/keywords/negative-phrases", json={"asin": "B000TEST"}).status_code == 502


def test_metrics_endpoint_disabled_by_default(api_client: TestClient) -> None:
    assert api_client.get("/metrics").status_code == 404


def test_metrics_endpoint_exports_prometheus() -> None:
    with _build_client(prometheus=True) as client:
        response = client.post("/keywords/groups", json={"keywords": ["dog treats", "dog treat"]})
        _wait_for_job(client, response.json()["jobId"])

        metrics = client.get("/metrics")

    assert metrics.status_code == 200
    assert "keygroup_grouping_run_complete_total" in metrics.text
    assert "keygroup_grouping_job_enqueued_total" in metrics.text
