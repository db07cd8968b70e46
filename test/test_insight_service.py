import pytest
import requests

from kasira.domain.errors import UpstreamUnavailableError
from kasira.domain.models import BranchPerformance, FinancialStats
from kasira.services import insight_service
from kasira.services.insight_service import InsightService

URL = "https://example.test/models/{model}:generateContent"


class FakeResponse:
    def __init__(self, payload, status_error=None):
        self.payload = payload
        self.status_error = status_error

    def raise_for_status(self):
        if self.status_error:
            raise self.status_error

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


def _inputs():
    stats = FinancialStats(revenue=150000, net_profit=42000, order_count=9)
    branches = [
        BranchPerformance(branch_id="BR-A", branch_name="Cabang A", net_profit=12000, best_seller="Teh"),
        BranchPerformance(branch_id="BR-B", branch_name="Cabang B", net_profit=30000, best_seller="Kopi Susu"),
    ]
    return "2026-03-01 s/d 2026-03-31", stats, branches, 14


def test_prompt_names_most_profitable_branch():
    svc = InsightService("key", "gemini-1.5-flash", URL)

    prompt = svc.build_prompt(*_inputs())

    assert "Cabang B" in prompt
    assert "Kopi Susu" in prompt
    assert "Rp150,000" in prompt
    assert "Jumlah Produk: 14" in prompt


def test_analyse_returns_candidate_text(monkeypatch):
    calls = {}

    def fake_post(url, params=None, json=None, timeout=None):
        calls["url"] = url
        calls["params"] = params
        calls["timeout"] = timeout
        return FakeResponse({"candidates": [{"content": {"parts": [{"text": "  1. Tambah stok Kopi Susu  "}]}}]})

    monkeypatch.setattr(insight_service.requests, "post", fake_post)
    svc = InsightService("secret", "gemini-1.5-flash", URL, timeout=5)

    text = svc.analyse(*_inputs())

    assert text == "1. Tambah stok Kopi Susu"
    assert calls["url"] == "https://example.test/models/gemini-1.5-flash:generateContent"
    assert calls["params"] == {"key": "secret"}
    assert calls["timeout"] == 5


def test_missing_api_key_fails_without_network(monkeypatch):
    def boom(*args, **kwargs):
        raise AssertionError("should not be called")

    monkeypatch.setattr(insight_service.requests, "post", boom)

    with pytest.raises(UpstreamUnavailableError, match="not configured"):
        InsightService("", "gemini-1.5-flash", URL).analyse(*_inputs())


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse({}, status_error=requests.HTTPError("503 Server Error")),
        FakeResponse(ValueError("not json")),
    ],
)
def test_http_and_decode_failures_become_upstream_errors(monkeypatch, response):
    monkeypatch.setattr(insight_service.requests, "post", lambda *a, **k: response)

    with pytest.raises(UpstreamUnavailableError, match="unreachable"):
        InsightService("secret", "gemini-1.5-flash", URL).analyse(*_inputs())


def test_connection_error_becomes_upstream_error(monkeypatch):
    def offline(*args, **kwargs):
        raise requests.ConnectionError("no route to host")

    monkeypatch.setattr(insight_service.requests, "post", offline)

    with pytest.raises(UpstreamUnavailableError):
        InsightService("secret", "gemini-1.5-flash", URL).analyse(*_inputs())


def test_empty_candidates_are_an_upstream_error(monkeypatch):
    monkeypatch.setattr(insight_service.requests, "post", lambda *a, **k: FakeResponse({"candidates": []}))

    with pytest.raises(UpstreamUnavailableError, match="no text"):
        InsightService("secret", "gemini-1.5-flash", URL).analyse(*_inputs())


@pytest.mark.parametrize(
    "payload",
    [
        {"candidates": ["oops"]},
        {"candidates": [{"content": "plain"}]},
        {"candidates": [{"content": {"parts": ["a", 3]}}]},
        {"candidates": "not-a-list"},
        ["not", "an", "object"],
    ],
)
def test_malformed_body_is_an_upstream_error(monkeypatch, payload):
    monkeypatch.setattr(insight_service.requests, "post", lambda *a, **k: FakeResponse(payload))

    with pytest.raises(UpstreamUnavailableError):
        InsightService("secret", "gemini-1.5-flash", URL).analyse(*_inputs())
