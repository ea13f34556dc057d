"""handlers モジュールのテスト."""

from unittest.mock import MagicMock

import pytest
from conftest import FakeStore, make_keyword

from rank_tracker.errors import ConfigurationError, ProviderError
from rank_tracker.handlers import (
    NOT_CONFIGURED_MESSAGE,
    UNAVAILABLE_MESSAGE,
    RankingHandlers,
)
from rank_tracker.models import InstantLookupResult, LimitDecision, OrganicResult, RankingResult, RunSummary


def _handlers(store=None, orchestrator=None, scheduler=None, limiter=None):
    return RankingHandlers(
        orchestrator=orchestrator or MagicMock(),
        scheduler=scheduler or MagicMock(),
        limiter=limiter or MagicMock(threshold=10),
        store=store or FakeStore([make_keyword(user_id="owner")]),
    )


class TestCheckRanking:
    """check_ranking のテスト."""

    def test_persists_one_record(self):
        store = FakeStore([make_keyword(user_id="owner")])
        orchestrator = MagicMock()
        orchestrator.check_keyword_ranking.return_value = RankingResult(
            keyword_id="kw-1", position=None, search_volume=None, found=False, domain="https://www.example.com",
        )

        status, body = _handlers(store, orchestrator).check_ranking("kw-1", "owner")

        assert status == 200
        assert body["found"] is False
        assert [(r.keyword_id, r.position) for r in store.rankings] == [("kw-1", None)]

    def test_provider_error_persists_nothing(self):
        store = FakeStore([make_keyword(user_id="owner")])
        orchestrator = MagicMock()
        orchestrator.check_keyword_ranking.side_effect = ProviderError("Serper", "down", 503)

        status, body = _handlers(store, orchestrator).check_ranking("kw-1", "owner")

        assert status == 502
        assert body["message"] == UNAVAILABLE_MESSAGE
        assert store.rankings == []

    def test_not_found_and_forbidden(self):
        handlers = _handlers()
        assert handlers.check_ranking("missing", "owner")[0] == 404
        assert handlers.check_ranking("kw-1", "someone-else")[0] == 403


class TestRefreshAll:
    """refresh_all のテスト."""

    def test_summary(self):
        scheduler = MagicMock()
        scheduler.refresh_user_keywords.return_value = RunSummary(total=7, checked=5, failed_batches=1)

        status, body = _handlers(scheduler=scheduler).refresh_all("owner")

        scheduler.refresh_user_keywords.assert_called_once_with("owner")
        assert status == 200
        assert body == {"message": "Keywords refreshed successfully", "checked": 5, "total": 7}

    def test_nothing_to_check(self):
        scheduler = MagicMock()
        scheduler.refresh_user_keywords.return_value = RunSummary(total=0)

        status, body = _handlers(scheduler=scheduler).refresh_all("owner")

        assert status == 200
        assert body["checked"] == 0


class TestKeywordLookup:
    """keyword_lookup のテスト."""

    def _limiter(self, allowed=True, count=1):
        limiter = MagicMock(threshold=10)
        limiter.check.return_value = LimitDecision(allowed=allowed, count=count, remaining=max(10 - count, 0))
        return limiter

    def test_success(self):
        orchestrator = MagicMock()
        orchestrator.instant_keyword_lookup.return_value = InstantLookupResult(
            position=3, found=True, matched_url="https://example.com/a", total_results=100, search_volume=None,
        )
        limiter = self._limiter(count=4)

        status, body = _handlers(orchestrator=orchestrator, limiter=limiter).keyword_lookup(
            "203.0.113.5", {"keyword": "coffee", "domain": "example.com", "device": "mobile"},
        )

        limiter.check.assert_called_once_with("203.0.113.5")
        orchestrator.instant_keyword_lookup.assert_called_once_with("coffee", "example.com", "sa", "mobile")
        assert status == 200
        assert body["position"] == 3
        assert body["matchedUrl"] == "https://example.com/a"
        assert body["totalResults"] == 100
        assert body["remaining"] == 6

    def test_rate_limited(self):
        orchestrator = MagicMock()

        status, body = _handlers(orchestrator=orchestrator, limiter=self._limiter(allowed=False, count=11)).keyword_lookup(
            "203.0.113.5", {"keyword": "coffee", "domain": "example.com"},
        )

        assert status == 429
        assert "10" in body["message"]
        orchestrator.instant_keyword_lookup.assert_not_called()

    def test_missing_fields(self):
        status, _ = _handlers(limiter=self._limiter()).keyword_lookup("203.0.113.5", {"keyword": "coffee"})
        assert status == 400

    @pytest.mark.parametrize("payload", [
        {"keyword": 123, "domain": "example.com"},
        {"keyword": "coffee", "domain": ["example.com"]},
        {"keyword": None, "domain": None},
        ["coffee", "example.com"],
    ])
    def test_non_string_fields_are_bad_request(self, payload):
        """文字列以外の keyword / domain は例外ではなく 400 になること."""
        orchestrator = MagicMock()

        status, body = _handlers(orchestrator=orchestrator, limiter=self._limiter()).keyword_lookup(
            "203.0.113.5", payload,
        )

        assert status == 400
        assert body["message"] == "Keyword and domain are required"
        orchestrator.instant_keyword_lookup.assert_not_called()

    def test_non_string_location_falls_back_to_default(self):
        orchestrator = MagicMock()
        orchestrator.instant_keyword_lookup.return_value = InstantLookupResult(
            position=None, found=False, matched_url=None, total_results=100, search_volume=None,
        )

        status, body = _handlers(orchestrator=orchestrator, limiter=self._limiter()).keyword_lookup(
            "203.0.113.5", {"keyword": "coffee", "domain": "example.com", "location": 7},
        )

        assert status == 200
        assert body["location"] == "sa"

    def test_unknown_ip(self):
        limiter = self._limiter()
        _handlers(limiter=limiter).keyword_lookup(None, {})
        limiter.check.assert_called_once_with("unknown")

    def test_configuration_error(self):
        orchestrator = MagicMock()
        orchestrator.instant_keyword_lookup.side_effect = ConfigurationError("SERPER_API_KEY is not configured")

        status, body = _handlers(orchestrator=orchestrator, limiter=self._limiter()).keyword_lookup(
            "203.0.113.5", {"keyword": "coffee", "domain": "example.com"},
        )

        assert status == 500
        assert body["message"] == NOT_CONFIGURED_MESSAGE


class TestKeywordSerp:
    """keyword_serp のテスト."""

    def test_results_with_position(self):
        orchestrator = MagicMock()
        orchestrator.get_search_results.return_value = [
            OrganicResult(position=1, title="o", link="https://other.com"),
            OrganicResult(position=2, title="e", link="https://blog.example.com/x", snippet="s"),
        ]

        status, body = _handlers(orchestrator=orchestrator).keyword_serp("kw-1", "owner")

        assert status == 200
        assert body["found"] is True
        assert body["position"] == 2
        assert body["results"][1] == {
            "position": 2, "title": "e", "link": "https://blog.example.com/x", "snippet": "s",
        }

    def test_unexpected_error(self):
        orchestrator = MagicMock()
        orchestrator.get_search_results.side_effect = RuntimeError("boom")

        status, body = _handlers(orchestrator=orchestrator).keyword_serp("kw-1", "owner")

        assert status == 500
        assert body["error"] is True
