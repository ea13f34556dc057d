"""外部公開する操作 (HTTP エンドポイントの本体).

Web フレームワークには依存せず、(status_code, body) を返す。
ルーティング・認証は周辺アプリ側で行う。

  POST /keywords/{id}/check-ranking -> check_ranking
  POST /keywords/refresh-all        -> refresh_all
  POST /keyword-lookup              -> keyword_lookup (認証なし・IP 制限あり)
  GET  /keywords/{id}/serp          -> keyword_serp
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from rank_tracker import db
from rank_tracker.config import DEFAULT_LOCATION
from rank_tracker.errors import ConfigurationError, ProviderError
from rank_tracker.hostname import find_match
from rank_tracker.orchestrator import RankingOrchestrator
from rank_tracker.rate_limiter import IpRateLimiter
from rank_tracker.scheduler import RankingScheduler

logger = logging.getLogger(__name__)

Response = tuple[int, dict]

NOT_CONFIGURED_MESSAGE = "Search API is not configured. Please contact support."
UNAVAILABLE_MESSAGE = "Search service is temporarily unavailable. Please try again later."
RATE_LIMIT_MESSAGE = (
    "عذراً، لقد تجاوزت الحد المسموح به للتجربة المجانية ({limit} محاولات). يرجى التسجيل للمتابعة."
)


def error_response(exc: Exception, fallback: str) -> Response:
    """例外をユーザー向けのステータスとメッセージに変換する."""
    if isinstance(exc, ConfigurationError):
        return 500, {"message": NOT_CONFIGURED_MESSAGE, "error": True}
    if isinstance(exc, ProviderError):
        return 502, {"message": UNAVAILABLE_MESSAGE, "error": True}
    return 500, {"message": fallback, "error": True}


def _text_field(payload: dict, key: str) -> str:
    """文字列以外 (数値・null・配列など) は未指定として扱う."""
    value = payload.get(key)
    return value.strip() if isinstance(value, str) else ""


class RankingHandlers:
    def __init__(
        self,
        orchestrator: RankingOrchestrator,
        scheduler: RankingScheduler,
        limiter: IpRateLimiter,
        store=db,
    ):
        self._orchestrator = orchestrator
        self._scheduler = scheduler
        self._limiter = limiter
        self._store = store

    def _owned_keyword(self, keyword_id: str, user_id: str):
        keyword = self._store.get_keyword_with_domain(keyword_id)
        if keyword is None:
            return None, (404, {"message": "Keyword not found"})
        if keyword.user_id != user_id:
            return None, (403, {"message": "Unauthorized to access this keyword"})
        return keyword, None

    def check_ranking(self, keyword_id: str, user_id: str) -> Response:
        """1 キーワードを即時チェックし、順位レコードを 1 件保存する.

        プロバイダのエラー時は何も保存せずエラーを返す (圏外として記録しない)。
        """
        keyword, denied = self._owned_keyword(keyword_id, user_id)
        if denied:
            return denied

        try:
            result = self._orchestrator.check_keyword_ranking(keyword)
            self._store.create_ranking(keyword.id, result.position)
        except Exception as e:
            logger.exception("順位チェック失敗: keyword_id=%s", keyword_id)
            return error_response(e, "Failed to check keyword ranking")

        return 200, asdict(result)

    def refresh_all(self, user_id: str) -> Response:
        try:
            summary = self._scheduler.refresh_user_keywords(user_id)
        except Exception as e:
            logger.exception("一括更新失敗: user_id=%s", user_id)
            return error_response(e, "Failed to refresh keywords")

        if summary.total == 0:
            return 200, {"message": "No active keywords to check", "checked": 0, "total": 0}
        return 200, {
            "message": "Keywords refreshed successfully",
            "checked": summary.checked,
            "total": summary.total,
        }

    def keyword_lookup(self, ip: str | None, payload: dict) -> Response:
        """認証なしのインスタント検索. 結果は保存しない."""
        ip = ip or "unknown"
        try:
            decision = self._limiter.check(ip)
        except Exception as e:
            logger.exception("IP 制限カウンタの更新に失敗: ip=%s", ip)
            return error_response(e, "Failed to perform keyword lookup. Please try again.")

        if not decision.allowed:
            return 429, {"message": RATE_LIMIT_MESSAGE.format(limit=self._limiter.threshold)}

        if not isinstance(payload, dict):
            payload = {}
        keyword = _text_field(payload, "keyword")
        domain = _text_field(payload, "domain")
        if not keyword or not domain:
            return 400, {"message": "Keyword and domain are required"}

        location = _text_field(payload, "location") or DEFAULT_LOCATION
        device = "mobile" if payload.get("device") == "mobile" else "desktop"

        try:
            result = self._orchestrator.instant_keyword_lookup(keyword, domain, location, device)
        except Exception as e:
            logger.exception("インスタント検索失敗: keyword=%s, domain=%s", keyword, domain)
            return error_response(e, "Failed to perform keyword lookup. Please try again.")

        return 200, {
            "keyword": keyword,
            "domain": domain,
            "location": location,
            "device": device,
            "position": result.position,
            "found": result.found,
            "matchedUrl": result.matched_url,
            "searchVolume": result.search_volume,
            "totalResults": result.total_results,
            "remaining": decision.remaining,
        }

    def keyword_serp(self, keyword_id: str, user_id: str) -> Response:
        """SERP プレビュー (自然検索結果の全件)."""
        keyword, denied = self._owned_keyword(keyword_id, user_id)
        if denied:
            return denied

        try:
            results = self._orchestrator.get_search_results(keyword)
        except Exception as e:
            logger.exception("SERP 取得失敗: keyword_id=%s", keyword_id)
            return error_response(e, "Failed to fetch search results. Please try again.")

        match = find_match(results, keyword.domain.domain)
        return 200, {
            "results": [asdict(r) for r in results],
            "found": match is not None,
            "position": match.position if match else None,
        }
