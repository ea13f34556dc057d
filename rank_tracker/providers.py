"""検索プロバイダ アダプタ.

プロバイダごとの検索リクエストを発行し、追跡ドメインの順位を取り出す。
DB への書き込みは行わない。

実装:
  - SerperProvider: Serper.dev (構造化 JSON)
  - ScrapingRobotProvider: ScrapingRobot GoogleScraper (JSON または HTML)
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import quote

import requests

from rank_tracker.config import (
    GOOGLE_SEARCH_URL_TEMPLATE,
    PROVIDER_REQUEST_TIMEOUT,
    PROVIDER_SCRAPINGROBOT,
    PROVIDER_SERPER,
    RESULT_COUNT,
    SCRAPINGROBOT_API_KEY,
    SCRAPINGROBOT_API_URL,
    SCRAPINGROBOT_REQUEST_INTERVAL,
    SEARCH_LANGUAGE,
    SERPER_API_KEY,
    SERPER_API_URL,
    SERPER_REQUEST_INTERVAL,
    SETTING_SCRAPINGROBOT_API_KEY,
    SETTING_SERPER_API_KEY,
)
from rank_tracker.errors import ConfigurationError, ProviderError
from rank_tracker.hostname import find_match
from rank_tracker.models import Keyword, OrganicResult, RankingResult
from rank_tracker.parser import ResultParser, ScrapingRobotResultParser, SerperResultParser

logger = logging.getLogger(__name__)

SettingGetter = Callable[[str], "str | None"]


class RankingProvider(ABC):
    """検索プロバイダの共通契約.

    どの実装を選んでも check_ranking / check_many / get_organic_results の
    戻り値の型と意味は同一でなければならない。
    """

    name: str = ""
    label: str = ""  # エラーメッセージ用の表示名
    setting_key: str = ""
    env_api_key: str = ""
    request_interval: float = 0.0

    def __init__(
        self,
        get_setting: SettingGetter,
        session: requests.Session | None = None,
        timeout: float = PROVIDER_REQUEST_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._get_setting = get_setting
        self._session = session or requests.Session()
        self._timeout = timeout
        self._sleep = sleep

    @property
    @abstractmethod
    def parser(self) -> ResultParser:
        """レスポンスを OrganicResult に変換するパーサ."""

    @abstractmethod
    def _fetch(self, keyword: Keyword, api_key: str) -> dict:
        """検索リクエストを送り、JSON レスポンスを返す."""

    @abstractmethod
    def _results_payload(self, data: dict) -> Any:
        """パーサに渡す部分を取り出す."""

    @abstractmethod
    def _search_volume(self, data: dict) -> int | None:
        """レスポンスの総ヒット件数."""

    # --- 公開 API ---

    def check_ranking(self, keyword: Keyword) -> RankingResult:
        """1 キーワードの順位を取得する.

        Raises:
            ConfigurationError: API キー未設定
            ProviderError: プロバイダ側のエラー。圏外 (found=False) とは区別される。
        """
        data = self._fetch(keyword, self._api_key())
        results = self.parser.parse(self._results_payload(data))
        match = find_match(results, keyword.domain.domain)

        position = match.position if match else None
        status = f"{position}位" if position else "圏外"
        logger.info(
            "[%s] keyword=%s, domain=%s, device=%s → %s",
            self.name, keyword.keyword, keyword.domain.domain, keyword.device_type, status,
        )
        return RankingResult(
            keyword_id=keyword.id,
            position=position,
            search_volume=self._search_volume(data),
            found=match is not None,
            domain=keyword.domain.domain,
        )

    def check_many(self, keywords: Sequence[Keyword]) -> list[RankingResult]:
        """複数キーワードを順番に (並列化せず) チェックする.

        リクエスト間に request_interval 秒待機する。
        単体で使った場合は最初のエラーをそのまま送出し、残りは処理しない。
        部分失敗を許容したい呼び出し元 (スケジューラ) 側で例外を捕捉すること。
        """
        results: list[RankingResult] = []
        for i, keyword in enumerate(keywords):
            results.append(self.check_ranking(keyword))
            if i < len(keywords) - 1:
                self._sleep(self.request_interval)
        return results

    def get_organic_results(self, keyword: Keyword) -> list[OrganicResult]:
        """SERP プレビュー用に自然検索結果をすべて返す."""
        data = self._fetch(keyword, self._api_key())
        return self.parser.parse(self._results_payload(data))

    # --- 内部処理 ---

    def _api_key(self) -> str:
        """システム設定の API キー。未登録なら環境変数を使う."""
        key = None
        try:
            key = self._get_setting(self.setting_key)
        except Exception as e:
            logger.warning("%s の API キーを DB から取得できません。環境変数を使用: %s", self.name, e)
        key = key or self.env_api_key
        if not key:
            raise ConfigurationError(f"{self.setting_key.upper()} is not configured")
        return key

    def _request(self, method: str, url: str, **kwargs) -> dict:
        """HTTP リクエストを送り、エラーを ProviderError に揃える."""
        try:
            resp = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise ProviderError(self.label, str(e)) from e

        if not resp.ok:
            raise ProviderError(self.label, resp.text, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(self.label, f"invalid JSON response: {e}") from e

        if not isinstance(data, dict):
            raise ProviderError(self.label, f"unexpected response type: {type(data).__name__}")
        if data.get("error"):
            raise ProviderError(self.label, str(data["error"]))
        return data


class SerperProvider(RankingProvider):
    """Serper.dev 検索 API."""

    name = PROVIDER_SERPER
    label = "Serper"
    setting_key = SETTING_SERPER_API_KEY
    env_api_key = SERPER_API_KEY
    request_interval = SERPER_REQUEST_INTERVAL

    _parser = SerperResultParser()

    @property
    def parser(self) -> ResultParser:
        return self._parser

    def _fetch(self, keyword: Keyword, api_key: str) -> dict:
        body: dict[str, Any] = {
            "q": keyword.keyword,
            "num": RESULT_COUNT,
            "gl": keyword.target_location.lower(),
            "hl": SEARCH_LANGUAGE,
        }
        if keyword.device_type == "mobile":
            body["device"] = "mobile"

        return self._request(
            "POST",
            SERPER_API_URL,
            headers={"X-API-KEY": api_key, "Content-Type": "application/json"},
            json=body,
        )

    def _results_payload(self, data: dict) -> Any:
        return data

    def _search_volume(self, data: dict) -> int | None:
        info = data.get("searchInformation") or {}
        return _parse_count(info.get("totalResults"))


class ScrapingRobotProvider(RankingProvider):
    """ScrapingRobot GoogleScraper モジュール."""

    name = PROVIDER_SCRAPINGROBOT
    label = "ScrapingRobot"
    setting_key = SETTING_SCRAPINGROBOT_API_KEY
    env_api_key = SCRAPINGROBOT_API_KEY
    request_interval = SCRAPINGROBOT_REQUEST_INTERVAL

    _parser = ScrapingRobotResultParser()

    @property
    def parser(self) -> ResultParser:
        return self._parser

    def _fetch(self, keyword: Keyword, api_key: str) -> dict:
        params = {
            "token": api_key,
            "url": GOOGLE_SEARCH_URL_TEMPLATE.format(
                keyword=quote(keyword.keyword, safe=""), num=RESULT_COUNT,
            ),
            "module": "GoogleScraper",
            "json": "1",
            "country": keyword.target_location.upper(),
        }
        if keyword.device_type == "mobile":
            params["mobile"] = "1"

        return self._request(
            "GET",
            SCRAPINGROBOT_API_URL,
            headers={"Accept": "application/json"},
            params=params,
        )

    def _results_payload(self, data: dict) -> Any:
        return data.get("result")

    def _search_volume(self, data: dict) -> int | None:
        result = data.get("result")
        if not isinstance(result, dict):
            return None
        snake = result.get("search_information") or {}
        camel = result.get("searchInformation") or {}
        return _parse_count(snake.get("total_results") or camel.get("totalResults"))


_PROVIDER_CLASSES: dict[str, type[RankingProvider]] = {
    PROVIDER_SERPER: SerperProvider,
    PROVIDER_SCRAPINGROBOT: ScrapingRobotProvider,
}


def create_provider(name: str, get_setting: SettingGetter, **kwargs) -> RankingProvider:
    """プロバイダ ID から実装を生成する."""
    cls = _PROVIDER_CLASSES.get(name)
    if cls is None:
        raise ConfigurationError(f"Unknown search engine provider: {name}")
    return cls(get_setting, **kwargs)


def _parse_count(value: Any) -> int | None:
    """"1,230,000" のようなカンマ区切りも数値にする."""
    if value is None or value == "":
        return None
    try:
        return int(str(value).replace(",", ""))
    except ValueError:
        return None
