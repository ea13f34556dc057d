"""順位チェックの振り分け.

操作のたびにシステム設定からプロバイダを読み直すため、
管理画面でプロバイダを切り替えるとプロセスを再起動せずに反映される。
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from rank_tracker import db
from rank_tracker.config import DEFAULT_LOCATION, DEFAULT_PROVIDER, RESULT_COUNT, SETTING_PROVIDER
from rank_tracker.hostname import find_match
from rank_tracker.models import (
    Domain,
    InstantLookupResult,
    Keyword,
    OrganicResult,
    RankingResult,
)
from rank_tracker.providers import RankingProvider, create_provider

logger = logging.getLogger(__name__)

INSTANT_LOOKUP_ID = "instant-lookup"


class RankingOrchestrator:
    """設定中のプロバイダへ順位チェックを委譲する."""

    def __init__(
        self,
        get_setting: Callable[[str], "str | None"] = db.get_system_setting,
        provider_factory: Callable[..., RankingProvider] = create_provider,
    ):
        self._get_setting = get_setting
        self._provider_factory = provider_factory
        self._providers: dict[str, RankingProvider] = {}

    def active_provider(self) -> RankingProvider:
        """現在設定されているプロバイダ. 生成済みの実装は使い回す."""
        name = None
        try:
            name = self._get_setting(SETTING_PROVIDER)
        except Exception as e:
            logger.warning("検索プロバイダ設定を取得できません。%s を使用: %s", DEFAULT_PROVIDER, e)
        name = name or DEFAULT_PROVIDER

        provider = self._providers.get(name)
        if provider is None:
            provider = self._provider_factory(name, self._get_setting)
            self._providers[name] = provider
        return provider

    def check_keyword_ranking(self, keyword: Keyword) -> RankingResult:
        return self.active_provider().check_ranking(keyword)

    def check_multiple_keyword_rankings(self, keywords: Sequence[Keyword]) -> list[RankingResult]:
        return self.active_provider().check_many(keywords)

    def get_search_results(self, keyword: Keyword) -> list[OrganicResult]:
        return self.active_provider().get_organic_results(keyword)

    def instant_keyword_lookup(
        self,
        keyword_text: str,
        domain_url: str,
        location: str = DEFAULT_LOCATION,
        device: str = "desktop",
    ) -> InstantLookupResult:
        """保存しない 1 回限りの順位チェック.

        順位だけでは URL が分からないため、見つかった場合は
        自然検索結果をもう一度取得して一致した URL を特定する。
        """
        provider = self.active_provider()
        keyword = Keyword(
            id=INSTANT_LOOKUP_ID,
            keyword=keyword_text,
            user_id="temp",
            domain=Domain(id="temp", domain=domain_url, user_id="temp"),
            target_location=location,
            device_type="mobile" if device == "mobile" else "desktop",
        )

        ranking = provider.check_ranking(keyword)

        matched_url = None
        if ranking.found:
            match = find_match(provider.get_organic_results(keyword), domain_url)
            matched_url = match.link if match else None

        return InstantLookupResult(
            position=ranking.position,
            found=ranking.found,
            matched_url=matched_url,
            total_results=RESULT_COUNT,
            search_volume=ranking.search_volume,
        )
