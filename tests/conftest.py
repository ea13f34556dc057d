"""テスト共通のヘルパー."""

from __future__ import annotations

from pathlib import Path

import pytest

from rank_tracker.models import Domain, Keyword, RankingRecord

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


def make_keyword(
    keyword_id: str = "kw-1",
    text: str = "قهوة مختصة",
    domain: str = "https://www.example.com",
    user_id: str = "user-1",
    location: str = "sa",
    device: str = "desktop",
) -> Keyword:
    return Keyword(
        id=keyword_id,
        keyword=text,
        user_id=user_id,
        domain=Domain(id=f"dom-{keyword_id}", domain=domain, user_id=user_id),
        target_location=location,
        device_type=device,
    )


class FakeStore:
    """db モジュールと同じ関数を持つインメモリ実装."""

    def __init__(self, keywords=None):
        self.keywords: list[Keyword] = list(keywords or [])
        self.rankings: list[RankingRecord] = []
        self.notifications: list[dict] = []
        self.calls: list[tuple[str, str]] = []
        self._tick = 0

    def get_active_keywords_with_domain(self):
        return [k for k in self.keywords if k.is_active and k.domain.is_active]

    def get_user_active_keywords_with_domain(self, user_id):
        return [k for k in self.keywords if k.is_active and k.user_id == user_id]

    def get_keyword_with_domain(self, keyword_id):
        return next((k for k in self.keywords if k.id == keyword_id), None)

    def get_latest_ranking(self, keyword_id):
        self.calls.append(("get_latest_ranking", keyword_id))
        records = [r for r in self.rankings if r.keyword_id == keyword_id]
        return max(records, key=lambda r: r.checked_at) if records else None

    def create_ranking(self, keyword_id, position, checked_at=None):
        self.calls.append(("create_ranking", keyword_id))
        self._tick += 1
        record = RankingRecord(
            keyword_id=keyword_id,
            position=position,
            checked_at=checked_at or f"2026-10-18T00:00:00.{self._tick:06d}+00:00",
        )
        self.rankings.append(record)
        return record

    def create_notification(self, **kwargs):
        self.notifications.append(kwargs)
        return kwargs


@pytest.fixture()
def store():
    return FakeStore()
