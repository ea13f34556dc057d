"""データモデル定義."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class NotificationType(str, Enum):
    """順位変動通知の種別."""

    POSITION_FOUND = "position_found"
    POSITION_LOST = "position_lost"
    POSITION_IMPROVED = "position_improved"
    POSITION_DECLINED = "position_declined"


@dataclass
class Domain:
    """追跡対象ドメイン."""

    id: str  # uuid
    domain: str  # 登録時の URL / ホスト名 (例: https://www.example.com)
    user_id: str  # uuid
    is_active: bool = True


@dataclass
class Keyword:
    """追跡キーワード (ドメイン付き)."""

    id: str  # uuid
    keyword: str
    user_id: str  # uuid
    domain: Domain
    target_location: str  # 国コード (例: sa)
    device_type: str = "desktop"  # "desktop" or "mobile"
    is_active: bool = True
    tags: list[str] = field(default_factory=list)


@dataclass
class OrganicResult:
    """検索結果の自然検索 1 件を表す."""

    position: int  # 1始まり
    title: str
    link: str
    snippet: str | None = None


@dataclass
class RankingResult:
    """プロバイダの順位チェック結果."""

    keyword_id: str
    position: int | None  # None = 上位 100 件に無し
    search_volume: int | None
    found: bool
    domain: str  # 登録時のドメイン文字列


@dataclass
class RankingRecord:
    """順位履歴 1 件 (追記のみ)."""

    keyword_id: str  # uuid
    position: int | None  # None = 圏外
    checked_at: str  # ISO 8601
    id: str | None = None

    @property
    def found(self) -> bool:
        return self.position is not None


@dataclass
class NotificationEvent:
    """差分エンジンが生成する通知内容."""

    type: NotificationType
    title: str
    message: str
    old_position: int | None
    new_position: int | None


@dataclass
class InstantLookupResult:
    """匿名インスタント検索の結果 (DB には保存しない)."""

    position: int | None
    found: bool
    matched_url: str | None
    total_results: int
    search_volume: int | None


@dataclass
class LimitDecision:
    """IP 単位のレート制限判定."""

    allowed: bool
    count: int
    remaining: int


@dataclass
class RunSummary:
    """バッチ実行 1 回分のサマリ."""

    total: int
    checked: int = 0
    failed_batches: int = 0
    notifications: int = 0
    skipped: bool = False  # 実行中のため何もしなかった
