"""Supabase データベース操作モジュール.

全テーブルは rank_tracker スキーマに配置 (sql/schema.sql)。
Supabase client のスキーマ指定は .schema() で行う。

ranking は追記のみ。更新・個別削除はしない。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache

from supabase import Client, create_client

from rank_tracker.config import DB_SCHEMA, IP_LIMIT_WINDOW_HOURS, SUPABASE_SECRET_KEY, SUPABASE_URL
from rank_tracker.errors import ConfigurationError
from rank_tracker.models import Domain, Keyword, RankingRecord

logger = logging.getLogger(__name__)

_KEYWORD_COLUMNS = (
    "id, keyword, user_id, target_location, device_type, is_active, tags, "
    "domains:domain_id!inner(id, domain, user_id, is_active)"
)


@lru_cache(maxsize=1)
def _client() -> Client:
    if not SUPABASE_URL or not SUPABASE_SECRET_KEY:
        raise ConfigurationError("SUPABASE_URL / SUPABASE_SECRET_KEY is not configured")
    return create_client(SUPABASE_URL, SUPABASE_SECRET_KEY)


def _table(name: str):
    """rank_tracker スキーマのテーブルを参照する."""
    return _client().schema(DB_SCHEMA).table(name)


def _rpc(fn: str, params: dict):
    """rank_tracker スキーマの関数を呼び出す."""
    return _client().schema(DB_SCHEMA).rpc(fn, params)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_keyword(row: dict) -> Keyword:
    """keywords ⋈ domains の行を Keyword に変換する."""
    domain = row.get("domains", {}) or {}
    return Keyword(
        id=row["id"],
        keyword=row["keyword"],
        user_id=row["user_id"],
        domain=Domain(
            id=domain.get("id", ""),
            domain=domain.get("domain", ""),
            user_id=domain.get("user_id", row["user_id"]),
            is_active=domain.get("is_active", True),
        ),
        target_location=row.get("target_location") or "sa",
        device_type=row.get("device_type") or "desktop",
        is_active=row.get("is_active", True),
        tags=row.get("tags") or [],
    )


def _to_ranking(row: dict) -> RankingRecord:
    return RankingRecord(
        id=row.get("id"),
        keyword_id=row["keyword_id"],
        position=row.get("position"),
        checked_at=row["checked_at"],
    )


# --- システム設定 ---

def get_system_setting(key: str) -> str | None:
    """system_settings から値を取得する. 未登録なら None."""
    resp = _table("system_settings").select("value").eq("key", key).limit(1).execute()
    if not resp.data:
        return None
    return resp.data[0].get("value") or None


# --- キーワード ---

def get_active_keywords_with_domain() -> list[Keyword]:
    """キーワード・ドメインとも有効な組み合わせを全件取得する."""
    resp = (
        _table("keywords")
        .select(_KEYWORD_COLUMNS)
        .eq("is_active", True)
        .eq("domains.is_active", True)
        .execute()
    )
    return [_to_keyword(row) for row in resp.data]


def get_user_active_keywords_with_domain(user_id: str) -> list[Keyword]:
    """指定ユーザーの有効なキーワードを取得する (手動一括更新用)."""
    resp = (
        _table("keywords")
        .select(_KEYWORD_COLUMNS)
        .eq("user_id", user_id)
        .eq("is_active", True)
        .execute()
    )
    return [_to_keyword(row) for row in resp.data]


def get_keyword_with_domain(keyword_id: str) -> Keyword | None:
    resp = _table("keywords").select(_KEYWORD_COLUMNS).eq("id", keyword_id).limit(1).execute()
    if not resp.data:
        return None
    return _to_keyword(resp.data[0])


# --- 順位履歴 ---

def create_ranking(keyword_id: str, position: int | None, checked_at: str | None = None) -> RankingRecord:
    """順位レコードを 1 件追記する. position=None (圏外) も記録する."""
    record = {
        "keyword_id": keyword_id,
        "position": position,
        "checked_at": checked_at or _now_iso(),
    }
    resp = _table("keyword_rankings").insert(record).execute()
    row = resp.data[0] if resp.data else record
    return _to_ranking(row)


def get_latest_ranking(keyword_id: str) -> RankingRecord | None:
    """checked_at が最新の順位レコード."""
    resp = (
        _table("keyword_rankings")
        .select("id, keyword_id, position, checked_at")
        .eq("keyword_id", keyword_id)
        .order("checked_at", desc=True)
        .limit(1)
        .execute()
    )
    if not resp.data:
        return None
    return _to_ranking(resp.data[0])


# --- 通知 ---

def create_notification(
    user_id: str,
    keyword_id: str,
    type: str,
    title: str,
    message: str,
    old_position: int | None,
    new_position: int | None,
) -> dict:
    """通知を作成する. 常に未読で作られる."""
    record = {
        "user_id": user_id,
        "keyword_id": keyword_id,
        "type": type,
        "title": title,
        "message": message,
        "old_position": old_position,
        "new_position": new_position,
        "is_read": False,
    }
    resp = _table("notifications").insert(record).execute()
    return resp.data[0] if resp.data else record


# --- 匿名検索の IP 制限 ---

def increment_ip_limit(ip: str) -> int:
    """IP のカウンタを原子的に +1 し、更新後の値を返す.

    increment_ip_limit 関数 (upsert) で 1 文で処理するため、
    同一 IP の同時リクエストでも取りこぼさない。
    窓のリセット (window_start から p_window_hours 経過で 1 に戻す) も
    同じ SQL 内で行う (sql/schema.sql)。
    """
    resp = _rpc("increment_ip_limit", {"p_ip": ip, "p_window_hours": IP_LIMIT_WINDOW_HOURS}).execute()
    data = resp.data
    if isinstance(data, list):
        data = data[0] if data else 0
    if isinstance(data, dict):
        data = data.get("count", 0)
    return int(data)
