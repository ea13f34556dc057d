"""ホスト名照合モジュール.

追跡ドメインと検索結果 URL をホスト名に正規化し、
完全一致またはサブドメイン一致で同一サイトかどうかを判定する。
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import urlparse

from rank_tracker.models import OrganicResult

_SCHEME_PATTERN = re.compile(r"^https?://")


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def normalize_domain(raw: str) -> str:
    """登録ドメイン文字列を比較用のホスト名にする.

    例: "https://www.Example.com/blog" -> "example.com"
    """
    host = _SCHEME_PATTERN.sub("", raw.strip().lower())
    host = _strip_www(host)
    return host.split("/", 1)[0]


def result_hostname(url: str) -> str | None:
    """検索結果 URL からホスト名を取り出す.

    Returns:
        www. を除いた小文字のホスト名。解釈できない URL は None。
    """
    if not url:
        return None
    target = url.strip()
    if "://" not in target:
        target = f"//{target}"
    try:
        host = urlparse(target).hostname
    except ValueError:
        return None
    if not host:
        return None
    return _strip_www(host.lower())


def matches_domain(url: str, domain: str) -> bool:
    """URL が追跡ドメイン (またはそのサブドメイン) に属するか."""
    host = result_hostname(url)
    target = normalize_domain(domain)
    if not host or not target:
        return False
    return host == target or host.endswith(f".{target}")


def find_match(results: Iterable[OrganicResult], domain: str) -> OrganicResult | None:
    """検索結果を順に走査し、最初に一致した結果を返す."""
    for r in results:
        if matches_domain(r.link, domain):
            return r
    return None
