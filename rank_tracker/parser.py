"""検索結果パースモジュール.

プロバイダのレスポンスから自然検索結果のリストを取り出す。

取得戦略 (HTML の場合):
  1. div.g 形式のリザルトカード (主戦略)
  2. div.MjjYud 形式のリザルトカード (フォールバック)

Google のマークアップ変更でセレクタが外れるのは想定内の運用コスト。
その場合は空リストになり、圏外として扱われる。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from rank_tracker.errors import ResultParseError
from rank_tracker.hostname import result_hostname
from rank_tracker.models import OrganicResult

logger = logging.getLogger(__name__)

PRIMARY_SELECTOR = ".g"
FALLBACK_SELECTOR = ".MjjYud"
SNIPPET_SELECTOR = ".VwiC3b, .IsZvec, .BmP5tf"

# 検索エンジン自身のドメイン. ここへのリンクは結果として扱わない
SEARCH_ENGINE_DOMAIN = "google"


class ResultParser(ABC):
    """プロバイダのレスポンス -> OrganicResult リスト."""

    @abstractmethod
    def parse(self, payload: Any) -> list[OrganicResult]:
        """payload を解釈する.

        任意フィールドの欠落では例外を出さない。
        トップレベルが解釈不能な場合のみ ResultParseError。
        """


class SerperResultParser(ResultParser):
    """Serper.dev の JSON (organic 配列)."""

    def parse(self, payload: Any) -> list[OrganicResult]:
        if not isinstance(payload, dict):
            raise ResultParseError(
                f"Serper のレスポンスが object ではありません: {type(payload).__name__}"
            )
        return parse_structured(payload.get("organic"))


class ScrapingRobotResultParser(ResultParser):
    """ScrapingRobot の result フィールド (JSON object または HTML 文字列)."""

    def parse(self, payload: Any) -> list[OrganicResult]:
        if payload is None:
            logger.warning("ScrapingRobot のレスポンスに result がありません")
            return []
        if isinstance(payload, str):
            return parse_serp_html(payload)
        if isinstance(payload, dict):
            items = payload.get("organic_results") or payload.get("organicResults")
            return parse_structured(items)
        raise ResultParseError(
            f"ScrapingRobot の result が解釈できません: {type(payload).__name__}"
        )


def parse_structured(items: Any) -> list[OrganicResult]:
    """構造化 JSON の結果配列を変換する. 順位はプロバイダの値をそのまま使う."""
    if items is None:
        return []
    if not isinstance(items, list):
        logger.warning("自然検索結果が配列ではありません: %s", type(items).__name__)
        return []

    results: list[OrganicResult] = []
    for i, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            continue
        link = item.get("link") or item.get("url") or ""
        results.append(OrganicResult(
            position=_to_int(item.get("position")) or i,
            title=item.get("title") or "",
            link=link,
            snippet=item.get("snippet") or item.get("description") or None,
        ))
    return results


def parse_serp_html(html: str) -> list[OrganicResult]:
    """検索結果 HTML から自然検索結果を抽出する.

    主戦略で 0 件の場合のみフォールバックを使う。
    """
    soup = BeautifulSoup(html, "html.parser")
    results = parse_primary(soup)
    if results:
        return results

    logger.warning("主セレクタ (%s) で結果なし。%s にフォールバック", PRIMARY_SELECTOR, FALLBACK_SELECTOR)
    results = parse_fallback(soup)
    if not results:
        logger.warning("検索結果 HTML のパースに失敗しました")
    return results


def parse_primary(soup: BeautifulSoup) -> list[OrganicResult]:
    return _parse_cards(soup.select(PRIMARY_SELECTOR))


def parse_fallback(soup: BeautifulSoup) -> list[OrganicResult]:
    return _parse_cards(soup.select(FALLBACK_SELECTOR))


def _parse_cards(cards: list[Tag]) -> list[OrganicResult]:
    results: list[OrganicResult] = []
    seen_links: set[str] = set()

    for card in cards:
        extracted = _extract_card(card)
        if extracted is None:
            continue
        title, link, snippet = extracted
        # カードが入れ子になっている場合の重複
        if link in seen_links:
            continue
        seen_links.add(link)
        results.append(OrganicResult(
            position=len(results) + 1,
            title=title,
            link=link,
            snippet=snippet,
        ))

    return results


def _extract_card(card: Tag) -> tuple[str, str, str | None] | None:
    """リザルトカードから (title, link, snippet) を取り出す."""
    heading = card.find("h3")
    if heading is None:
        return None
    title = heading.get_text(" ", strip=True)
    if not title:
        return None

    link = _pick_link(card)
    if link is None:
        return None

    snippet_el = card.select_one(SNIPPET_SELECTOR)
    snippet = snippet_el.get_text(" ", strip=True) if snippet_el else ""
    return title, link, snippet or None


def _pick_link(card: Tag) -> str | None:
    """見出しを含むアンカーを優先し、無ければ最初の外部リンクを返す."""
    anchors = card.find_all("a", href=True)
    with_heading = [a for a in anchors if a.find("h3") is not None]
    ordered = with_heading + [a for a in anchors if a.find("h3") is None]

    for a in ordered:
        href = _unwrap_redirect(a["href"])
        if href.startswith("http") and not _is_search_engine_link(href):
            return href
    return None


def _unwrap_redirect(href: str) -> str:
    """/url?q=<target> 形式のリダイレクトリンクを展開する.

    相対形式 (/url?q=...) と絶対形式 (https://www.google.com/url?q=...) の両方。
    """
    parsed = urlparse(href)
    if parsed.path != "/url":
        return href
    if parsed.netloc and not _is_search_engine_link(href):
        return href
    params = parse_qs(parsed.query)
    for key in ("q", "url"):
        if params.get(key):
            return params[key][0]
    return href


def _is_search_engine_link(url: str) -> bool:
    """google.com, www.google.co.jp, maps.google.com.sa など検索エンジン自身のホスト."""
    host = result_hostname(url)
    if not host:
        return False
    labels = host.split(".")
    if SEARCH_ENGINE_DOMAIN not in labels:
        return False
    # google の後ろは国別 TLD 部分 (com, co.jp, com.sa) だけ
    suffix = labels[labels.index(SEARCH_ENGINE_DOMAIN) + 1:]
    return 1 <= len(suffix) <= 2 and all(len(label) <= 3 for label in suffix)


def _to_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
