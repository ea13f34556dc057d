"""匿名インスタント検索の IP 単位レート制限."""

from __future__ import annotations

import logging
from collections.abc import Callable

from rank_tracker import db
from rank_tracker.config import ANONYMOUS_LOOKUP_LIMIT
from rank_tracker.models import LimitDecision

logger = logging.getLogger(__name__)


class IpRateLimiter:
    """IP ごとのリクエスト回数で匿名検索を制限する.

    カウンタの加算は DB 側で原子的に行う (db.increment_ip_limit)。
    上限超過は想定内の制御なので例外にはせず、判定結果で返す。
    """

    def __init__(
        self,
        increment: Callable[[str], int] = db.increment_ip_limit,
        threshold: int = ANONYMOUS_LOOKUP_LIMIT,
    ):
        self._increment = increment
        self.threshold = threshold

    def check(self, ip: str) -> LimitDecision:
        count = self._increment(ip)
        allowed = count <= self.threshold
        if not allowed:
            logger.info("匿名検索の上限超過: ip=%s, count=%d", ip, count)
        return LimitDecision(
            allowed=allowed,
            count=count,
            remaining=max(self.threshold - count, 0),
        )
