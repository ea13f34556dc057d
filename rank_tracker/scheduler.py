"""順位チェックの定期実行.

処理フロー (1 回分):
  1. DB からキーワード・ドメインとも有効な組み合わせを取得
  2. 固定サイズのバッチに分割
  3. バッチごとにプロバイダで順位チェック (バッチ間は待機)
  4. キーワードごとに前回順位を読み、順位レコードを追記し、差分を通知

バッチ単位の失敗はログに残して次のバッチへ進む。
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from rank_tracker import db
from rank_tracker.config import (
    MANUAL_BATCH_DELAY,
    MANUAL_BATCH_SIZE,
    SCHEDULED_BATCH_DELAY,
    SCHEDULED_BATCH_SIZE,
    SCHEDULER_INTERVAL_HOURS,
)
from rank_tracker.models import Keyword, NotificationEvent, RunSummary
from rank_tracker.notifications import record_transition
from rank_tracker.orchestrator import RankingOrchestrator

logger = logging.getLogger(__name__)

JOB_ID = "ranking_check"


def record_check(
    store, keyword: Keyword, position: int | None, user_id: str | None = None
) -> NotificationEvent | None:
    """チェック結果 1 件を保存し、前回との差分を通知する.

    前回順位の読み出しは必ず今回の書き込みより前に行う。
    """
    previous = store.get_latest_ranking(keyword.id)
    previous_position = previous.position if previous else None

    store.create_ranking(keyword.id, position)
    status = f"{position}位" if position is not None else "圏外 (上位100件に無し)"
    logger.info("順位保存: keyword_id=%s → %s", keyword.id, status)

    return record_transition(store, keyword, previous_position, position, user_id=user_id)


def _unique(keywords: Sequence[Keyword]) -> list[Keyword]:
    seen: set[str] = set()
    result = []
    for k in keywords:
        if k.id not in seen:
            seen.add(k.id)
            result.append(k)
    return result


class RankingScheduler:
    """全キーワードの順位チェックを一定間隔で実行する.

    実行中フラグはロックで持ち、実行中に再度トリガーされても
    待たずに何もしない (キューに積まない)。
    """

    def __init__(
        self,
        orchestrator: RankingOrchestrator,
        store=db,
        interval_hours: float = SCHEDULER_INTERVAL_HOURS,
        batch_size: int = SCHEDULED_BATCH_SIZE,
        batch_delay: float = SCHEDULED_BATCH_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        scheduler: BackgroundScheduler | None = None,
    ):
        self._orchestrator = orchestrator
        self._store = store
        self.interval_hours = interval_hours
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._job = None
        self._run_lock = threading.Lock()

    # --- ライフサイクル ---

    def start(self) -> None:
        """即時に 1 回実行し、以後 interval_hours ごとに実行する."""
        if self._job is not None:
            logger.info("順位スケジューラは起動済みです")
            return

        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(timezone=timezone.utc)

        logger.info("順位スケジューラ開始 (%s 時間ごと)", self.interval_hours)
        self._job = self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(hours=self.interval_hours),
            id=JOB_ID,
            name="keyword ranking check",
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()

    def stop(self) -> None:
        """以後の実行を止める. 実行中の処理は中断せず最後まで走らせる."""
        if self._job is None:
            return
        self._job.remove()
        self._job = None
        if self._owns_scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info("順位スケジューラ停止")

    def status(self) -> dict:
        return {
            "is_running": self._job is not None,
            "is_checking": self._run_lock.locked(),
        }

    # --- 実行 ---

    def run_once(self) -> RunSummary:
        """有効な全キーワードの順位をチェックする."""
        if not self._run_lock.acquire(blocking=False):
            logger.warning("順位チェック実行中のためスキップします")
            return RunSummary(total=0, skipped=True)

        try:
            logger.info("=== 自動順位チェック 開始 ===")
            start_time = time.time()

            keywords = _unique(self._store.get_active_keywords_with_domain())
            if not keywords:
                logger.info("チェック対象のキーワードがありません")
                return RunSummary(total=0)

            logger.info("チェック対象キーワード: %d 件", len(keywords))
            summary = self.process_keywords(keywords, self.batch_size, self.batch_delay)

            elapsed = time.time() - start_time
            logger.info("=== 自動順位チェック 完了 ===")
            logger.info(
                "保存: %d/%d 件, 失敗バッチ: %d, 通知: %d 件, 所要時間: %.1f 秒",
                summary.checked, summary.total, summary.failed_batches,
                summary.notifications, elapsed,
            )
            return summary
        finally:
            self._run_lock.release()

    def refresh_user_keywords(self, user_id: str) -> RunSummary:
        """ユーザー操作による一括更新 (バッチ 5 件・間隔 1 秒)."""
        keywords = _unique(self._store.get_user_active_keywords_with_domain(user_id))
        if not keywords:
            return RunSummary(total=0)
        logger.info("手動一括更新: user_id=%s, %d 件", user_id, len(keywords))
        return self.process_keywords(keywords, MANUAL_BATCH_SIZE, MANUAL_BATCH_DELAY, user_id=user_id)

    def process_keywords(
        self,
        keywords: Sequence[Keyword],
        batch_size: int,
        batch_delay: float,
        user_id: str | None = None,
    ) -> RunSummary:
        """バッチに分割して順番にチェックし、結果を保存する."""
        summary = RunSummary(total=len(keywords))
        batches = [keywords[i:i + batch_size] for i in range(0, len(keywords), batch_size)]

        for n, batch in enumerate(batches, start=1):
            try:
                results = self._orchestrator.check_multiple_keyword_rankings(batch)
                pending = {k.id: k for k in batch}
                for result in results:
                    # 1 実行 × 1 キーワードにつき 1 レコード
                    keyword = pending.pop(result.keyword_id, None)
                    if keyword is None:
                        continue
                    if record_check(self._store, keyword, result.position, user_id=user_id):
                        summary.notifications += 1
                    summary.checked += 1
            except Exception:
                summary.failed_batches += 1
                logger.exception("バッチ %d/%d の順位チェックに失敗しました", n, len(batches))

            if n < len(batches):
                self._sleep(batch_delay)

        return summary
