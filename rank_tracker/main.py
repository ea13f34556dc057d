"""検索順位取得 — メインエントリーポイント.

  rank-tracker run    有効な全キーワードを 1 回チェックして終了 (cron 向け)
  rank-tracker serve  起動直後に 1 回、以後 SCHEDULER_INTERVAL_HOURS ごとにチェック
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from datetime import datetime

from rank_tracker.config import LOG_DIR, SCHEDULER_INTERVAL_HOURS
from rank_tracker.orchestrator import RankingOrchestrator
from rank_tracker.scheduler import RankingScheduler


def setup_logging() -> None:
    """ロギングの初期設定."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / f"rank_tracker_{datetime.now().strftime('%Y%m%d')}.log"
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def run() -> None:
    """1 回分のチェック."""
    scheduler = RankingScheduler(RankingOrchestrator())
    scheduler.run_once()


def serve(interval_hours: float = SCHEDULER_INTERVAL_HOURS) -> None:
    """定期実行. Ctrl+C で停止する."""
    logger = logging.getLogger(__name__)
    scheduler = RankingScheduler(RankingOrchestrator(), interval_hours=interval_hours)
    scheduler.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("停止要求を受け付けました")
    finally:
        scheduler.stop()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="rank-tracker", description="検索順位の定期取得")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="1 回だけチェックして終了")
    serve_parser = sub.add_parser("serve", help="定期実行")
    serve_parser.add_argument("--interval-hours", type=float, default=SCHEDULER_INTERVAL_HOURS)
    args = parser.parse_args(argv)

    setup_logging()
    if args.command == "serve":
        serve(args.interval_hours)
    else:
        run()


if __name__ == "__main__":
    main()
