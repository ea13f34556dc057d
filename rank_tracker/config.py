"""設定モジュール — 環境変数・定数定義."""

import os
from pathlib import Path

from dotenv import load_dotenv

# .env はプロジェクトルートに配置
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# --- Supabase ---
SUPABASE_URL: str = os.environ.get("SUPABASE_URL", "")
SUPABASE_SECRET_KEY: str = os.environ.get("SUPABASE_SECRET_KEY", "")
DB_SCHEMA = "rank_tracker"

# --- 検索プロバイダ ---
PROVIDER_SERPER = "serper"
PROVIDER_SCRAPINGROBOT = "scrapingrobot"
PROVIDERS = [PROVIDER_SERPER, PROVIDER_SCRAPINGROBOT]
DEFAULT_PROVIDER: str = os.environ.get("DEFAULT_PROVIDER", PROVIDER_SCRAPINGROBOT)

SERPER_API_URL = "https://google.serper.dev/search"
SCRAPINGROBOT_API_URL = "https://api.scrapingrobot.com/"
GOOGLE_SEARCH_URL_TEMPLATE = "https://www.google.com/search?q={keyword}&num={num}"

# 環境変数はシステム設定が未登録のときのフォールバック
SERPER_API_KEY: str = os.environ.get("SERPER_API_KEY", "")
SCRAPINGROBOT_API_KEY: str = os.environ.get("SCRAPINGROBOT_API_KEY", "")

# --- システム設定キー (system_settings テーブル) ---
SETTING_PROVIDER = "search_engine_provider"
SETTING_SERPER_API_KEY = "serper_api_key"
SETTING_SCRAPINGROBOT_API_KEY = "scrapingrobot_api_key"

# --- 検索条件 ---
RESULT_COUNT = 100  # 上位 100 件まで確認
SEARCH_LANGUAGE: str = os.environ.get("SEARCH_LANGUAGE", "ar")
DEFAULT_LOCATION = "sa"

# --- リクエスト設定 ---
PROVIDER_REQUEST_TIMEOUT = float(os.environ.get("PROVIDER_REQUEST_TIMEOUT", "30"))  # 秒
SERPER_REQUEST_INTERVAL = 0.5  # 秒
SCRAPINGROBOT_REQUEST_INTERVAL = 1.0  # 秒

# --- スケジューラ ---
SCHEDULER_INTERVAL_HOURS = float(os.environ.get("SCHEDULER_INTERVAL_HOURS", "6"))
SCHEDULED_BATCH_SIZE = int(os.environ.get("SCHEDULED_BATCH_SIZE", "10"))
MANUAL_BATCH_SIZE = int(os.environ.get("MANUAL_BATCH_SIZE", "5"))
SCHEDULED_BATCH_DELAY = float(os.environ.get("SCHEDULED_BATCH_DELAY", "2.0"))  # 秒
MANUAL_BATCH_DELAY = float(os.environ.get("MANUAL_BATCH_DELAY", "1.0"))  # 秒

# --- 匿名インスタント検索 ---
ANONYMOUS_LOOKUP_LIMIT = int(os.environ.get("ANONYMOUS_LOOKUP_LIMIT", "10"))
IP_LIMIT_WINDOW_HOURS = int(os.environ.get("IP_LIMIT_WINDOW_HOURS", "24"))  # 0 = 無期限

# --- ログ ---
LOG_DIR = Path(os.environ.get("LOG_DIR", _PROJECT_ROOT / "logs"))
