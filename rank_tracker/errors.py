"""例外定義."""

from __future__ import annotations


class RankTrackerError(Exception):
    """順位取得エンジンの基底例外."""


class ConfigurationError(RankTrackerError):
    """API キー未設定・不正なプロバイダ指定など、管理者設定の不備."""


class ProviderError(RankTrackerError):
    """検索プロバイダ側のエラー (HTTP 非 2xx・error フィールド・通信失敗).

    「検索したが圏外」とは区別するため、必ず例外として呼び出し元へ伝える。
    """

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        if status_code is not None:
            text = f"{provider} API error: {status_code} - {message}"
        else:
            text = f"{provider} API error: {message}"
        super().__init__(text)


class ResultParseError(RankTrackerError):
    """レスポンスのトップレベルが解釈できない."""
