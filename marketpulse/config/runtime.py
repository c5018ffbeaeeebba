from __future__ import annotations

from dataclasses import dataclass
import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class RuntimeSettings:
    use_real_data: bool = True
    okx_base_url: str = "https://www.okx.com/api/v5"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    exchange_rate_base_url: str = "https://api.exchangerate-api.com/v4"
    http_timeout_seconds: float = 8.0
    ws_connect_timeout_seconds: float = 8.0
    ws_reconnect_delay_seconds: float = 2.0
    ws_max_reconnect_attempts: int = 3
    demo_interval_seconds: float = 3.0
    demo_base_price: float = 50_000.0
    report_host: str = "0.0.0.0"
    report_port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            use_real_data=_env_bool("MARKETPULSE_USE_REAL_DATA", "true"),
            okx_base_url=os.getenv("OKX_BASE_URL", "https://www.okx.com/api/v5"),
            coingecko_base_url=os.getenv("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"),
            exchange_rate_base_url=os.getenv("EXCHANGE_RATE_BASE_URL", "https://api.exchangerate-api.com/v4"),
            http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "8")),
            ws_connect_timeout_seconds=float(os.getenv("WS_CONNECT_TIMEOUT_SECONDS", "8")),
            ws_reconnect_delay_seconds=float(os.getenv("WS_RECONNECT_DELAY_SECONDS", "2")),
            ws_max_reconnect_attempts=int(os.getenv("WS_MAX_RECONNECT_ATTEMPTS", "3")),
            demo_interval_seconds=float(os.getenv("DEMO_INTERVAL_SECONDS", "3")),
            demo_base_price=float(os.getenv("DEMO_BASE_PRICE", "50000")),
            report_host=os.getenv("REPORT_HOST", "0.0.0.0"),
            report_port=int(os.getenv("REPORT_PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        )
