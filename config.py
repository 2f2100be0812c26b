import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        session_db_url: str,
        api_base_url: str,
        http_timeout_secs: float,
        billing_timezone: str,
        token_secret: str,
        token_max_age_secs: int,
        log_level: str,
        smtp_host: Optional[str],
        smtp_port: Optional[int],
        smtp_user: Optional[str],
        smtp_password: Optional[str],
        smtp_from: Optional[str],
        smtp_secure: bool,
    ) -> None:
        self.database_url = database_url
        self.session_db_url = session_db_url
        self.api_base_url = api_base_url
        self.http_timeout_secs = http_timeout_secs
        self.billing_timezone = billing_timezone
        self.token_secret = token_secret
        self.token_max_age_secs = token_max_age_secs
        self.log_level = log_level
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_from = smtp_from
        self.smtp_secure = smtp_secure


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    database_url = os.getenv(
        "LEDGER_DATABASE_URL", f"sqlite:///{data_dir / 'ledger.db'}"
    )
    session_db_url = os.getenv(
        "LEDGER_SESSION_DB_URL", f"sqlite:///{data_dir / 'session.db'}"
    )
    api_base_url = os.getenv("LEDGER_API_BASE_URL", "http://localhost:3001/api")
    http_timeout_secs = float(os.getenv("LEDGER_HTTP_TIMEOUT_SECS", "30"))
    billing_timezone = os.getenv("LEDGER_BILLING_TIMEZONE", "UTC")
    token_secret = os.getenv(
        "LEDGER_TOKEN_SECRET",
        "4c1d0e2b9f3a47d8a6e5b1c0f9d8e7a6b5c4d3e2f1a0b9c8d7e6f5a4b3c2d1e0",
    )
    token_max_age_secs = int(os.getenv("LEDGER_TOKEN_MAX_AGE_SECS", str(7 * 86400)))
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO")
    smtp_port_raw = os.getenv("LEDGER_SMTP_PORT")
    smtp_port = int(smtp_port_raw) if smtp_port_raw else None
    smtp_user = os.getenv("LEDGER_SMTP_USER") or None
    return Settings(
        database_url=database_url,
        session_db_url=session_db_url,
        api_base_url=api_base_url,
        http_timeout_secs=http_timeout_secs,
        billing_timezone=billing_timezone,
        token_secret=token_secret,
        token_max_age_secs=token_max_age_secs,
        log_level=log_level,
        smtp_host=os.getenv("LEDGER_SMTP_HOST") or None,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_password=os.getenv("LEDGER_SMTP_PASSWORD") or None,
        smtp_from=os.getenv("LEDGER_SMTP_FROM") or smtp_user,
        smtp_secure=os.getenv("LEDGER_SMTP_SECURE", "").lower() == "true" or smtp_port == 465,
    )
