import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        token_max_age_secs: int,
        client_url: str,
        finnhub_api_key: str,
        finnhub_timeout_secs: float,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        mail_from: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.token_max_age_secs = token_max_age_secs
        self.client_url = client_url
        self.finnhub_api_key = finnhub_api_key
        self.finnhub_timeout_secs = finnhub_timeout_secs
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.mail_from = mail_from


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "fintrack.db"
    database_url = os.getenv("FINTRACK_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINTRACK_TIMEZONE", "Europe/Berlin")
    secret_key = os.getenv(
        "FINTRACK_SECRET_KEY",
        "4c0e8f1d7b2a95e36d1f0a7c8b3e2d9f6a5c4b3e2d1f0a9b8c7d6e5f4a3b2c1d",
    )
    token_max_age_secs = int(os.getenv("FINTRACK_TOKEN_MAX_AGE_SECS", "3600"))
    client_url = os.getenv("FINTRACK_CLIENT_URL", "http://localhost:5173")
    finnhub_api_key = os.getenv("FINTRACK_FINNHUB_API_KEY", "")
    finnhub_timeout_secs = float(os.getenv("FINTRACK_FINNHUB_TIMEOUT_SECS", "5"))
    smtp_host = os.getenv("FINTRACK_SMTP_HOST", "")
    smtp_port = int(os.getenv("FINTRACK_SMTP_PORT", "587"))
    smtp_user = os.getenv("FINTRACK_SMTP_USER", "")
    smtp_password = os.getenv("FINTRACK_SMTP_PASSWORD", "")
    mail_from = os.getenv("FINTRACK_MAIL_FROM", "no-reply@fintrack.local")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        token_max_age_secs=token_max_age_secs,
        client_url=client_url,
        finnhub_api_key=finnhub_api_key,
        finnhub_timeout_secs=finnhub_timeout_secs,
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_password=smtp_password,
        mail_from=mail_from,
    )
