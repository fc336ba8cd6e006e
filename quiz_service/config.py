import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


def _parse_origins(raw: str) -> list[str]:
    raw = (raw or "").strip()
    if not raw or raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./quiz_service.db"
    notification_service_url: str = "http://notification-service:8008"
    notification_timeout: float = 5.0
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    # fail create/update on unresolved batch candidates instead of dropping them
    strict_batch_resolution: bool = False
    # deny view/submit outside [scheduled_start, scheduled_end]
    enforce_schedule_window: bool = False
    submit_conflict_retries: int = 0

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url).strip(),
            notification_service_url=os.getenv(
                "NOTIFICATION_SERVICE_URL", cls.notification_service_url
            ).strip().rstrip("/"),
            notification_timeout=float(os.getenv("NOTIFICATION_TIMEOUT", "5.0")),
            cors_origins=_parse_origins(os.getenv("CORS_ORIGINS", "*")),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
            strict_batch_resolution=_env_flag("STRICT_BATCH_RESOLUTION"),
            enforce_schedule_window=_env_flag("ENFORCE_SCHEDULE_WINDOW"),
            submit_conflict_retries=max(0, int(os.getenv("SUBMIT_CONFLICT_RETRIES", "0"))),
        )
