from quiz_service.config import Settings


def test_defaults(monkeypatch):
    for name in ("DATABASE_URL", "CORS_ORIGINS", "STRICT_BATCH_RESOLUTION", "ENFORCE_SCHEDULE_WINDOW",
                 "SUBMIT_CONFLICT_RETRIES", "NOTIFICATION_SERVICE_URL"):
        monkeypatch.delenv(name, raising=False)
    s = Settings.from_env()
    assert s.database_url == "sqlite:///./quiz_service.db"
    assert s.cors_origins == ["*"]
    assert s.strict_batch_resolution is False
    assert s.enforce_schedule_window is False
    assert s.submit_conflict_retries == 0


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://quiz@db/quiz")
    monkeypatch.setenv("NOTIFICATION_SERVICE_URL", "http://notify:9000/")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.example, http://b.example")
    monkeypatch.setenv("STRICT_BATCH_RESOLUTION", "true")
    monkeypatch.setenv("ENFORCE_SCHEDULE_WINDOW", "1")
    monkeypatch.setenv("SUBMIT_CONFLICT_RETRIES", "2")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    s = Settings.from_env()
    assert s.database_url == "postgresql://quiz@db/quiz"
    assert s.notification_service_url == "http://notify:9000"
    assert s.cors_origins == ["http://a.example", "http://b.example"]
    assert s.strict_batch_resolution is True
    assert s.enforce_schedule_window is True
    assert s.submit_conflict_retries == 2
    assert s.log_level == "DEBUG"
