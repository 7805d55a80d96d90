from roster.config import Settings


def test_settings_env_var_precedence(monkeypatch):
    """Test that environment variables take precedence over .env file."""
    monkeypatch.setenv("API_BASE_URL", "https://school.example.com/api/")
    s = Settings()
    assert s.api_base_url == "https://school.example.com/api"


def test_settings_aliases_env(monkeypatch):
    monkeypatch.setenv("PORT", "8123")
    monkeypatch.setenv("DEBUG", "1")
    monkeypatch.setenv("READ_RETRIES", "5")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    s = Settings()
    assert s.port == 8123
    assert s.debug is True
    assert s.read_retries == 5
    assert s.log_level == "DEBUG"


def test_direct_instantiation_defaults():
    s = Settings()
    assert (s.list_timeout_seconds, s.get_timeout_seconds, s.export_timeout_seconds) == (10.0, 5.0, 30.0)
    assert s.cache_type in ("SimpleCache", "RedisCache")
    assert Settings(read_retries=0).read_retries == 0


def test_setup_logging_writes_to_log_file(tmp_path):
    import logging

    from roster.logs import setup_logging

    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    log_file = tmp_path / "logs" / "roster.log"
    try:
        setup_logging(Settings(log_level="info", log_file=str(log_file)))
        logging.getLogger("roster.test").info("hello")
        logging.getLogger("roster.test").debug("hidden")
        for handler in root.handlers:
            handler.flush()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

    text = log_file.read_text(encoding="utf-8")
    assert "INFO roster.test hello" in text
    assert "hidden" not in text
