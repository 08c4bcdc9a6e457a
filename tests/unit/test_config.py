"""Unit tests for settings."""

from lounge_remote.config import DEFAULT_BASE_URL, LoungeSettings


class TestDefaults:
    def test_defaults(self):
        settings = LoungeSettings()
        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.request_timeout == 10.0
        assert settings.long_poll_timeout == 300.0
        assert settings.event_buffer_capacity == 1000
        assert settings.token_refresh_margin == 300.0
        assert settings.max_sessions is None
        assert settings.session_ttl is None


class TestFromEnv:
    """LOUNGE_* variables override defaults."""

    def test_overrides(self):
        settings = LoungeSettings.from_env(
            {
                "LOUNGE_BASE_URL": "http://localhost:9000/api/lounge",
                "LOUNGE_DEVICE_NAME": "Kitchen Remote",
                "LOUNGE_REQUEST_TIMEOUT": "2.5",
                "LOUNGE_EVENT_BUFFER_CAPACITY": "50",
                "LOUNGE_MAX_SESSIONS": "10",
                "LOUNGE_SESSION_TTL": "3600",
            }
        )
        assert settings.base_url == "http://localhost:9000/api/lounge"
        assert settings.device_name == "Kitchen Remote"
        assert settings.request_timeout == 2.5
        assert settings.event_buffer_capacity == 50
        assert settings.max_sessions == 10
        assert settings.session_ttl == 3600.0

    def test_invalid_value_keeps_default(self, caplog):
        settings = LoungeSettings.from_env({"LOUNGE_REQUEST_TIMEOUT": "soon"})
        assert settings.request_timeout == 10.0
        assert "LOUNGE_REQUEST_TIMEOUT" in caplog.text

    def test_empty_optional_disables_policy(self):
        settings = LoungeSettings.from_env({"LOUNGE_MAX_SESSIONS": ""})
        assert settings.max_sessions is None

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("LOUNGE_LONG_POLL_TIMEOUT", "60")
        assert LoungeSettings.from_env().long_poll_timeout == 60.0
