from safescan.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.app_name == "SafeScan"
    assert settings.ai_timeout_seconds == 10.0
    assert settings.ai_explain_timeout_seconds == 20.0
    assert settings.section_window == 1200
    assert settings.max_explain_ingredients == 30


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AI_SERVICE_URL", "http://classifier:9000")
    monkeypatch.setenv("AI_TIMEOUT_SECONDS", "3.5")
    monkeypatch.setenv("CORS_ORIGINS", '["https://app.example"]')

    settings = Settings(_env_file=None)

    assert settings.ai_service_url == "http://classifier:9000"
    assert settings.ai_timeout_seconds == 3.5
    assert settings.cors_origins == ["https://app.example"]
