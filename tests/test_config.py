import os
import stat

import pytest
from pydantic import ValidationError

from litesso.config import Settings

SECRET = "s" * 40


def test_explicit_secret_kept(tmp_path):
    settings = Settings(jwt_secret=SECRET, state_dir=str(tmp_path))
    assert settings.jwt_secret == SECRET
    assert not (tmp_path / ".jwt_secret").exists()


def test_short_secret_rejected(tmp_path):
    with pytest.raises(ValidationError):
        Settings(jwt_secret="too-short", state_dir=str(tmp_path))


def test_missing_secret_generated_and_persisted(tmp_path):
    first = Settings(state_dir=str(tmp_path))
    second = Settings(state_dir=str(tmp_path))

    secret_file = tmp_path / ".jwt_secret"
    assert secret_file.exists()
    assert stat.S_IMODE(os.stat(secret_file).st_mode) == 0o600
    assert len(first.jwt_secret) >= 32
    assert first.jwt_secret == second.jwt_secret


def test_from_env_reads_named_variables(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("JWT_SECRET", SECRET)
    monkeypatch.setenv("LOGIN_MAX_ATTEMPTS", "7")
    monkeypatch.setenv("SSO_TICKET_TTL_SECONDS", "30")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example.com, https://b.example.com")

    settings = Settings.from_env()

    assert settings.login_max_attempts == 7
    assert settings.sso_ticket_ttl_seconds == 30
    assert settings.cors_allow_origins == ["https://a.example.com", "https://b.example.com"]


def test_dotenv_file_used_when_env_missing(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("JWT_SECRET", SECRET)
    monkeypatch.delenv("SESSION_TTL_SECONDS", raising=False)
    (tmp_path / ".env").write_text("SESSION_TTL_SECONDS=120\n")

    assert Settings.from_env().session_ttl_seconds == 120


def test_defaults():
    settings = Settings(jwt_secret=SECRET)
    assert settings.access_token_ttl_seconds == 7200
    assert settings.refresh_token_ttl_seconds == 604800
    assert settings.session_ttl_seconds == 86400
    assert settings.session_key_prefix_length == 32
    assert settings.login_max_attempts == 5
    assert settings.login_lockout_seconds == 300
    assert settings.sso_ticket_ttl_seconds == 60


def test_settings_are_frozen():
    settings = Settings(jwt_secret=SECRET)
    with pytest.raises(ValidationError):
        settings.login_max_attempts = 10


@pytest.mark.parametrize("field", ["login_max_attempts", "sso_ticket_ttl_seconds"])
def test_nonpositive_limits_rejected(field):
    with pytest.raises(ValidationError):
        Settings(jwt_secret=SECRET, **{field: 0})
