import pytest
from pydantic import ValidationError

from chat_export.settings import Settings

ENV_NAMES = (
    "TIMEOUT_MS", "READY_TIMEOUT_MS", "CONCURRENCY", "FORCE_PLAYWRIGHT",
    "DRY_RUN", "HEADLESS", "WARM_BROWSER", "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    # keep a developer's .env out of the picture
    monkeypatch.chdir(tmp_path)


def test_defaults():
    s = Settings.from_env()

    assert (s.timeout_ms, s.concurrency, s.ready_timeout_ms) == (45000, 1, 8000)
    assert not s.force_render and not s.dry_run and not s.warm_browser
    assert s.headless
    assert s.log_level == "INFO"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("TIMEOUT_MS", "90000")
    monkeypatch.setenv("CONCURRENCY", "3")
    monkeypatch.setenv("FORCE_PLAYWRIGHT", "1")
    monkeypatch.setenv("DRY_RUN", "true")
    monkeypatch.setenv("HEADLESS", "0")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    s = Settings.from_env()

    assert (s.timeout_ms, s.concurrency) == (90000, 3)
    assert s.force_render and s.dry_run
    assert not s.headless
    assert s.log_level == "DEBUG"


def test_dotenv_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("CONCURRENCY=4\nWARM_BROWSER=yes\n", encoding="utf-8")

    s = Settings.from_env()

    assert s.concurrency == 4
    assert s.warm_browser


def test_concurrency_clamped_and_empty_values_ignored(monkeypatch):
    monkeypatch.setenv("CONCURRENCY", "0")
    monkeypatch.setenv("TIMEOUT_MS", "")

    s = Settings.from_env()

    assert s.concurrency == 1
    assert s.timeout_ms == 45000


def test_field_names_work_as_keywords():
    s = Settings(ready_timeout_ms=10, force_render=True)
    assert s.ready_timeout_ms == 10 and s.force_render


def test_invalid_number_is_rejected(monkeypatch):
    monkeypatch.setenv("TIMEOUT_MS", "soon")
    with pytest.raises(ValidationError):
        Settings.from_env()
