from pathlib import Path

from tablescope.config import DEFAULT_DATA_DIR, load_settings, resolve_data_dir


def test_defaults(monkeypatch):
    for name in ("TABLESCOPE_DATA_DIR", "TABLESCOPE_PAGE_SIZE", "TABLESCOPE_REFRESH_THROTTLE_MS"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.data_dir == DEFAULT_DATA_DIR
    assert settings.page_size == 50
    assert settings.search_page_size == 25
    assert settings.refresh_throttle_ms == 1500
    assert settings.write_debounce_ms == 500
    assert settings.history_limit == 100


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("TABLESCOPE_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TABLESCOPE_PAGE_SIZE", "10")
    settings = load_settings()
    assert settings.data_dir == tmp_path
    assert settings.page_size == 10


def test_invalid_integer_falls_back(monkeypatch, caplog):
    monkeypatch.setenv("TABLESCOPE_HISTORY_LIMIT", "lots")
    assert load_settings().history_limit == 100
    assert "TABLESCOPE_HISTORY_LIMIT" in caplog.text


def test_explicit_data_dir_wins(monkeypatch):
    monkeypatch.setenv("TABLESCOPE_DATA_DIR", "/elsewhere")
    assert resolve_data_dir("~/data") == Path("~/data").expanduser()
