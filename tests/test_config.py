from unittest.mock import patch

import pytest

from config import DEFAULT_MAREA_URL, load_settings

ENV_VARS = [
    "FIREBASE_DATABASE_URL",
    "FIREBASE_AUTH_TOKEN",
    "MAREA_API_TOKEN",
    "MAREA_BASE_URL",
    "PHYPHOX_URL",
    "REQUEST_TIMEOUT",
    "LOCATION_INTERVAL",
    "COMPASS_INTERVAL",
    "LIVE_FEED_IDLE_TIMEOUT",
    "MAX_LATTICE_ELEMENTS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    with patch("config.load_dotenv"):
        yield monkeypatch


def test_defaults(clean_env):
    settings = load_settings()
    assert settings.firebase_database_url is None
    assert settings.marea_api_token is None
    assert settings.marea_base_url == DEFAULT_MAREA_URL
    assert settings.phyphox_url is None
    assert settings.location_interval == 5.0
    assert settings.compass_interval == 0.5
    assert settings.live_feed_idle_timeout == 600.0
    assert settings.max_lattice_elements == 20000


def test_values_from_environment(clean_env):
    clean_env.setenv("FIREBASE_DATABASE_URL", "https://db.example.com")
    clean_env.setenv("MAREA_API_TOKEN", "abc")
    clean_env.setenv("PHYPHOX_URL", "")
    clean_env.setenv("COMPASS_INTERVAL", "0.25")
    clean_env.setenv("LIVE_FEED_IDLE_TIMEOUT", "60")
    clean_env.setenv("MAX_LATTICE_ELEMENTS", "500")

    settings = load_settings()
    assert settings.firebase_database_url == "https://db.example.com"
    assert settings.marea_api_token == "abc"
    assert settings.phyphox_url is None
    assert settings.compass_interval == 0.25
    assert settings.live_feed_idle_timeout == 60.0
    assert settings.max_lattice_elements == 500
