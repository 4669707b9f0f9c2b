from datetime import timedelta

import pytest

from worldsync.api import SyncApiSettings


def test_defaults_when_environment_is_empty() -> None:
    settings = SyncApiSettings.from_env({})

    assert settings.api_key is None
    assert settings.auth_enabled is False
    assert settings.media_max_bytes == 10 * 1024 * 1024
    assert settings.media_sweep_interval == 3600
    assert settings.liveness_window == timedelta(minutes=5)
    assert settings.message_log_limit == 100
    assert settings.keep_global_room is True
    assert settings.strict_media_limits is False
    assert settings.public_base_url is None
    assert settings.log_level == "INFO"


def test_values_are_read_from_environment() -> None:
    settings = SyncApiSettings.from_env(
        {
            "WORLDSYNC_API_KEY": "  secret  ",
            "WORLDSYNC_MEDIA_MAX_BYTES": "2048",
            "WORLDSYNC_MEDIA_SWEEP_INTERVAL": "0",
            "WORLDSYNC_LIVENESS_WINDOW": "60",
            "WORLDSYNC_MESSAGE_LOG_LIMIT": "20",
            "WORLDSYNC_KEEP_GLOBAL_ROOM": "no",
            "WORLDSYNC_STRICT_MEDIA_LIMITS": "TRUE",
            "WORLDSYNC_PUBLIC_BASE_URL": "https://sync.example/",
            "WORLDSYNC_LOG_LEVEL": "debug",
        }
    )

    assert settings.api_key == "secret"
    assert settings.auth_enabled is True
    assert settings.media_max_bytes == 2048
    assert settings.media_sweep_interval == 0
    assert settings.liveness_window == timedelta(seconds=60)
    assert settings.message_log_limit == 20
    assert settings.keep_global_room is False
    assert settings.strict_media_limits is True
    assert settings.public_base_url == "https://sync.example"
    assert settings.log_level == "DEBUG"


def test_blank_values_fall_back_to_defaults() -> None:
    settings = SyncApiSettings.from_env(
        {"WORLDSYNC_API_KEY": "   ", "WORLDSYNC_MEDIA_MAX_BYTES": " "}
    )

    assert settings.api_key is None
    assert settings.media_max_bytes == 10 * 1024 * 1024


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("WORLDSYNC_MEDIA_MAX_BYTES", "lots"),
        ("WORLDSYNC_MEDIA_MAX_BYTES", "0"),
        ("WORLDSYNC_MEDIA_SWEEP_INTERVAL", "-5"),
        ("WORLDSYNC_LIVENESS_WINDOW", "1.5"),
        ("WORLDSYNC_MESSAGE_LOG_LIMIT", "0"),
        ("WORLDSYNC_KEEP_GLOBAL_ROOM", "maybe"),
        ("WORLDSYNC_STRICT_MEDIA_LIMITS", "2"),
        ("WORLDSYNC_LOG_LEVEL", "chatty"),
    ],
)
def test_invalid_values_name_the_variable(name: str, value: str) -> None:
    with pytest.raises(ValueError) as excinfo:
        SyncApiSettings.from_env({name: value})

    assert name in str(excinfo.value)
