from pathlib import Path

import pytest
from pydantic import ValidationError

from image_sync.config import Settings
from image_sync.models import Strategy


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv("IMAGE_SYNC_SYNC_FOLDER", raising=False)
    settings = Settings(_env_file=None)

    assert settings.sync_folder is None
    assert settings.strategy is Strategy.LAST_WRITE_WINS
    assert settings.page_size == 100
    assert settings.sync_interval_minutes == 0


def test_environment_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("IMAGE_SYNC_SYNC_FOLDER", str(tmp_path))
    monkeypatch.setenv("IMAGE_SYNC_STRATEGY", "server_always_wins")
    monkeypatch.setenv("IMAGE_SYNC_MAX_CONCURRENCY", "8")

    settings = Settings(_env_file=None)

    assert settings.sync_folder == Path(tmp_path)
    assert settings.strategy is Strategy.SERVER_ALWAYS_WINS
    assert settings.max_concurrency == 8


def test_blank_folder_is_unset(monkeypatch) -> None:
    monkeypatch.setenv("IMAGE_SYNC_SYNC_FOLDER", "  ")
    assert Settings(_env_file=None).sync_folder is None


@pytest.mark.parametrize(
    "field, value",
    [("page_size", 0), ("max_concurrency", -1), ("sync_interval_minutes", -5), ("strategy", "newest")],
)
def test_invalid_values_are_rejected(field, value) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})
