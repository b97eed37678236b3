import pytest
from pydantic import ValidationError

from app.core.settings import Settings
from app.engine.thresholds import Thresholds


def test_single_canonical_threshold_defaults_to_75():
    settings = Settings(_env_file=None)
    assert settings.unlock_threshold == 75
    assert settings.completion_threshold is None
    assert Thresholds.from_settings(settings).unlock == 75


def test_matching_legacy_threshold_is_accepted():
    settings = Settings(_env_file=None, unlock_threshold=85, completion_threshold=85)
    assert Thresholds.from_settings(settings).unlock == 85


def test_disagreeing_thresholds_fail_fast():
    with pytest.raises(ValidationError, match="disagrees with unlock_threshold"):
        Settings(_env_file=None, unlock_threshold=85, completion_threshold=75)


def test_out_of_range_threshold_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, mastered_threshold=120)
