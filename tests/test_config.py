"""Tests for event_planner.config — Settings validation."""

import pytest
from pydantic import ValidationError

from event_planner.config import Settings, settings


def test_singleton_loaded_from_env():
    assert settings.CONFLICT_HORIZON_DAYS == 730
    assert settings.DEFAULT_TIMEZONE == "UTC"


def test_horizon_parsed_from_string():
    assert Settings(CONFLICT_HORIZON_DAYS="30").CONFLICT_HORIZON_DAYS == 30


@pytest.mark.parametrize("value", ["0", "-5", "soon"])
def test_horizon_rejects_bad_values(value):
    with pytest.raises(ValidationError):
        Settings(CONFLICT_HORIZON_DAYS=value)


def test_unknown_timezone():
    with pytest.raises(ValidationError):
        Settings(DEFAULT_TIMEZONE="Mars/Olympus_Mons")


def test_log_level_uppercased():
    assert Settings(LOG_LEVEL=" debug ").LOG_LEVEL == "DEBUG"
