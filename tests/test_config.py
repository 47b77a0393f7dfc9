from datetime import datetime, timedelta

import pytest

from igmpspeed.config import ConfigError, Settings


@pytest.mark.parametrize("first,count", [(1, 1), (10, 3), (1, 254), (254, 1), (100, 155)])
def test_groups_are_unique_and_contiguous(first, count):
    s = Settings(first_group=f"230.8.97.{first}", count=count).validate()
    groups = s.groups()
    assert len(groups) == count
    assert len(set(groups)) == count
    assert [int(g.rsplit(".", 1)[1]) for g in groups] == list(range(first, first + count))
    assert all(g.startswith("230.8.97.") for g in groups)


@pytest.mark.parametrize("kwargs", [
    {"count": 0},
    {"count": 255},
    {"first_group": "230.8.97.2", "count": 254},      # would reach .255
    {"first_group": "230.8.97.250", "count": 10},
    {"first_group": "223.1.1.1"},
    {"first_group": "240.1.1.1"},
    {"first_group": "300.8.97.1"},
    {"first_group": "230.8.97"},
    {"first_group": "not-a-group"},
    {"local_ip": "10.0.0"},
    {"local_ip": "::1"},
    {"timeout_s": 0},
])
def test_bad_configuration_is_rejected(kwargs):
    with pytest.raises(ConfigError):
        Settings(**kwargs).validate()


def test_config_error_is_a_value_error():
    with pytest.raises(ValueError):
        Settings(count=-1).validate()


def test_start_time_in_the_past_only_checked_on_request():
    now = datetime(2026, 1, 1, 12, 0, 0)
    s = Settings(start_at=now - timedelta(seconds=1))
    s.validate(now=now)
    with pytest.raises(ConfigError):
        s.validate(now=now, check_start=True)
    Settings(start_at=now + timedelta(minutes=1)).validate(now=now, check_start=True)


def test_defaults():
    s = Settings()
    assert s.groups() == ["230.8.97.1"]
    assert s.port == 1234
    assert s.ttl == 32
    assert s.poll_slice_s == 0.1
    assert s.quiescence_us == 2_000_000
