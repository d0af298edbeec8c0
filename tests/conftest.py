"""tests/conftest.py — shared fixtures and collaborator fakes for the NightWarm suite"""
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Backend modules read settings at import time
os.environ.setdefault("CRON_SECRET", "test-secret")
os.environ.setdefault(
    "NIGHTWARM_DATABASE_PATH",
    os.path.join(tempfile.mkdtemp(prefix="nightwarm-"), "nightwarm.db"),
)

from core.nightwarm.exceptions import DeviceApiError, PersistenceError
from core.nightwarm.models import Credential, DeviceState, ThermalProfile
from core.nightwarm.settings import ControllerSettings


class FakeDevice:
    """In-memory device vendor API with per-method failure injection."""

    def __init__(self, state=None, failures=None):
        self.state = state or DeviceState(is_heating=False, heating_level=0)
        self.failures = dict(failures or {})
        self.reads = 0
        self.writes = []
        self.refreshes = []
        self.refresh_error = None

    def _maybe_fail(self, name):
        if self.failures.get(name, 0) > 0:
            self.failures[name] -= 1
            raise DeviceApiError(f"{name} failed")

    async def read_device_state(self, credential):
        self.reads += 1
        self._maybe_fail("read")
        return DeviceState(self.state.is_heating, self.state.heating_level)

    async def set_power(self, credential, device_user_id, on):
        self._maybe_fail("power")
        self.writes.append(("power", device_user_id, on))
        self.state.is_heating = on

    async def set_level(self, credential, device_user_id, level):
        self._maybe_fail("level")
        self.writes.append(("level", device_user_id, level))
        self.state.heating_level = level

    async def refresh_credential(self, refresh_token, device_user_id):
        self.refreshes.append((refresh_token, device_user_id))
        if self.refresh_error:
            raise self.refresh_error
        return Credential(
            access_token="fresh-access",
            refresh_token="fresh-refresh",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=8),
            device_user_id=device_user_id,
        )


class FakeStore:
    """In-memory profile store."""

    def __init__(self, profiles=None, fetch_error=None):
        self.profiles = list(profiles or [])
        self.fetch_error = fetch_error
        self.persist_error = None
        self.persisted = []

    async def fetch_profiles(self):
        if self.fetch_error:
            raise self.fetch_error
        return list(self.profiles)

    async def persist_credential(self, email, credential):
        if self.persist_error:
            raise self.persist_error
        self.persisted.append((email, credential))


def make_profile(email="sleeper@example.com", bed="22:00", wake="06:00", tz="UTC",
                 initial=30, mid=10, final=20):
    return ThermalProfile(
        email=email,
        bed_time=bed,
        wake_time=wake,
        timezone=tz,
        initial_level=initial,
        mid_level=mid,
        final_level=final,
    )


def make_credential(user_id="eight-user-1", expires_in=timedelta(hours=8)):
    return Credential(
        access_token="access",
        refresh_token="refresh",
        expires_at=datetime.now(timezone.utc) + expires_in,
        device_user_id=user_id,
    )


@pytest.fixture
def settings():
    """Interval mode, 1 h lead time, no retry delays."""
    return ControllerSettings(
        lead_time_hours=1,
        retry_base_delay_seconds=0,
        request_timeout_seconds=1,
        profile_timeout_seconds=5,
        database_path="unused.db",
    )


@pytest.fixture
def fake_device():
    return FakeDevice()


@pytest.fixture
def fake_store():
    return FakeStore([(make_profile(), make_credential())])


@pytest.fixture
def failing_store():
    return FakeStore(fetch_error=PersistenceError("database unavailable"))


@pytest.fixture
def no_sleep():
    """Backoff sleep that records delays instead of waiting."""
    delays = []

    async def _sleep(seconds):
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep
