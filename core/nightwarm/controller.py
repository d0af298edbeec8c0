"""
Temperature Controller

Runs one evaluation over every stored profile:

    fetch profiles -> per profile: refresh credential -> build cycle
    -> classify stage -> resolve target -> read device -> converge

Profiles are independent units of work. A failure for one profile is
logged and recorded; only a failure to fetch the profile list aborts the run.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .actuation import ActuationEngine, DeviceClient
from .exceptions import InvalidProfileError
from .history import RunHistory
from .models import Credential, ProfileResult, RunReport, ThermalProfile
from .settings import ControllerSettings
from .sleep_cycle import build_sleep_cycle, skipped_stages
from .stages import classify_stage, is_after_wake, resolve_setpoint

logger = logging.getLogger(__name__)


class ProfileSource(Protocol):
    """Persistence collaborator consumed by the controller."""

    async def fetch_profiles(self) -> list[tuple[ThermalProfile, Credential]]: ...

    async def persist_credential(self, email: str, credential: Credential) -> None: ...


class CredentialRefresher(Protocol):
    """Auth collaborator consumed by the controller."""

    async def refresh_credential(self, refresh_token: str, device_user_id: str) -> Credential: ...


def _local_time(now: datetime, tz_name: str) -> datetime:
    """Express an instant in the profile's timezone."""
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidProfileError(f"Unknown timezone: {tz_name!r}") from e
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz)


class TemperatureController:
    """Evaluates every profile and drives its device to the stage setpoint."""

    def __init__(
        self,
        store: ProfileSource,
        device: DeviceClient,
        settings: ControllerSettings,
        auth: Optional[CredentialRefresher] = None,
        history: Optional[RunHistory] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the controller.

        Args:
            store: Profile and credential persistence
            device: Device vendor API client
            settings: Controller settings
            auth: Credential refresher (defaults to the device client)
            history: Where finished runs are recorded
            sleep: Awaitable used for retry backoff
        """
        self.store = store
        self.device = device
        self.auth = auth if auth is not None else device
        self.settings = settings
        self.history = history
        self._sleep = sleep

    def _engine(self, dry_run: bool) -> ActuationEngine:
        return ActuationEngine(
            self.device,
            dry_run=dry_run,
            retry_attempts=self.settings.retry_attempts,
            retry_base_delay=self.settings.retry_base_delay_seconds,
            sleep=self._sleep,
        )

    async def run_cycle(self, test_instant: Optional[datetime] = None) -> RunReport:
        """Evaluate all profiles once.

        Args:
            test_instant: Evaluate at this instant in dry-run mode
                (no credential refresh, no device reads or writes)

        Returns:
            RunReport with one result per profile

        Raises:
            PersistenceError: If the profile list cannot be fetched
        """
        dry_run = test_instant is not None
        started_at = datetime.now(timezone.utc)
        now = test_instant if dry_run else started_at
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        report = RunReport(started_at=started_at, reference_time=now, dry_run=dry_run)
        profiles = await self.store.fetch_profiles()

        engine = self._engine(dry_run)
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_profiles)

        async def bounded(profile: ThermalProfile, credential: Credential) -> ProfileResult:
            async with semaphore:
                return await self._process_guarded(profile, credential, now, engine)

        report.results = list(
            await asyncio.gather(*(bounded(p, c) for p, c in profiles))
        )
        report.finished_at = datetime.now(timezone.utc)

        logger.info(
            f"Run complete{' (dry-run)' if dry_run else ''}: "
            f"{report.succeeded} ok, {report.failed} failed of {len(report.results)} profile(s)"
        )
        if self.history is not None:
            self.history.record_run(report)
        return report

    async def _process_guarded(
        self,
        profile: ThermalProfile,
        credential: Credential,
        now: datetime,
        engine: ActuationEngine,
    ) -> ProfileResult:
        """Process one profile, containing every failure to that profile."""
        result = ProfileResult(email=profile.email)
        try:
            await asyncio.wait_for(
                self.process_profile(profile, credential, now, engine, result),
                timeout=self.settings.profile_timeout_seconds,
            )
        except asyncio.TimeoutError:
            result.error = (
                f"Timed out after {self.settings.profile_timeout_seconds:.0f}s"
            )
            logger.error(f"Error for {profile.email}: {result.error}")
        except Exception as e:
            result.error = f"{type(e).__name__}: {e}"
            logger.error(f"Error for {profile.email}: {result.error}", exc_info=True)
        return result

    async def process_profile(
        self,
        profile: ThermalProfile,
        credential: Credential,
        now: datetime,
        engine: ActuationEngine,
        result: Optional[ProfileResult] = None,
    ) -> ProfileResult:
        """Evaluate one profile and converge its device.

        Steps are strictly sequential: the credential is refreshed before any
        device call and the state is read before deciding on writes.
        """
        if result is None:
            result = ProfileResult(email=profile.email)
        profile.validate()

        if not engine.dry_run and credential.is_expired(datetime.now(timezone.utc)):
            credential = await self.auth.refresh_credential(
                credential.refresh_token, credential.device_user_id
            )
            await self.store.persist_credential(profile.email, credential)
            result.credential_refreshed = True
            logger.info(f"Refreshed credential for {profile.email}")

        local_now = _local_time(now, profile.timezone)
        cycle = build_sleep_cycle(
            local_now,
            profile.bed_time,
            profile.wake_time,
            self.settings.lead_time_hours,
            warming_enabled=self.settings.warming_enabled,
            warming_lead_minutes=self.settings.warming_lead_minutes,
            lookahead_minutes=self.settings.boundary_window_minutes,
        )
        skipped = skipped_stages(cycle)
        result.cycle = cycle.as_dict()
        if skipped:
            result.skipped_stages = [s.value for s in skipped]
            logger.debug(f"User: {profile.email} | Skipped stages: {result.skipped_stages}")

        stage = classify_stage(
            cycle,
            local_now,
            mode=self.settings.trigger_mode,
            window_minutes=self.settings.proximity_minutes,
        )
        target = resolve_setpoint(stage, profile, self.settings.warming_level)
        result.stage = stage
        result.target_level = target

        state = await engine.read_state(credential)
        shut_off = target is None and is_after_wake(
            cycle, local_now, grace_minutes=self.settings.grace_minutes
        )
        actions = await engine.converge(
            credential, credential.device_user_id, target, state, shut_off=shut_off
        )
        result.actions = [str(a) for a in actions]

        if target is not None:
            logger.info(f"User: {profile.email} | Stage: {stage.value} | Target: {target}")
        elif actions:
            logger.info(f"User: {profile.email} | Status: Off (Post-Wakeup)")
        else:
            logger.debug(f"User: {profile.email} | Stage: {stage.value} | No action")
        return result
