"""
Actuation Engine

Converges the live device state to a resolved target with as few vendor
API calls as possible. Every call is retried with exponential backoff.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol, TypeVar

from .exceptions import DeviceApiError
from .models import Action, ActionKind, Credential, DeviceState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeviceClient(Protocol):
    """Device vendor API consumed by the engine."""

    async def read_device_state(self, credential: Credential) -> DeviceState: ...

    async def set_power(self, credential: Credential, device_user_id: str, on: bool) -> None: ...

    async def set_level(self, credential: Credential, device_user_id: str, level: int) -> None: ...


async def retry_api_call(
    call: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await *call* until it succeeds or the attempts are exhausted.

    Only DeviceApiError is retried; anything else propagates immediately.
    The delay before retry n (0-based) is base_delay * 2**n.

    Raises:
        DeviceApiError: The last failure once all attempts have failed
    """
    for attempt in range(attempts):
        try:
            return await call()
        except DeviceApiError as e:
            if attempt == attempts - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Device call failed (attempt {attempt + 1}/{attempts}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            await sleep(delay)
    raise DeviceApiError("Retry failed")


def plan_actions(
    target: Optional[int],
    state: DeviceState,
    shut_off: bool = False,
) -> list[Action]:
    """Device writes needed to reach the target from the current state.

    A write that would not change the device state is never planned.

    Args:
        target: Target heating level, or None for no action
        state: Current device state
        shut_off: Turn the device off when there is no target

    Returns:
        Ordered list of actions (possibly empty)
    """
    actions = []
    if target is not None:
        if not state.is_heating:
            actions.append(Action(ActionKind.POWER_ON))
        if state.heating_level != target:
            actions.append(Action(ActionKind.SET_LEVEL, level=target))
    elif shut_off and state.is_heating:
        actions.append(Action(ActionKind.POWER_OFF))
    return actions


class ActuationEngine:
    """Issues planned device writes through the vendor client."""

    def __init__(
        self,
        device: DeviceClient,
        dry_run: bool = False,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the engine.

        Args:
            device: Vendor API client
            dry_run: Substitute an inert device state and suppress writes
            retry_attempts: Attempts per device call
            retry_base_delay: Backoff before the first retry (seconds)
            sleep: Awaitable used for backoff delays
        """
        self.device = device
        self.dry_run = dry_run
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep

    async def _retry(self, call: Callable[[], Awaitable[T]]) -> T:
        return await retry_api_call(
            call,
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            sleep=self._sleep,
        )

    async def read_state(self, credential: Credential) -> DeviceState:
        """Read the live device state (inert state in dry-run mode)."""
        if self.dry_run:
            return DeviceState.inert()
        return await self._retry(lambda: self.device.read_device_state(credential))

    async def execute(self, credential: Credential, device_user_id: str, action: Action) -> None:
        """Issue one action, retried independently of the others."""
        if action.kind == ActionKind.POWER_ON:
            await self._retry(lambda: self.device.set_power(credential, device_user_id, True))
        elif action.kind == ActionKind.POWER_OFF:
            await self._retry(lambda: self.device.set_power(credential, device_user_id, False))
        elif action.kind == ActionKind.SET_LEVEL:
            await self._retry(
                lambda: self.device.set_level(credential, device_user_id, action.level)
            )

    async def converge(
        self,
        credential: Credential,
        device_user_id: str,
        target: Optional[int],
        state: DeviceState,
        shut_off: bool = False,
    ) -> list[Action]:
        """Plan and issue the writes that bring the device to the target.

        Returns:
            The actions planned (suppressed, but still returned, in dry-run mode)
        """
        actions = plan_actions(target, state, shut_off=shut_off)
        for action in actions:
            if self.dry_run:
                logger.info(f"[dry-run] Would {action} for device user {device_user_id}")
                continue
            await self.execute(credential, device_user_id, action)
            logger.debug(f"Issued {action} for device user {device_user_id}")
        return actions
