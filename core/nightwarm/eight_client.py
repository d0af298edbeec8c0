"""
Simple Eight Sleep API Client for NightWarm

Minimal client for refreshing tokens, reading heating status and
controlling the heating of one side of the bed.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import requests

from .exceptions import AuthError, DeviceApiError
from .models import Credential, DeviceState

logger = logging.getLogger(__name__)

STATE_OFF = "off"
STATE_ON = "smart"


class EightSleepClient:
    """Simple Eight Sleep REST API client.

    Blocking HTTP calls run in a worker thread so a slow device call for
    one user never stalls the event loop.
    """

    def __init__(
        self,
        api_url: str,
        auth_url: str,
        client_id: str = "",
        client_secret: str = "",
        timeout: float = 10.0,
    ):
        """Initialize the client.

        Args:
            api_url: Client API base URL (e.g., "https://client-api.8slp.net/v1")
            auth_url: Auth API base URL (e.g., "https://auth-api.8slp.net/v1")
            client_id: OAuth client id used for token refresh
            client_secret: OAuth client secret used for token refresh
            timeout: Per-request timeout in seconds
        """
        self.api_url = api_url.rstrip("/")
        self.auth_url = auth_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        # Create a session for connection pooling
        self.session = requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "User-Agent": "NightWarm/0.1",
        })
        self.timeout = timeout

    def _request(
        self,
        method: str,
        url: str,
        token: Optional[str] = None,
        json: Optional[dict] = None,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        response = self.session.request(
            method, url, headers=headers, json=json, timeout=self.timeout
        )
        response.raise_for_status()
        if not response.content:
            return {}
        return response.json()

    def _temperature_url(self, device_user_id: str) -> str:
        return f"{self.api_url}/users/{device_user_id}/temperature"

    # Blocking calls

    def get_heating_status(self, credential: Credential) -> DeviceState:
        """Read the heating status of the credential's side.

        Raises:
            DeviceApiError: If the request fails or the payload is malformed
        """
        url = self._temperature_url(credential.device_user_id)
        try:
            data = self._request("GET", url, token=credential.access_token)
        except requests.exceptions.RequestException as e:
            raise DeviceApiError(f"Failed to read heating status: {e}") from e
        except ValueError as e:
            raise DeviceApiError(f"Invalid heating status payload: {e}") from e

        try:
            state_type = data.get("currentState", {}).get("type", STATE_OFF)
            return DeviceState(
                is_heating=state_type != STATE_OFF,
                heating_level=int(data.get("currentLevel", 0)),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise DeviceApiError(f"Invalid heating status payload: {data!r}") from e

    def put_power(self, credential: Credential, device_user_id: str, on: bool) -> None:
        """Turn heating on (smart mode) or off.

        Raises:
            DeviceApiError: If the request fails
        """
        url = self._temperature_url(device_user_id)
        body = {"currentState": {"type": STATE_ON if on else STATE_OFF}}
        try:
            self._request("PUT", url, token=credential.access_token, json=body)
            logger.info(f"Turned {device_user_id} {'on' if on else 'off'}")
        except requests.exceptions.RequestException as e:
            raise DeviceApiError(f"Failed to set power for {device_user_id}: {e}") from e

    def put_level(self, credential: Credential, device_user_id: str, level: int) -> None:
        """Set the heating level.

        Raises:
            DeviceApiError: If the request fails
        """
        url = self._temperature_url(device_user_id)
        try:
            self._request("PUT", url, token=credential.access_token, json={"currentLevel": level})
            logger.info(f"Set {device_user_id} heating level to {level}")
        except requests.exceptions.RequestException as e:
            raise DeviceApiError(f"Failed to set level for {device_user_id}: {e}") from e

    def post_refresh(self, refresh_token: str, device_user_id: str) -> Credential:
        """Exchange a refresh token for a new token pair.

        Raises:
            AuthError: If the token endpoint rejects the request
        """
        body = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        try:
            data = self._request("POST", f"{self.auth_url}/tokens", json=body)
        except (requests.exceptions.RequestException, ValueError) as e:
            raise AuthError(f"Token refresh failed for {device_user_id}: {e}") from e

        try:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(data["expires_in"]))
            return Credential(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token", refresh_token),
                expires_at=expires_at,
                device_user_id=data.get("userId", device_user_id),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AuthError(f"Invalid token response for {device_user_id}: {e}") from e

    # Async interface used by the controller

    async def read_device_state(self, credential: Credential) -> DeviceState:
        return await asyncio.to_thread(self.get_heating_status, credential)

    async def set_power(self, credential: Credential, device_user_id: str, on: bool) -> None:
        await asyncio.to_thread(self.put_power, credential, device_user_id, on)

    async def set_level(self, credential: Credential, device_user_id: str, level: int) -> None:
        await asyncio.to_thread(self.put_level, credential, device_user_id, level)

    async def refresh_credential(self, refresh_token: str, device_user_id: str) -> Credential:
        return await asyncio.to_thread(self.post_refresh, refresh_token, device_user_id)
