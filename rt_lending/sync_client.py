"""
Spreadsheet Sync Client Module

REST client for the spreadsheet-backed service the app mirrors its data
to. Two calls only: a bulk read of every loan and ledger row, and a
change notification per local mutation.

Notifications are best-effort. The service's reply is not inspected
beyond the status code, nothing is retried, and a failure never reaches
the caller as an exception.
"""

import httpx
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .events import ChangeAction
from .exceptions import SyncError

logger = logging.getLogger("rt_lending.sync")


@dataclass
class RemoteSnapshot:
    """Raw records from a bulk read; None where the field was absent or malformed"""
    loans: Optional[List[Dict[str, Any]]] = None
    transactions: Optional[List[Dict[str, Any]]] = None


def _record_list(body: Dict[str, Any], key: str) -> Optional[List[Dict[str, Any]]]:
    value = body.get(key)
    if not isinstance(value, list):
        if key in body:
            logger.warning(f"Ignoring malformed '{key}' field in remote snapshot")
        return None
    return [item for item in value if isinstance(item, dict)]


class SheetSyncClient:
    """REST client for the spreadsheet service"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        api_key: Optional[str] = None,
        enabled: bool = True
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self.enabled = enabled and bool(self.base_url)
        self._client = httpx.Client(timeout=timeout, follow_redirects=True)

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def fetch_snapshot(self) -> RemoteSnapshot:
        """Read every loan and ledger row from the service

        Raises:
            SyncError: on transport failure, non-200 status, or a body
                that is not a JSON object
        """
        if not self.enabled:
            return RemoteSnapshot()

        try:
            response = self._client.get(self.base_url, headers=self._headers())
        except httpx.HTTPError as e:
            raise SyncError(f"Bulk load failed: {e}", {'url': self.base_url})

        if response.status_code != 200:
            raise SyncError(
                f"Bulk load returned {response.status_code}",
                {'url': self.base_url, 'status': response.status_code}
            )

        try:
            body = response.json()
        except ValueError as e:
            raise SyncError(f"Bulk load returned invalid JSON: {e}", {'url': self.base_url})

        if not isinstance(body, dict):
            raise SyncError("Bulk load returned a non-object body", {'url': self.base_url})

        return RemoteSnapshot(
            loans=_record_list(body, "loans"),
            transactions=_record_list(body, "transactions"),
        )

    def notify(self, action: ChangeAction, payload: Dict[str, Any]) -> bool:
        """Send one change notification

        Returns:
            True if the service answered with a 2xx status
        """
        if not self.enabled:
            return False

        try:
            response = self._client.post(
                self.base_url,
                json={"action": action.value, "data": payload},
                headers=self._headers()
            )
        except httpx.HTTPError as e:
            logger.warning(f"Notify {action.value} failed: {e}")
            return False

        if not 200 <= response.status_code < 300:
            logger.warning(f"Notify {action.value} returned {response.status_code}")
            return False
        return True

    def close(self):
        """Close the HTTP client"""
        self._client.close()
