"""
Jolokia Management Connection

Queries the platform MBeans of a JVM through the Jolokia agent's HTTP/JSON API.
"""

import http.client
import json
import logging
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from check_jvm_deadlocks.errors import ManagementConnectionError

logger = logging.getLogger(__name__)

THREADING_MBEAN = "java.lang:type=Threading"


class JolokiaConnection:
    """
    Connection to a Jolokia agent.

    Args:
        url: Agent URL as published in the 'jolokia.agent' system property.
        timeout: Socket timeout in seconds, None to block.
    """

    def __init__(self, url: str, timeout: float | None = None) -> None:
        self.url = url
        self._timeout = timeout
        self._closed = False

    def __enter__(self) -> "JolokiaConnection":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._closed = True

    def version(self) -> Any:
        return self.request({"type": "version"})

    def list_deadlocked_thread_ids(self) -> list[int]:
        """Ask the target JVM for the IDs of threads caught in a deadlock cycle."""
        value = self.request({
            "type": "exec",
            "mbean": THREADING_MBEAN,
            "operation": "findDeadlockedThreads",
        })
        if value is None:
            return []
        try:
            return [int(thread_id) for thread_id in value]
        except (TypeError, ValueError) as e:
            raise ManagementConnectionError(f"Unexpected findDeadlockedThreads result: {value!r}") from e

    def request(self, payload: dict[str, Any]) -> Any:
        """
        Send a Jolokia request and return its 'value'.

        Raises:
            ManagementConnectionError: On I/O failure or an error reported by the agent.
        """
        if self._closed:
            raise ManagementConnectionError(f"Connection to {self.url} is closed")

        logger.debug(f"Jolokia request to {self.url}: {payload}")
        req = urllib.request.Request(
            self.url,
            data=json.dumps(payload).encode(),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as response:
                data = json.loads(response.read().decode())
        except urllib.error.HTTPError as e:
            raise ManagementConnectionError(f"Jolokia agent at {self.url} returned HTTP {e.code}") from e
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            reason = getattr(e, "reason", e)
            raise ManagementConnectionError(f"Unable to connect to {self.url}: {reason}") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManagementConnectionError(f"Invalid response from {self.url}: {e}") from e

        if not isinstance(data, dict):
            raise ManagementConnectionError(f"Invalid response from {self.url}: {data!r}")

        status = data.get("status")
        if status != 200:
            error = data.get("error") or f"status {status}"
            raise ManagementConnectionError(f"Jolokia request '{payload['type']}' failed: {error}")

        return data.get("value")


class JolokiaConnector:
    """Opens Jolokia connections from connector addresses."""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    def connect(self, address: str) -> JolokiaConnection:
        """
        Open a connection and check the agent answers.

        Raises:
            ManagementConnectionError: If the address is malformed or the agent unreachable.
        """
        parsed = urllib.parse.urlsplit(address)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ManagementConnectionError(f"Malformed connector address '{address}'")

        connection = JolokiaConnection(address, self._timeout)
        info = connection.version()
        logger.debug(f"Connected to Jolokia agent {info.get('agent') if isinstance(info, dict) else info} at {address}")
        return connection
