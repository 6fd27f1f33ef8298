"""
AIO sandbox client - shell execution for agent tools.

The sandbox exposes a small JSON API (`/v1/shell/exec`, `/v1/shell/view`,
`/v1/shell/kill`). Every endpoint answers with an envelope:

    {"success": true, "message": "...", "data": {...}}

Long commands are started in async mode and polled until the session
reports `completed`; a command that outlives `max_wait` is killed.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from agentcalls.config import AioConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_WAIT = 600.0
DEFAULT_POLL_INTERVAL = 1.0


class AioClientError(Exception):
    """A sandbox request failed after all retries."""
    pass


class ShellTimeoutError(AioClientError):
    """A polled shell command did not complete in time."""
    pass


@dataclass
class ApiResponse:
    """Envelope returned by every sandbox endpoint."""
    success: bool
    message: str = ""
    data: Any = None

    @classmethod
    def from_dict(cls, body: dict[str, Any]) -> "ApiResponse":
        return cls(
            success=bool(body.get("success", False)),
            message=body.get("message") or "",
            data=body.get("data"),
        )


@dataclass
class ShellResult:
    """Outcome of a polled shell command."""
    session_id: str
    command: str
    status: str
    output: str = ""
    returncode: int | None = None
    console: list[dict[str, Any]] = field(default_factory=list)


class AioClient:
    """Synchronous client for the sandbox API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        retries: int = 1,
        retry_delay: float = 1.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: AioConfig | None = None) -> "AioClient":
        config = config or AioConfig.from_env()
        return cls(
            base_url=config.base_url,
            timeout=config.timeout,
            retries=config.retries,
            retry_delay=config.retry_delay,
        )

    def _post(self, path: str, body: dict[str, Any]) -> ApiResponse:
        """
        POST with exponential backoff: waits retry_delay * 2**attempt.

        Raises:
            AioClientError: If every attempt fails
        """
        last_error: Exception | None = None

        for attempt in range(self.retries + 1):
            logger.debug(f"Attempt {attempt + 1} for {path}")
            try:
                response = self._client.post(path, json=body)
                if response.is_error:
                    extra = ""
                    if response.headers.get("content-type", "").startswith("application/json"):
                        extra = (response.json() or {}).get("message") or ""
                    raise AioClientError(
                        f"HTTP {response.status_code}: {response.reason_phrase} {extra}".strip()
                    )
                result = ApiResponse.from_dict(response.json())
                logger.debug(f"Success for {path}: {result.message}")
                return result
            except (httpx.HTTPError, ValueError, AioClientError) as e:
                last_error = e
                logger.warning(f"Attempt {attempt + 1} failed for {path}: {e}")
                if attempt < self.retries:
                    time.sleep(self.retry_delay * 2 ** attempt)

        logger.error(f"All attempts failed for {path}: {last_error}")
        raise AioClientError(f"{path} failed after {self.retries + 1} attempts: {last_error}") from last_error

    def shell_exec(self, command: str, async_mode: bool = False, **params: Any) -> ApiResponse:
        """Execute a shell command."""
        return self._post("/v1/shell/exec", {"async_mode": async_mode, **params, "command": command})

    def shell_view(self, session_id: str) -> ApiResponse:
        """View a shell session."""
        return self._post("/v1/shell/view", {"id": session_id})

    def shell_kill(self, session_id: str) -> ApiResponse:
        """Kill a shell session."""
        return self._post("/v1/shell/kill", {"id": session_id})

    def shell_exec_with_polling(
        self,
        command: str,
        max_wait: float = DEFAULT_MAX_WAIT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        **params: Any,
    ) -> ShellResult | ApiResponse:
        """
        Run a command in async mode and poll until it completes.

        Returns the unsuccessful exec response unchanged if the command
        could not be started.

        Raises:
            ShellTimeoutError: If the command is still running after max_wait;
                the session is killed first
        """
        started = self.shell_exec(command, async_mode=True, **params)
        if not started.success:
            return started

        session_id = started.data["session_id"]
        deadline = time.monotonic() + max_wait
        logger.info(f"Started async execution for session {session_id}, polling for completion...")

        while time.monotonic() < deadline:
            try:
                view = self.shell_view(session_id)
            except AioClientError as e:
                logger.warning(f"Error polling session {session_id}: {e}")
                time.sleep(poll_interval)
                continue

            if not view.success:
                logger.warning(f"Failed to view session {session_id}: {view.message}")
            elif (view.data or {}).get("status") == "completed":
                logger.info(f"Command completed for session {session_id}")
                return self._completed(session_id, command, view.data)

            time.sleep(poll_interval)

        logger.warning(f"Timeout reached for session {session_id}, killing session...")
        try:
            self.shell_kill(session_id)
            logger.info(f"Session {session_id} killed due to timeout")
        except AioClientError as e:
            logger.error(f"Failed to kill session {session_id}: {e}")

        raise ShellTimeoutError(f"Command execution timed out after {max_wait}s")

    @staticmethod
    def _completed(session_id: str, command: str, data: dict[str, Any]) -> ShellResult:
        output = data.get("output") or ""
        console = list(data.get("console") or [])
        # In async mode the first console entry comes back without its output.
        if console and not console[0].get("output"):
            console[0] = {**console[0], "output": output}
        return ShellResult(
            session_id=session_id,
            command=command,
            status="completed",
            output=output,
            returncode=data.get("returncode", 0),
            console=console,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "AioClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
