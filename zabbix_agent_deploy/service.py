"""
Windows service lifecycle control
Stop and start a named service and block until the change is observed
"""

import logging
import time
from typing import Optional

from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, stop_never, wait_fixed

from .errors import ServiceControlError, ServiceTimeoutError
from .powershell import ps_quote

logger = logging.getLogger(__name__)

STOPPED = 'Stopped'
RUNNING = 'Running'


class ServiceController:
    """
    Drives a service through Get-Service / Stop-Service / Start-Service.

    timeout bounds each wait in seconds; 0 or None waits forever.
    """

    def __init__(self, host, poll_interval: float = 2, timeout: Optional[float] = 300, sleep=time.sleep):
        self.host = host
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.sleep = sleep

    def status(self, name: str) -> Optional[str]:
        """Current status name, None when the service is not installed"""
        output = self.host.run_checked(
            f"$svc = Get-Service -Name {ps_quote(name)} -ErrorAction SilentlyContinue\n"
            "if ($svc) { $svc.Status.ToString() }",
            ServiceControlError, f"Querying service '{name}'"
        )
        return output or None

    def exists(self, name: str) -> bool:
        return self.status(name) is not None

    def _issue_stop(self, name: str):
        self.host.run_checked(
            f"Stop-Service -Name {ps_quote(name)} -Force",
            ServiceControlError, f"Stopping service '{name}'"
        )

    def _issue_start(self, name: str):
        self.host.run_checked(
            f"Start-Service -Name {ps_quote(name)}",
            ServiceControlError, f"Starting service '{name}'"
        )

    def _wait_for(self, name: str, expected: str, poll):
        def log_wait(retry_state):
            logger.info(f"⏳ Service '{name}' is {retry_state.outcome.result()}, waiting for {expected}...")

        retryer = Retrying(
            stop=stop_after_delay(self.timeout) if self.timeout else stop_never,
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(lambda status: status != expected),
            before_sleep=log_wait,
            sleep=self.sleep,
        )
        try:
            return retryer(poll)
        except RetryError as e:
            last = e.last_attempt.result()
            raise ServiceTimeoutError(
                f"Service '{name}' still {last} after {self.timeout}s, expected {expected}"
            ) from e

    def stop(self, name: str):
        if not self.exists(name):
            logger.info(f"✓ Service '{name}' not installed, nothing to stop")
            return

        logger.info(f"🛑 Stopping service '{name}'...")
        self._issue_stop(name)

        def poll():
            # A service removed while stopping counts as stopped
            return self.status(name) or STOPPED

        self._wait_for(name, STOPPED, poll)
        logger.info(f"✅ Service '{name}' stopped")

    def start(self, name: str):
        logger.info(f"▶️  Starting service '{name}'...")
        self._issue_start(name)

        def poll():
            status = self.status(name)
            if status is None:
                raise ServiceControlError(f"Service '{name}' is not installed")
            if status != RUNNING:
                self._issue_start(name)
            return status

        self._wait_for(name, RUNNING, poll)
        logger.info(f"✅ Service '{name}' running")
