"""
PowerShell execution backends
Runs scripts on the local machine or on a remote Windows host over WinRM
"""

import base64
import logging
import subprocess
from typing import Optional

import winrm
from winrm.exceptions import WinRMError, WinRMTransportError
from requests.exceptions import RequestException

from .errors import PowerShellError

logger = logging.getLogger(__name__)

SCRIPT_PREAMBLE = "$ProgressPreference = 'SilentlyContinue'\n$ErrorActionPreference = 'Stop'\n"


def ps_quote(value) -> str:
    """Quote a value as a single-quoted PowerShell literal"""
    return "'" + str(value).replace("'", "''") + "'"


class PowerShellResult:
    """Outcome of one script run, shaped like winrm.Response"""

    def __init__(self, status_code: int, std_out: bytes = b'', std_err: bytes = b''):
        self.status_code = status_code
        self.std_out = std_out
        self.std_err = std_err

    @property
    def ok(self) -> bool:
        return self.status_code == 0

    @property
    def stdout(self) -> str:
        return self.std_out.decode('utf-8', errors='replace').strip()

    @property
    def stderr(self) -> str:
        return self.std_err.decode('utf-8', errors='replace').strip()

    def __repr__(self):
        return f"PowerShellResult(status_code={self.status_code})"


class LocalPowerShell:
    """Run scripts with the local powershell.exe"""

    def __init__(self, executable: str = 'powershell.exe'):
        self.executable = executable

    def run(self, script: str) -> PowerShellResult:
        encoded = base64.b64encode((SCRIPT_PREAMBLE + script).encode('utf_16_le')).decode('ascii')
        command = [
            self.executable,
            '-NoProfile',
            '-NonInteractive',
            '-ExecutionPolicy', 'Bypass',
            '-EncodedCommand', encoded,
        ]
        try:
            proc = subprocess.run(command, capture_output=True)
        except OSError as e:
            raise PowerShellError(f"Cannot launch {self.executable}: {e}") from e

        return PowerShellResult(proc.returncode, proc.stdout, proc.stderr)

    def describe(self) -> str:
        return 'localhost'


class WinRMPowerShell:
    """Run scripts on a remote host through a pywinrm session"""

    def __init__(self, host: str, user: str, password: str, transport: str = 'ntlm',
                 session: Optional[winrm.Session] = None):
        self.host = host
        self.session = session or winrm.Session(host, auth=(user, password), transport=transport)

    def run(self, script: str) -> PowerShellResult:
        try:
            response = self.session.run_ps(SCRIPT_PREAMBLE + script)
        except (WinRMError, WinRMTransportError, RequestException) as e:
            raise PowerShellError(f"WinRM call to {self.host} failed: {e}") from e

        return PowerShellResult(response.status_code, response.std_out, response.std_err)

    def check_connection(self):
        """Verify the session works before touching anything"""
        result = self.run("Write-Output 'Connected'")
        if not result.ok or 'Connected' not in result.stdout:
            raise PowerShellError(f"WinRM connection test to {self.host} failed: {result.stderr}")
        logger.info(f"✅ WinRM connection to {self.host} established")

    def describe(self) -> str:
        return self.host
