"""
Windows host facade
OS queries, file operations and downloads expressed as PowerShell scripts
"""

import base64
import json
import logging
import os
from typing import Any, Dict, List, Optional, Type

from .errors import DeploymentError, FetchError, PowerShellError
from .fetcher import ArtifactFetcher
from .powershell import LocalPowerShell, ps_quote

logger = logging.getLogger(__name__)

# Raw bytes per call. run_ps sends `powershell -encodedcommand <base64 of UTF-16LE>`,
# which must stay under the 8191 character command line limit
WRITE_CHUNK_SIZE = 1500
COMMAND_LINE_LIMIT = 8191

IPV4_QUERY = """
Get-NetIPAddress -AddressFamily IPv4 | ForEach-Object {
    [PSCustomObject]@{
        IPAddress = $_.IPAddress
        InterfaceIndex = $_.InterfaceIndex
        InterfaceAlias = $_.InterfaceAlias
        AddressState = $_.AddressState.ToString()
        PrefixOrigin = $_.PrefixOrigin.ToString()
        ValidLifetimeSeconds = [int64]$_.ValidLifetime.TotalSeconds
    }
} | ConvertTo-Json -Compress
"""

ADMIN_QUERY = """
$principal = New-Object Security.Principal.WindowsPrincipal([Security.Principal.WindowsIdentity]::GetCurrent())
$principal.IsInRole([Security.Principal.WindowsBuiltInRole]::Administrator)
"""


class WindowsHost:
    """A Windows machine driven entirely through a PowerShell runner"""

    def __init__(self, shell):
        self.shell = shell

    def describe(self) -> str:
        return self.shell.describe()

    def run(self, script: str):
        logger.debug(f"PS> {script.strip().splitlines()[0] if script.strip() else ''}")
        return self.shell.run(script)

    def run_checked(self, script: str, error: Type[DeploymentError] = PowerShellError, action: str = 'command') -> str:
        """Run script, raise error on a non-zero exit code, return stdout"""
        result = self.run(script)
        if not result.ok:
            raise error(f"{action} failed (exit {result.status_code}): {result.stderr or result.stdout}")
        return result.stdout

    def run_json(self, script: str, error: Type[DeploymentError] = PowerShellError, action: str = 'query') -> Any:
        output = self.run_checked(script, error, action)
        if not output:
            return None
        try:
            return json.loads(output)
        except ValueError as e:
            raise error(f"{action} returned unparsable output: {output[:200]}") from e

    def _query_bool(self, script: str, action: str) -> bool:
        output = self.run_checked(script, action=action)
        return output.splitlines()[-1].strip().lower() == 'true' if output else False

    # Queries

    def is_admin(self) -> bool:
        return self._query_bool(ADMIN_QUERY, 'Administrator check')

    def is_64bit(self) -> bool:
        return self._query_bool('[Environment]::Is64BitOperatingSystem', 'Architecture query')

    def computer_name(self) -> str:
        return self.run_checked('$env:COMPUTERNAME', action='Host name query')

    def ipv4_addresses(self, error: Type[DeploymentError] = PowerShellError) -> List[Dict[str, Any]]:
        data = self.run_json(IPV4_QUERY, error, 'IPv4 address query')
        if data is None:
            return []
        # ConvertTo-Json emits a bare object for a single result
        return data if isinstance(data, list) else [data]

    def product_type(self, error: Type[DeploymentError] = PowerShellError) -> Optional[int]:
        output = self.run_checked(
            '(Get-CimInstance -ClassName Win32_OperatingSystem).ProductType',
            error, 'Product type query'
        )
        try:
            return int(output)
        except ValueError:
            return None

    # Files

    def ensure_directory(self, path: str):
        self.run_checked(
            f"New-Item -Path {ps_quote(path)} -ItemType Directory -Force | Out-Null",
            action=f"Creating {path}"
        )

    def path_exists(self, path: str) -> bool:
        return self._query_bool(f"Test-Path -LiteralPath {ps_quote(path)} -PathType Leaf", f"Checking {path}")

    def rename(self, path: str, new_path: str):
        self.run_checked(
            f"Move-Item -LiteralPath {ps_quote(path)} -Destination {ps_quote(new_path)} -Force",
            action=f"Renaming {path}"
        )

    def write_text(self, path: str, text: str):
        """Write text as UTF-8 in chunks small enough for a single WinRM call"""
        data = text.encode('utf-8')
        offsets = range(0, len(data), WRITE_CHUNK_SIZE) if data else [0]
        for index, offset in enumerate(offsets):
            chunk = base64.b64encode(data[offset:offset + WRITE_CHUNK_SIZE]).decode('ascii')
            mode = 'Create' if index == 0 else 'Append'
            self.run_checked(
                f"$bytes = [Convert]::FromBase64String('{chunk}')\n"
                f"$fs = [IO.File]::Open({ps_quote(path)}, [IO.FileMode]::{mode})\n"
                "try { $fs.Write($bytes, 0, $bytes.Length) } finally { $fs.Close() }",
                action=f"Writing {path}"
            )
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    def download(self, url: str, dest: str):
        """Have the host fetch url itself"""
        logger.info(f"⬇️  Downloading {url} on {self.describe()}")
        self.run_checked(
            f"Invoke-WebRequest -Uri {ps_quote(url)} -OutFile {ps_quote(dest)} -UseBasicParsing",
            FetchError, f"Download of {url}"
        )


class LocalWindowsHost(WindowsHost):
    """The machine this process runs on; files and downloads skip PowerShell"""

    def __init__(self, shell=None, fetcher: Optional[ArtifactFetcher] = None):
        super().__init__(shell or LocalPowerShell())
        self.fetcher = fetcher or ArtifactFetcher()

    def path_exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def rename(self, path: str, new_path: str):
        try:
            os.replace(path, new_path)
        except OSError as e:
            raise DeploymentError(f"Renaming {path} failed: {e}") from e

    def write_text(self, path: str, text: str):
        try:
            with open(path, 'w', encoding='utf-8', newline='') as f:
                f.write(text)
        except OSError as e:
            raise DeploymentError(f"Writing {path} failed: {e}") from e

    def download(self, url: str, dest: str):
        self.fetcher.download(url, dest)
