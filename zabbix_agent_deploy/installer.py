"""
Zabbix agent MSI installer
"""

import logging
from typing import List

from .errors import InstallError
from .powershell import ps_quote

logger = logging.getLogger(__name__)

# 1641 / 3010: success, reboot initiated / required
SUCCESS_EXIT_CODES = (0, 1641, 3010)


def _property(name: str, value) -> str:
    # msiexec reads "" inside a quoted property value as one literal quote.
    # The joined string reaches msiexec verbatim: ps_quote wraps it in a
    # single-quoted PowerShell literal, which leaves double quotes alone.
    value = str(value)
    if any(ch in value for ch in ' ;[]=') or not value:
        value = '"' + value.replace('"', '""') + '"'
    return f"{name}={value}"


def build_arguments(msi_path: str, log_path: str, settings, host_name: str) -> List[str]:
    """msiexec arguments for a silent install with the install-time server values"""
    defaults = settings.install_defaults
    return [
        '/l*v', f'"{log_path}"',
        '/i', f'"{msi_path}"',
        '/qn',
        '/norestart',
        _property('SERVER', defaults.server),
        _property('SERVERACTIVE', defaults.server_active),
        _property('HOSTNAME', host_name),
        _property('LISTENPORT', settings.listen_port),
        _property('ENABLEPATH', settings.enable_path),
        _property('ALLOWDENYKEY', settings.allow_key),
        _property('HOSTMETADATA', defaults.host_metadata),
    ]


def run_installer(host, msi_path: str, arguments: List[str]) -> int:
    """Run msiexec to completion on host and return its exit code"""
    argument_string = ' '.join(arguments)
    logger.info(f"📦 msiexec.exe {argument_string}")
    result = host.run(
        f"$p = Start-Process msiexec.exe -ArgumentList {ps_quote(argument_string)} -Wait -PassThru -NoNewWindow\n"
        "exit $p.ExitCode"
    )
    return result.status_code


def install(host, msi_path: str, log_path: str, settings, host_name: str) -> int:
    exit_code = run_installer(host, msi_path, build_arguments(msi_path, log_path, settings, host_name))
    if exit_code not in SUCCESS_EXIT_CODES:
        raise InstallError(f"msiexec exited with code {exit_code}, see {log_path}", exit_code=exit_code)

    if exit_code != 0:
        logger.warning(f"⚠️  Installer finished with {exit_code}: a reboot is required")
    else:
        logger.info("✅ Installation complete")
    return exit_code
