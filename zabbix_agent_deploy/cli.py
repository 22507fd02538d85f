"""
Command line entry point
Deploy the Zabbix agent to this machine, or to one remote host over WinRM
"""

import argparse
import logging
import os
import sys
import time

from pydantic import ValidationError

from .errors import PowerShellError
from .host import LocalWindowsHost, WindowsHost
from .fetcher import ArtifactFetcher
from .orchestrator import ProvisioningOrchestrator, Stage
from .powershell import WinRMPowerShell
from .settings import DeploymentSettings, env_defaults

logger = logging.getLogger(__name__)

SETTINGS_FLAGS = (
    ('--server', 'server', 'Zabbix server address passed to the installer'),
    ('--server-active', 'server_active', 'Active checks server (default: --server)'),
    ('--listen-port', 'listen_port', 'Agent listen port (default: 10050)'),
    ('--enable-path', 'enable_path', 'Add the agent to PATH (default: 1)'),
    ('--allow-key', 'allow_key', 'Allow/deny key policy (default: AllowKey=system.run[*])'),
    ('--host-metadata', 'host_metadata', 'Install-time host metadata (default: Windows clients)'),
    ('--proxy-server', 'proxy_server', 'Server written to the config by the proxy rules'),
    ('--primary-server', 'primary_server', 'Server written to the config for the primary subnet'),
    ('--proxy-subnet', 'proxy_subnet', 'Address prefix routed to the proxy server'),
    ('--primary-subnet', 'primary_subnet', 'Address prefix routed to the primary server'),
    ('--template-url', 'template_url', 'URL of the agent config template'),
    ('--installer-url-x64', 'installer_url_x64', '64-bit MSI URL'),
    ('--installer-url-x86', 'installer_url_x86', '32-bit MSI URL'),
    ('--service-name', 'service_name', 'Windows service name'),
    ('--config-path', 'config_path', 'Agent config file path on the host'),
    ('--staging-dir', 'staging_dir', 'Download directory on the host'),
    ('--service-timeout', 'service_timeout', 'Seconds to wait for service stop/start, 0 waits forever'),
    ('--poll-interval', 'poll_interval', 'Seconds between service status polls'),
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='zabbix-agent-deploy',
        description='Install and configure the Zabbix agent on a Windows host'
    )
    for flag, dest, help_text in SETTINGS_FLAGS:
        parser.add_argument(flag, dest=dest, default=None, help=help_text)

    remote = parser.add_argument_group('remote target (WinRM)')
    remote.add_argument('--target', default=os.getenv('WIN_HOST'), help='Remote Windows host, omit to deploy locally')
    remote.add_argument('--user', default=os.getenv('WIN_USER'), help='WinRM user')
    remote.add_argument('--password', default=os.getenv('WIN_PASS'), help='WinRM password')
    remote.add_argument('--transport', default='ntlm', help='WinRM transport (default: ntlm)')

    parser.add_argument('--json', action='store_true', help='Print the deployment result as JSON')
    parser.add_argument('--exit-delay', type=float, default=0, help='Seconds to pause before exiting')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def settings_from_args(args: argparse.Namespace) -> DeploymentSettings:
    values = env_defaults()
    for _, dest, _ in SETTINGS_FLAGS:
        value = getattr(args, dest)
        if value is not None:
            values[dest] = value
    if values.get('server') and not values.get('server_active'):
        values['server_active'] = values['server']
    return DeploymentSettings(**values)


def build_host(args: argparse.Namespace, settings: DeploymentSettings) -> WindowsHost:
    if not args.target:
        return LocalWindowsHost(fetcher=ArtifactFetcher(timeout=settings.http_timeout))

    if not args.user or not args.password:
        raise PowerShellError('--user and --password are required with --target')
    shell = WinRMPowerShell(args.target, args.user, args.password, transport=args.transport)
    shell.check_connection()
    return WindowsHost(shell)


def stage_label(stage: Stage) -> str:
    # Privilege and classification checks run before the first mutating step
    return 'preflight checks' if stage == Stage.IDLE else stage.value


def print_summary(result):
    print("\n" + "=" * 60)
    if result.success:
        print("  ✅ Deployment Complete!")
    else:
        print(f"  ❌ Deployment failed during {stage_label(result.failed_stage)}")
    print("=" * 60)
    print(f"  Target:        {result.host}")
    if result.identity:
        print(f"  Address:       {result.identity.primary_ipv4} ({result.identity.system_role.value})")
    if result.assignment:
        print(f"  Server:        {result.assignment.server}")
        print(f"  ServerActive:  {result.assignment.server_active}")
        print(f"  HostMetaData:  {result.assignment.host_metadata}")
    if result.backup_path:
        print(f"  Backup:        {result.backup_path}")
    if result.missing_markers:
        print(f"  ⚠ Not set:     {', '.join(result.missing_markers)}")
    if result.error:
        print(f"  Error:         {result.error_type}: {result.error}")
    print(f"  Duration:      {result.duration:.1f}s")
    print("")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=logging.DEBUG if args.verbose else logging.INFO
    )

    try:
        settings = settings_from_args(args)
    except ValidationError as e:
        parser.error(f"invalid settings:\n{e}")

    print("=" * 60)
    print("  🪟 Zabbix Agent Windows Deployment")
    print("=" * 60)
    print(f"Target: {args.target or 'localhost'}")
    print(f"Zabbix Server: {settings.server}")
    print("")

    try:
        host = build_host(args, settings)
    except PowerShellError as e:
        logger.error(f"❌ {e}")
        return 1

    result = ProvisioningOrchestrator(host, settings).run()

    if args.json:
        print(result.model_dump_json(indent=2))
    else:
        print_summary(result)

    if args.exit_delay:
        time.sleep(args.exit_delay)
    return 0 if result.success else 1


if __name__ == '__main__':
    sys.exit(main())
