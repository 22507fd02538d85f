"""
Pytest configuration and shared fixtures
"""
import pytest
import os
import sys
import json
from unittest.mock import MagicMock

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from zabbix_agent_deploy.powershell import PowerShellResult


class FakeShell:
    """
    Stand-in PowerShell runner.

    Responses are registered per script substring; a list of responses
    is consumed in order and its last entry repeats.
    """

    def __init__(self, name='fake-host'):
        self.name = name
        self.scripts = []
        self.responses = {}

    def on(self, pattern, *outputs, status=0, stderr=''):
        results = []
        for output in outputs or ('',):
            if isinstance(output, PowerShellResult):
                results.append(output)
            else:
                results.append(PowerShellResult(status, str(output).encode(), stderr.encode()))
        self.responses[pattern] = results
        return self

    def run(self, script):
        self.scripts.append(script)
        for pattern, results in self.responses.items():
            if pattern in script:
                return results.pop(0) if len(results) > 1 else results[0]
        return PowerShellResult(0)

    def ran(self, pattern):
        return [script for script in self.scripts if pattern in script]

    def describe(self):
        return self.name


@pytest.fixture
def fake_shell():
    return FakeShell()


@pytest.fixture
def sample_addresses():
    """Get-NetIPAddress records as the IPv4 query emits them"""
    return [
        {
            'IPAddress': '127.0.0.1', 'InterfaceIndex': 1, 'InterfaceAlias': 'Loopback Pseudo-Interface 1',
            'AddressState': 'Preferred', 'PrefixOrigin': 'WellKnown', 'ValidLifetimeSeconds': 922337203685,
        },
        {
            'IPAddress': '192.168.1.5', 'InterfaceIndex': 12, 'InterfaceAlias': 'Ethernet',
            'AddressState': 'Preferred', 'PrefixOrigin': 'Dhcp', 'ValidLifetimeSeconds': 691200,
        },
        {
            'IPAddress': '169.254.10.20', 'InterfaceIndex': 7, 'InterfaceAlias': 'Ethernet 2',
            'AddressState': 'Tentative', 'PrefixOrigin': 'WellKnown', 'ValidLifetimeSeconds': 922337203685,
        },
    ]


@pytest.fixture
def windows_shell(fake_shell, sample_addresses):
    """A healthy 64-bit workstation with no agent installed"""
    fake_shell.on('IsInRole', 'True')
    fake_shell.on('Get-NetIPAddress', json.dumps(sample_addresses))
    fake_shell.on('ProductType', '1')
    fake_shell.on('$env:COMPUTERNAME', 'WIN-HOST1')
    fake_shell.on('Is64BitOperatingSystem', 'True')
    fake_shell.on('Get-Service', '')
    fake_shell.on('Test-Path', 'False')
    fake_shell.on('Start-Process msiexec', status=0)
    return fake_shell


@pytest.fixture
def sample_template_lines():
    return ["# cfg", "HostInterface=", "Hostname=", "Server=", "ServerActive=", "HostMetaData="]


@pytest.fixture
def deployment_settings():
    from zabbix_agent_deploy.settings import DeploymentSettings

    return DeploymentSettings(
        server='10.0.0.10',
        server_active='10.0.0.10',
        proxy_server='10.145.0.2',
        primary_server='10.0.0.10',
        proxy_subnet='10.145.',
        primary_subnet='10.20.',
        template_url='http://repo.example.local/zabbix_agentd.conf',
        poll_interval=0.01,
        service_timeout=5,
    )


@pytest.fixture
def mock_fetcher(sample_template_lines):
    """ArtifactFetcher double returning the sample template"""
    from zabbix_agent_deploy.rewriter import ConfigTemplate

    fetcher = MagicMock()
    fetcher.fetch_template.return_value = ConfigTemplate(sample_template_lines)
    return fetcher
