"""
Unit tests for the Windows host facade and PowerShell helpers
"""
import base64
import re
import pytest
from unittest.mock import MagicMock, patch

from zabbix_agent_deploy import host as host_module
from zabbix_agent_deploy.errors import FetchError, PowerShellError
from zabbix_agent_deploy.host import LocalWindowsHost, WindowsHost
from zabbix_agent_deploy.powershell import (
    SCRIPT_PREAMBLE,
    LocalPowerShell,
    PowerShellResult,
    WinRMPowerShell,
    ps_quote,
)


def _written_bytes(shell):
    chunks = [re.search(r"FromBase64String\('([^']*)'\)", s).group(1) for s in shell.ran('FromBase64String')]
    return b''.join(base64.b64decode(chunk) for chunk in chunks)


class TestPowerShellHelpers:
    """Test quoting and result wrapping"""

    def test_ps_quote_escapes_single_quotes(self):
        assert ps_quote("O'Brien") == "'O''Brien'"
        assert ps_quote(10050) == "'10050'"

    def test_result_decodes_output(self):
        result = PowerShellResult(0, b'Running\r\n', b'')

        assert result.ok
        assert result.stdout == 'Running'

    @patch('zabbix_agent_deploy.powershell.subprocess.run')
    def test_local_shell_uses_encoded_command(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout=b'ok', stderr=b'')

        result = LocalPowerShell().run('Get-Date')

        command = mock_run.call_args[0][0]
        assert command[0] == 'powershell.exe'
        script = base64.b64decode(command[command.index('-EncodedCommand') + 1]).decode('utf_16_le')
        assert script.endswith('Get-Date')
        assert "$ErrorActionPreference = 'Stop'" in script
        assert result.stdout == 'ok'

    @patch('zabbix_agent_deploy.powershell.subprocess.run', side_effect=FileNotFoundError('powershell.exe'))
    def test_local_shell_missing_executable(self, mock_run):
        with pytest.raises(PowerShellError):
            LocalPowerShell().run('Get-Date')

    def test_winrm_shell_wraps_session(self):
        session = MagicMock()
        session.run_ps.return_value = MagicMock(status_code=0, std_out=b'Connected', std_err=b'')
        shell = WinRMPowerShell('192.168.1.129', 'admin', 'secret', session=session)

        shell.check_connection()

        assert shell.describe() == '192.168.1.129'
        session.run_ps.assert_called_once()

    def test_winrm_connection_failure(self):
        session = MagicMock()
        session.run_ps.return_value = MagicMock(status_code=1, std_out=b'', std_err=b'denied')
        shell = WinRMPowerShell('192.168.1.129', 'admin', 'secret', session=session)

        with pytest.raises(PowerShellError, match='denied'):
            shell.check_connection()


class TestWindowsHostQueries:
    """Test query parsing"""

    def test_is_admin(self, fake_shell):
        fake_shell.on('IsInRole', 'True')
        assert WindowsHost(fake_shell).is_admin() is True

        fake_shell.on('IsInRole', 'False')
        assert WindowsHost(fake_shell).is_admin() is False

    def test_is_64bit(self, fake_shell):
        fake_shell.on('Is64BitOperatingSystem', 'False')
        assert WindowsHost(fake_shell).is_64bit() is False

    def test_no_ipv4_addresses(self, fake_shell):
        fake_shell.on('Get-NetIPAddress', '')
        assert WindowsHost(fake_shell).ipv4_addresses() == []

    def test_unparsable_json_raises(self, fake_shell):
        fake_shell.on('Get-NetIPAddress', 'not json')
        with pytest.raises(PowerShellError, match='unparsable'):
            WindowsHost(fake_shell).ipv4_addresses()


class TestWindowsHostFiles:
    """Test PowerShell-backed file operations"""

    def test_write_text_small(self, fake_shell):
        WindowsHost(fake_shell).write_text(r'C:\agent.conf', 'Server=10.0.0.1\r\n')

        scripts = fake_shell.ran('FromBase64String')
        assert len(scripts) == 1
        assert '[IO.FileMode]::Create' in scripts[0]
        assert _written_bytes(fake_shell) == b'Server=10.0.0.1\r\n'

    def test_write_text_chunks(self, fake_shell):
        text = 'x' * (host_module.WRITE_CHUNK_SIZE * 2 + 10)

        WindowsHost(fake_shell).write_text(r'C:\agent.conf', text)

        scripts = fake_shell.ran('FromBase64String')
        assert len(scripts) == 3
        assert all('[IO.FileMode]::Append' in s for s in scripts[1:])
        assert _written_bytes(fake_shell) == text.encode()

    def test_write_chunks_fit_winrm_command_line(self, fake_shell):
        """Every chunk script, encoded the way run_ps encodes it, fits on one command line"""
        path = 'C:\\Program Files\\Zabbix Agent\\' + 'd' * 200 + '\\zabbix_agentd.conf'

        WindowsHost(fake_shell).write_text(path, 'A' * 20000)

        for script in fake_shell.ran('FromBase64String'):
            encoded = base64.b64encode((SCRIPT_PREAMBLE + script).encode('utf_16_le')).decode('ascii')
            command_line = f'powershell -encodedcommand {encoded}'
            assert len(command_line) <= host_module.COMMAND_LINE_LIMIT
        assert _written_bytes(fake_shell) == b'A' * 20000

    def test_download_failure_raises_fetch_error(self, fake_shell):
        fake_shell.on('Invoke-WebRequest', '', status=1, stderr='(404) Not Found')

        with pytest.raises(FetchError, match='404'):
            WindowsHost(fake_shell).download('http://cdn/agent.msi', r'C:\Temp\agent.msi')

    def test_rename_uses_move_item(self, fake_shell):
        WindowsHost(fake_shell).rename(r'C:\a.conf', r'C:\a.conf.bak')

        assert "Move-Item -LiteralPath 'C:\\a.conf' -Destination 'C:\\a.conf.bak'" in fake_shell.scripts[0]


class TestLocalWindowsHost:
    """Test local file shortcuts"""

    def test_local_files(self, fake_shell, tmp_path):
        local = LocalWindowsHost(shell=fake_shell, fetcher=MagicMock())
        config = tmp_path / 'zabbix_agentd.conf'

        local.write_text(str(config), 'Hostname=WIN-A\r\n')
        assert local.path_exists(str(config))
        assert config.read_bytes() == b'Hostname=WIN-A\r\n'

        local.rename(str(config), str(config) + '.bak')
        assert not local.path_exists(str(config))
        assert fake_shell.scripts == []

    def test_local_download_uses_fetcher(self, fake_shell):
        fetcher = MagicMock()
        LocalWindowsHost(shell=fake_shell, fetcher=fetcher).download('http://cdn/agent.msi', r'C:\Temp\agent.msi')

        fetcher.download.assert_called_once_with('http://cdn/agent.msi', r'C:\Temp\agent.msi')
