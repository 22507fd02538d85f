"""
Deployment settings
Environment variables provide defaults, command line flags override them
"""

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .rules import InstallDefaults, RoutingRules

AGENT_VERSION = os.getenv('ZABBIX_AGENT_VERSION', '7.4.0')
CDN_BASE = f"https://cdn.zabbix.com/zabbix/binaries/stable/{AGENT_VERSION.rsplit('.', 1)[0]}/{AGENT_VERSION}"

DEFAULT_INSTALLER_URL_X64 = f"{CDN_BASE}/zabbix_agent-{AGENT_VERSION}-windows-amd64-openssl.msi"
DEFAULT_INSTALLER_URL_X86 = f"{CDN_BASE}/zabbix_agent-{AGENT_VERSION}-windows-i386-openssl.msi"
DEFAULT_SERVICE_NAME = 'Zabbix Agent'
DEFAULT_CONFIG_PATH = r'C:\Program Files\Zabbix Agent\zabbix_agentd.conf'
DEFAULT_STAGING_DIR = r'C:\Temp'


class DeploymentSettings(BaseModel):
    """Everything one deployment run needs, fixed before the run starts"""

    model_config = ConfigDict(frozen=True)

    server: str = Field(..., min_length=1)
    server_active: str = Field(..., min_length=1)
    listen_port: int = Field(10050, gt=0, lt=65536)
    enable_path: str = '1'
    allow_key: str = 'AllowKey=system.run[*]'
    host_metadata: str = 'Windows clients'

    proxy_server: Optional[str] = None
    primary_server: Optional[str] = None
    proxy_subnet: Optional[str] = None
    primary_subnet: Optional[str] = None

    template_url: str = Field(..., min_length=1)
    installer_url_x64: str = DEFAULT_INSTALLER_URL_X64
    installer_url_x86: str = DEFAULT_INSTALLER_URL_X86

    service_name: str = DEFAULT_SERVICE_NAME
    config_path: str = DEFAULT_CONFIG_PATH
    staging_dir: str = DEFAULT_STAGING_DIR

    service_timeout: float = Field(300.0, ge=0)
    poll_interval: float = Field(2.0, gt=0)
    http_timeout: float = Field(60.0, gt=0)

    @property
    def install_defaults(self) -> InstallDefaults:
        return InstallDefaults(
            server=self.server,
            server_active=self.server_active,
            host_metadata=self.host_metadata,
        )

    @property
    def routing_rules(self) -> RoutingRules:
        return RoutingRules(
            proxy_subnet_prefix=self.proxy_subnet,
            primary_subnet_prefix=self.primary_subnet,
            proxy_server=self.proxy_server,
            primary_server=self.primary_server,
        )

    def installer_url(self, is_64bit: bool) -> str:
        return self.installer_url_x64 if is_64bit else self.installer_url_x86

    def staging_path(self, file_name: str) -> str:
        return self.staging_dir.rstrip('\\') + '\\' + file_name


def env_defaults() -> dict:
    """Settings values taken from the environment, unset variables omitted"""
    mapping = {
        'server': 'ZABBIX_SERVER',
        'server_active': 'ZABBIX_SERVER_ACTIVE',
        'listen_port': 'ZABBIX_LISTEN_PORT',
        'enable_path': 'ZABBIX_ENABLE_PATH',
        'allow_key': 'ZABBIX_ALLOW_KEY',
        'host_metadata': 'ZABBIX_HOST_METADATA',
        'proxy_server': 'ZABBIX_PROXY_SERVER',
        'primary_server': 'ZABBIX_PRIMARY_SERVER',
        'proxy_subnet': 'ZABBIX_PROXY_SUBNET',
        'primary_subnet': 'ZABBIX_PRIMARY_SUBNET',
        'template_url': 'ZABBIX_CONFIG_TEMPLATE_URL',
        'installer_url_x64': 'ZABBIX_INSTALLER_URL_X64',
        'installer_url_x86': 'ZABBIX_INSTALLER_URL_X86',
        'service_name': 'ZABBIX_SERVICE_NAME',
        'config_path': 'ZABBIX_CONFIG_PATH',
        'staging_dir': 'ZABBIX_STAGING_DIR',
        'service_timeout': 'ZABBIX_SERVICE_TIMEOUT',
        'poll_interval': 'ZABBIX_POLL_INTERVAL',
    }
    values = {}
    for field, env_name in mapping.items():
        value = os.getenv(env_name)
        if value:
            values[field] = value
    return values
