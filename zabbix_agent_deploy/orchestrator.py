"""
Provisioning orchestrator
Stop the agent, fetch artifacts, install, rewrite the config and start it again
"""

import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from . import installer
from .classifier import HostClassifier, HostIdentity
from .errors import DeploymentError, PrivilegeError
from .fetcher import ArtifactFetcher
from .rewriter import render
from .rules import ConfigAssignment, ConfigRuleEngine
from .service import ServiceController

logger = logging.getLogger(__name__)

MSI_NAME = 'zabbix_agent.msi'
INSTALL_LOG_NAME = 'zabbix_agent_install.log'


class Stage(str, Enum):
    IDLE = 'Idle'
    STOPPING = 'Stopping'
    FETCHING = 'Fetching'
    INSTALLING = 'Installing'
    BACKING_UP_CONFIG = 'BackingUpConfig'
    REWRITING = 'Rewriting'
    STARTING = 'Starting'
    DONE = 'Done'
    FAILED = 'Failed'


class DeploymentResult(BaseModel):
    success: bool
    stage: Stage
    failed_stage: Optional[Stage] = None
    error_type: Optional[str] = None
    error: Optional[str] = None
    host: Optional[str] = None
    identity: Optional[HostIdentity] = None
    assignment: Optional[ConfigAssignment] = None
    installer_exit_code: Optional[int] = None
    backup_path: Optional[str] = None
    missing_markers: List[str] = []
    duration: float = 0.0


def backup_name(config_path: str, now: datetime) -> str:
    return f"{config_path}.{now.strftime('%Y%m%d-%H%M%S')}.bak"


class ProvisioningOrchestrator:
    """Runs one deployment against one host; never retries, never rolls back"""

    def __init__(self, host, settings, fetcher: Optional[ArtifactFetcher] = None,
                 services: Optional[ServiceController] = None, clock=datetime.now):
        self.host = host
        self.settings = settings
        self.fetcher = fetcher or ArtifactFetcher(timeout=settings.http_timeout)
        self.services = services or ServiceController(
            host, poll_interval=settings.poll_interval, timeout=settings.service_timeout
        )
        self.rules = ConfigRuleEngine(settings.routing_rules)
        self.clock = clock
        self.stage = Stage.IDLE

    def _enter(self, stage: Stage, banner: str):
        self.stage = stage
        step = list(Stage).index(stage)
        logger.info(f"[{step}/6] {banner}")

    def check_privileges(self):
        if not self.host.is_admin():
            raise PrivilegeError(f"Administrative privileges are required on {self.host.describe()}")
        logger.info("✓ Running with administrative privileges")

    def run(self) -> DeploymentResult:
        started = self.clock()
        self.stage = Stage.IDLE
        result = DeploymentResult(success=False, stage=Stage.IDLE, host=self.host.describe())

        try:
            self._run(result)
        except DeploymentError as e:
            logger.error(f"❌ {self.stage.value} failed: {e}")
            result.failed_stage = self.stage
            result.error_type = type(e).__name__
            result.error = str(e)
            if getattr(e, 'exit_code', None) is not None:
                result.installer_exit_code = e.exit_code
            self.stage = Stage.FAILED
        else:
            result.success = True

        result.stage = self.stage
        result.duration = (self.clock() - started).total_seconds()
        return result

    def _run(self, result: DeploymentResult):
        settings = self.settings

        self.check_privileges()

        # Identity and assignment are fixed before anything on the host changes
        identity = HostClassifier(self.host).classify()
        assignment = self.rules.resolve(identity, settings.install_defaults)
        host_name = self.host.computer_name()
        result.identity = identity
        result.assignment = assignment

        self._enter(Stage.STOPPING, f"Stopping '{settings.service_name}'")
        self.services.stop(settings.service_name)

        self._enter(Stage.FETCHING, "Fetching installer and config template")
        is_64bit = self.host.is_64bit()
        msi_path = settings.staging_path(MSI_NAME)
        self.host.ensure_directory(settings.staging_dir)
        self.host.download(settings.installer_url(is_64bit), msi_path)
        template = self.fetcher.fetch_template(settings.template_url)

        self._enter(Stage.INSTALLING, f"Installing {'64' if is_64bit else '32'}-bit agent")
        result.installer_exit_code = installer.install(
            self.host, msi_path, settings.staging_path(INSTALL_LOG_NAME), settings, host_name
        )

        self._enter(Stage.BACKING_UP_CONFIG, "Backing up existing config")
        if self.host.path_exists(settings.config_path):
            backup = backup_name(settings.config_path, self.clock())
            self.host.rename(settings.config_path, backup)
            result.backup_path = backup
            logger.info(f"💾 {settings.config_path} -> {backup}")
        else:
            logger.info(f"✓ No existing config at {settings.config_path}")

        self._enter(Stage.REWRITING, "Writing agent config")
        rendered = render(template, assignment, identity.primary_ipv4, host_name)
        result.missing_markers = rendered.missing_markers
        self.host.write_text(settings.config_path, rendered.text())
        logger.info(f"✅ Config written to {settings.config_path}")

        self._enter(Stage.STARTING, f"Starting '{settings.service_name}'")
        self.services.start(settings.service_name)

        self.stage = Stage.DONE
