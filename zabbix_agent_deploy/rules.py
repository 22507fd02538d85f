"""
Configuration rule engine
Maps host identity to the Server / ServerActive / HostMetaData values
"""

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .classifier import HostIdentity, SystemRole

logger = logging.getLogger(__name__)

SERVER_METADATA = 'Windows servers'
CLIENT_METADATA = 'Windows clients'


class InstallDefaults(BaseModel):
    """Values handed to the installer, and the fallback for unset rule servers"""

    model_config = ConfigDict(frozen=True)

    server: str
    server_active: str
    host_metadata: str = CLIENT_METADATA


class RoutingRules(BaseModel):
    """Deployment-specific subnet prefixes and the servers they route to"""

    model_config = ConfigDict(frozen=True)

    proxy_subnet_prefix: Optional[str] = None
    primary_subnet_prefix: Optional[str] = None
    proxy_server: Optional[str] = None
    primary_server: Optional[str] = None


class ConfigAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    server: str
    server_active: str
    host_metadata: str


def _matches(prefix: Optional[str], identity: HostIdentity) -> bool:
    return bool(prefix) and identity.primary_ipv4.startswith(prefix)


def resolve(identity: HostIdentity, defaults: InstallDefaults, rules: RoutingRules) -> ConfigAssignment:
    """First matching rule wins; pure function of its arguments"""
    is_server = identity.system_role == SystemRole.SERVER

    def routed(rule_server: Optional[str], metadata: str) -> ConfigAssignment:
        # An unset rule server falls back field by field to the install-time values
        return ConfigAssignment(
            server=rule_server or defaults.server,
            server_active=rule_server or defaults.server_active,
            host_metadata=metadata,
        )

    if is_server and _matches(rules.proxy_subnet_prefix, identity):
        assignment = routed(rules.proxy_server, SERVER_METADATA)
    elif is_server and _matches(rules.primary_subnet_prefix, identity):
        assignment = routed(rules.primary_server, SERVER_METADATA)
    else:
        assignment = routed(rules.proxy_server, CLIENT_METADATA)

    logger.info(
        f"📋 Config assignment: Server={assignment.server} "
        f"ServerActive={assignment.server_active} HostMetaData={assignment.host_metadata}"
    )
    return assignment


class ConfigRuleEngine:
    """Binds a rule table so callers only pass identity and defaults"""

    def __init__(self, rules: RoutingRules):
        self.rules = rules

    def resolve(self, identity: HostIdentity, defaults: InstallDefaults) -> ConfigAssignment:
        return resolve(identity, defaults, self.rules)
