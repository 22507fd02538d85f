"""
Host classification
Works out which IPv4 address represents the host and whether it is a server
"""

import ipaddress
import logging
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from pydantic import BaseModel, ConfigDict

from .errors import ClassificationError

logger = logging.getLogger(__name__)

SHORT_LEASE_SECONDS = 24 * 60 * 60


class SystemRole(str, Enum):
    WORKSTATION = 'Workstation'
    SERVER = 'Server'
    DOMAIN_CONTROLLER = 'DomainController'


# Win32_OperatingSystem.ProductType
PRODUCT_TYPES = {
    1: SystemRole.WORKSTATION,
    2: SystemRole.DOMAIN_CONTROLLER,
    3: SystemRole.SERVER,
}


class HostIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary_ipv4: str
    system_role: SystemRole


def is_candidate(address: Dict[str, Any]) -> bool:
    """Preferred address that is either DHCP-assigned or on a short lease"""
    if address.get('AddressState') != 'Preferred':
        return False
    lifetime = address.get('ValidLifetimeSeconds')
    short_lease = lifetime is not None and int(lifetime) < SHORT_LEASE_SECONDS
    return short_lease or address.get('PrefixOrigin') == 'Dhcp'


def select_primary_ipv4(addresses: Iterable[Dict[str, Any]]) -> Optional[str]:
    """
    Pick the primary IPv4 address from Get-NetIPAddress records.

    Ties are broken by lowest interface index, then lowest address,
    so the answer never depends on enumeration order.
    """
    candidates = []
    for address in addresses:
        if not is_candidate(address):
            continue
        try:
            ip = ipaddress.IPv4Address(address.get('IPAddress', ''))
        except ValueError:
            logger.debug(f"Skipping malformed address record: {address}")
            continue
        candidates.append((int(address.get('InterfaceIndex') or 0), ip))

    if not candidates:
        return None
    return str(min(candidates)[1])


def role_from_product_type(product_type: Optional[int]) -> SystemRole:
    try:
        return PRODUCT_TYPES[product_type]
    except KeyError:
        raise ClassificationError(f"Unknown Windows product type: {product_type!r}")


class HostClassifier:
    """Derives HostIdentity from a WindowsHost"""

    def __init__(self, host):
        self.host = host

    def classify(self) -> HostIdentity:
        addresses = self.host.ipv4_addresses(error=ClassificationError)
        primary = select_primary_ipv4(addresses)
        if primary is None:
            raise ClassificationError(
                f"No preferred DHCP or short-lease IPv4 address among {len(addresses)} address(es)"
            )

        role = role_from_product_type(self.host.product_type(error=ClassificationError))

        identity = HostIdentity(primary_ipv4=primary, system_role=role)
        logger.info(f"🖥️  Host identity: {identity.primary_ipv4} ({identity.system_role.value})")
        return identity
