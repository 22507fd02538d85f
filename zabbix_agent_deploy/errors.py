"""
Deployment error hierarchy
Every failure the deployment pipeline knows how to report derives from DeploymentError
"""

from typing import Optional


class DeploymentError(Exception):
    """Base class for deployment failures"""


class PowerShellError(DeploymentError):
    """PowerShell could not be launched or the WinRM transport failed"""


class PrivilegeError(DeploymentError):
    """Process does not hold administrative privileges"""


class ClassificationError(DeploymentError):
    """Host identity (primary IPv4 / system role) could not be determined"""


class FetchError(DeploymentError):
    """Artifact download failed"""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class InstallError(DeploymentError):
    """Installer finished with a failing exit code"""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code


class ServiceControlError(DeploymentError):
    """Service manager rejected a query, stop or start"""


class ServiceTimeoutError(ServiceControlError, TimeoutError):
    """Service did not reach the expected status in time"""


class ConfigTemplateError(DeploymentError):
    """Configuration template is empty or cannot be decoded"""
