"""
Error taxonomy for the node launcher
"""
from typing import Optional


class BootstrapError(Exception):
    """Base class for every failure that aborts a bootstrap run"""


class UnsupportedPlatform(BootstrapError):
    """No prebuilt artifact exists for the requested OS/architecture pair"""

    def __init__(self, os_name: str, arch: str):
        self.os_name = os_name
        self.arch = arch
        super().__init__(f"Unsupported platform: {os_name}/{arch}")


class ConfigurationError(BootstrapError):
    """Invalid or inconsistent launcher configuration"""


class AddressFetchFailure(BootstrapError):
    """Contract addresses could not be fetched or were incomplete"""


class DownloadFailure(BootstrapError):
    """Version lookup, artifact download or extraction failed"""


class MissingExecutable(BootstrapError):
    """The node executable is absent or cannot be launched"""


class FundingTimeout(BootstrapError):
    """The node account was not funded within the configured timeout"""


class RegistrationFailure(BootstrapError):
    """The role-specific registration action failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RpcError(BootstrapError):
    """A JSON-RPC call against the settlement endpoint failed"""
