"""
NetBox sync error taxonomy.

Transport and parsing failures are converted into these at each component
boundary; nothing in the sync path retries.
"""
from enum import Enum
from typing import Dict, Optional


class NetBoxError(Exception):
    """Base class for all NetBox integration errors"""


class ConnectivityError(NetBoxError):
    """The NetBox host did not accept a TCP connection"""


class AuthError(NetBoxError):
    """Token request failed or returned no token"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FetchError(NetBoxError):
    """A listing call failed; whatever was fetched before it is kept"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AllocationErrorReason(str, Enum):
    INVALID_ADDRESS = "invalid_address"
    UPSTREAM_FAILURE = "upstream_failure"


class AllocationError(NetBoxError):
    """A single host record could not be reserved"""

    def __init__(self, reason: AllocationErrorReason, message: str):
        super().__init__(message)
        self.reason = reason


class ValidationError(NetBoxError):
    """Pool server configuration is invalid; errors are keyed by field name"""

    def __init__(self, errors: Dict[str, str], message: str = "Invalid pool server configuration"):
        super().__init__(message)
        self.errors = errors
