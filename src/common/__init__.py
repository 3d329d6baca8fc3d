"""
Shared utilities: errors, HTTP session, logging setup.
"""

from .errors import (
    MayHighsError,
    ConfigurationError,
    NotFoundError,
    AuthenticationError,
    RemoteServiceError,
    NoDataError,
    DataFormatError,
)
from .http import create_session, DEFAULT_TIMEOUT
from .logging_config import configure_logging

__all__ = [
    'MayHighsError',
    'ConfigurationError',
    'NotFoundError',
    'AuthenticationError',
    'RemoteServiceError',
    'NoDataError',
    'DataFormatError',
    'create_session',
    'DEFAULT_TIMEOUT',
    'configure_logging',
]
