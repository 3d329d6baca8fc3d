"""
Error types for the May highs pipeline.

Fatal for a run: AuthenticationError, NotFoundError, ConfigurationError.
Per-station: RemoteServiceError and NoDataError are captured by the fetcher
and turned into failure markers.
"""

from typing import Optional


class MayHighsError(Exception):
    """Base class for all pipeline errors"""
    pass


class ConfigurationError(MayHighsError):
    """Raised when the run configuration is invalid or incomplete"""
    pass


class NotFoundError(MayHighsError):
    """Raised when a named region (or other lookup target) does not exist"""
    pass


class AuthenticationError(MayHighsError):
    """Raised when an API credential is missing or rejected"""

    def __init__(self, service: str, message: str = "credential rejected"):
        self.service = service
        super().__init__(f"{service}: {message}")


class RemoteServiceError(MayHighsError):
    """Raised on transport or service failures talking to a remote API"""

    def __init__(
        self,
        service: str,
        message: str,
        status_code: Optional[int] = None
    ):
        self.service = service
        self.status_code = status_code
        prefix = f"{service} HTTP {status_code}" if status_code else service
        super().__init__(f"{prefix}: {message}")


class NoDataError(RemoteServiceError):
    """Raised when a service answers but has no observations for a station"""

    def __init__(self, service: str, station_code: str):
        self.station_code = station_code
        super().__init__(service, f"no data for station {station_code}")


class DataFormatError(MayHighsError):
    """Raised when a downloaded file or response cannot be parsed"""
    pass
