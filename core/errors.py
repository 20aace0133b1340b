"""
Error taxonomy for the Proximity Resolver.

Service and transport failures are strategy-fatal but never resolver-fatal:
the resolver records them as warnings and continues with whichever query
strategy succeeded. Malformed geometry is feature-local. Only contract
violations at the public boundary surface as exceptions to the caller.
"""

from typing import Any, Dict, Optional


class ProximityResolverError(Exception):
    """Base class for all resolver errors."""


class FeatureServiceError(ProximityResolverError):
    """A query against a feature service failed."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class ServiceError(FeatureServiceError):
    """The service answered with an explicit ``error`` payload."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        code: Optional[int] = None,
        details: Optional[Any] = None
    ):
        super().__init__(message, url)
        self.code = code
        self.details = details

    @classmethod
    def from_payload(cls, payload: Dict, url: Optional[str] = None) -> 'ServiceError':
        error = payload.get('error')
        if isinstance(error, dict):
            return cls(
                error.get('message') or 'Unknown error',
                url=url,
                code=error.get('code'),
                details=error.get('details')
            )
        return cls(str(error), url=url)


class TransportError(FeatureServiceError):
    """Network, HTTP status or response decoding failure."""


class MalformedGeometryError(ProximityResolverError):
    """A feature geometry is missing or has too few vertices for its kind."""


class InvalidInputError(ProximityResolverError, ValueError):
    """A caller violated the input contract (bad point, radius or batch size)."""
