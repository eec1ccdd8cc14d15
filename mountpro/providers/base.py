"""
Provider base interfaces and abstract classes.

This module defines the abstractions the sync engine needs from its
external collaborators:
- POI search providers (bounding-box and name queries)
- Live info (enrichment) providers
- Standardized error taxonomy and health checks
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from dataclasses import dataclass
from enum import Enum
import time
import logging


class ProviderStatus(Enum):
    """Provider health status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Result of a provider health check."""
    status: ProviderStatus
    latency_ms: float
    message: str
    details: Optional[Dict[str, Any]] = None

    @property
    def is_healthy(self) -> bool:
        return self.status == ProviderStatus.HEALTHY


@dataclass
class ProviderMetadata:
    """Metadata about a provider."""
    name: str
    version: str
    description: str
    capabilities: List[str]
    rate_limit: Optional[int] = None  # requests per minute


class Provider(ABC):
    """Base provider interface."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    async def get_metadata(self) -> ProviderMetadata:
        pass

    @abstractmethod
    async def ping(self) -> None:
        """Issue the cheapest possible request; raise ProviderError on failure."""
        pass

    async def health_check(self) -> HealthCheckResult:
        """Check provider health by timing a ping."""
        start_time = time.time()
        try:
            await self.ping()
            latency_ms = (time.time() - start_time) * 1000
            return HealthCheckResult(
                status=ProviderStatus.HEALTHY,
                latency_ms=latency_ms,
                message=f"Provider {self.__class__.__name__} is healthy",
                details={"latency_ms": latency_ms}
            )
        except ProviderError as e:
            latency_ms = (time.time() - start_time) * 1000
            return HealthCheckResult(
                status=ProviderStatus.UNHEALTHY,
                latency_ms=latency_ms,
                message=f"Provider health check failed: {str(e)}",
                details={"error": str(e)}
            )


class PoiProvider(Provider):
    """Remote geospatial POI source.

    Implementations return `mountpro.src.models.POI` records.
    """

    @abstractmethod
    async def search_area(self, bounds, poi_type=None, token=None) -> list:
        """Fetch POIs inside a bounding box.

        Args:
            bounds: `Bounds` of the current viewport
            poi_type: Optional `POIType` to restrict the query to
            token: Optional `FetchToken`; once cancelled the provider must
                not return results

        Returns:
            List of POI

        Raises:
            NetworkFailureError: Provider unreachable or non-success status
            MalformedResponseError: Payload could not be turned into POIs
            asyncio.CancelledError: The token was cancelled
        """
        pass

    @abstractmethod
    async def search_by_name(self, query: str) -> list:
        """Fetch POIs whose name matches a free-text query (possibly empty list)."""
        pass


class LiveInfoProvider(Provider):
    """Best-effort enrichment source for a single POI."""

    @abstractmethod
    async def fetch_live_info(self, poi):
        """Return a `LiveInfo` record for the POI.

        Raises:
            EnrichmentUnavailableError: If the service cannot answer
        """
        pass


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, provider_name: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(message)
        self.provider_name = provider_name
        self.details = details or {}


class NetworkFailureError(ProviderError):
    """Raised when a provider is unreachable or answers with a non-success status."""
    pass


class ProviderTimeoutError(NetworkFailureError):
    """Raised when provider request times out."""
    pass


class ProviderRateLimitError(NetworkFailureError):
    """Raised when provider rate limit is exceeded."""
    pass


class MalformedResponseError(ProviderError):
    """Raised when a provider returns data that cannot be turned into POIs."""
    pass


class EnrichmentUnavailableError(ProviderError):
    """Raised when the live info service cannot answer."""
    pass
