"""waypost models.

Pydantic models for endpoints, server profiles, strategies, persisted state
and the tagged results produced by every layer.
"""

# Base models
from waypost.models.base import WaypostBaseModel

# Enums
from waypost.models.enums import (
    Approach,
    BlockAction,
    BlockId,
    Capability,
    EndpointKind,
    EndpointStatus,
    ErrorKind,
    HostingTier,
    PlatformType,
    Recommendation,
)

# Entities
from waypost.models.entities import (
    MANUAL_INTERVENTION_STRATEGY,
    ContentGenerator,
    Endpoint,
    ServerProfile,
    Strategy,
    StrategyState,
    guess_content_type,
)

# Results
from waypost.models.results import (
    BlockResult,
    CleanupSummary,
    ErrorInfo,
    ExecutionResult,
    ProbeResult,
    RouteTestReport,
)

__all__ = [
    "WaypostBaseModel",
    "Approach",
    "BlockAction",
    "BlockId",
    "Capability",
    "EndpointKind",
    "EndpointStatus",
    "ErrorKind",
    "HostingTier",
    "PlatformType",
    "Recommendation",
    "MANUAL_INTERVENTION_STRATEGY",
    "ContentGenerator",
    "Endpoint",
    "ServerProfile",
    "Strategy",
    "StrategyState",
    "guess_content_type",
    "BlockResult",
    "CleanupSummary",
    "ErrorInfo",
    "ExecutionResult",
    "ProbeResult",
    "RouteTestReport",
]
