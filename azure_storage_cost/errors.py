"""Error taxonomy for classification, validation, pricing and evaluation."""

from __future__ import annotations

from typing import Iterable, List, Optional


class StorageCostError(Exception):
    """Base class for every error raised by this package."""


class ClassificationError(StorageCostError, ValueError):
    """A resource configuration could not be mapped to a permutation."""


class IncompatibleFlags(ClassificationError):
    """Cool access and double encryption were both requested."""


class UnsupportedConfiguration(ClassificationError):
    """The (tier, flags, redundancy) tuple matches no catalogue entry."""


class ValidationFailed(StorageCostError):
    """Normalized inputs violate one or more constraints.

    ``issues`` holds every violated constraint, not only the first one.
    """

    def __init__(self, issues: Iterable["object"], resource_id: str = "") -> None:
        self.issues = list(issues)
        self.resource_id = resource_id
        summary = "; ".join(getattr(i, "message", str(i)) for i in self.issues)
        super().__init__(f"Validation failed for '{resource_id}': {summary}")


class PriceUnavailable(StorageCostError):
    """No fresh, stale or default price exists for a meter."""

    def __init__(self, region: str, meter_key: str, reason: str = "") -> None:
        self.region = region
        self.meter_key = meter_key
        self.reason = reason
        msg = f"No price available for {meter_key} in {region}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class FormulaError(StorageCostError):
    """A formula could not be evaluated; no components are produced."""

    def __init__(self, message: str, roles: Optional[List[str]] = None) -> None:
        self.roles = list(roles or [])
        super().__init__(message)


class MetricsParseError(StorageCostError, ValueError):
    """A historical-metrics payload does not match a known schema version."""


class InvalidMeterKey(StorageCostError, ValueError):
    """A meter key or one of its components is malformed."""


class RetailApiError(StorageCostError):
    """The Retail Prices API failed after all retries."""


class BillingQueryError(StorageCostError):
    """The actual-billing query failed."""
