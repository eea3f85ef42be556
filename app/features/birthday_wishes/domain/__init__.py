"""
Domain subpackage for the birthday wish feature.
"""

from .models import (
    BIRTHDAY_METADATA_NAME,
    BirthdayUser,
    MetadataEntry,
    Route,
    RunDecision,
    RunOutcome,
    RunState,
    ScanReport,
    ScanResult,
)

__all__ = [
    "BIRTHDAY_METADATA_NAME",
    "BirthdayUser",
    "MetadataEntry",
    "Route",
    "RunDecision",
    "RunOutcome",
    "RunState",
    "ScanReport",
    "ScanResult",
]
