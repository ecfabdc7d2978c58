"""
Typed delivery outcome records merged into a job's metadata under the
"delivery" key. Bump METADATA_VERSION when a field changes meaning.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Any, Optional

METADATA_VERSION = 1
METADATA_KEY = "delivery"


@dataclass(frozen=True)
class CompletionMetadata:
    channels: Dict[str, bool]
    completed_at: datetime
    processing_ms: int
    attempts: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": METADATA_VERSION,
            "outcome": "completed",
            "channels": dict(self.channels),
            "completedAt": self.completed_at.isoformat(),
            "processingMs": self.processing_ms,
            "attempts": self.attempts,
        }


@dataclass(frozen=True)
class FailureMetadata:
    failed_at: datetime
    final_error: str
    attempts: int
    channels: Optional[Dict[str, bool]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "version": METADATA_VERSION,
            "outcome": "failed",
            "failedAt": self.failed_at.isoformat(),
            "finalError": self.final_error,
            "attempts": self.attempts,
        }
        if self.channels is not None:
            data["channels"] = dict(self.channels)
        return data


def merge_outcome(metadata: Optional[Dict[str, Any]], outcome) -> Dict[str, Any]:
    """Return a copy of metadata with the outcome record stored under METADATA_KEY."""
    merged = dict(metadata or {})
    merged[METADATA_KEY] = outcome.to_dict()
    return merged
