from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import NamedTuple, Optional, Union
from errors import ClusterError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SnapshotState(Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"
    OTHER = "OTHER"

    @classmethod
    def from_cluster(cls, state: Optional[str]) -> "SnapshotState":
        """Map the state string reported by the snapshot status API"""
        normalized = (state or "").upper()
        if normalized in ("IN_PROGRESS", "STARTED", "INIT"):
            return cls.IN_PROGRESS
        if normalized in ("SUCCESS", "FAILED", "PARTIAL"):
            return cls(normalized)
        return cls.OTHER


class IndexRecord(NamedTuple):
    name: str
    creation_time: datetime


class SnapshotRecord(NamedTuple):
    snapshot_name: str
    repository: str
    state: SnapshotState


class OutcomeKind(Enum):
    RETIRED = "retired"
    SNAPSHOT_FAILED = "snapshot_failed"
    TRANSPORT_ERROR = "transport_error"


class RetirementOutcome(NamedTuple):
    index_name: str
    kind: OutcomeKind
    reason: Optional[str] = None

    @classmethod
    def retired(cls, index_name: str) -> "RetirementOutcome":
        return cls(index_name, OutcomeKind.RETIRED)

    @classmethod
    def snapshot_failed(cls, index_name: str, reason: str) -> "RetirementOutcome":
        return cls(index_name, OutcomeKind.SNAPSHOT_FAILED, reason)

    @classmethod
    def transport_error(cls, index_name: str, reason: str) -> "RetirementOutcome":
        return cls(index_name, OutcomeKind.TRANSPORT_ERROR, reason)

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.RETIRED


def parse_creation_date(value: Union[str, int]) -> datetime:
    """
    Convert the creation date reported by the cat indices API into a UTC datetime.

    The API returns the millisecond epoch wrapped in a string, e.g. "1622431908495".
    Integer arithmetic keeps the conversion exact.
    """
    try:
        return EPOCH + timedelta(milliseconds=int(value))
    except (TypeError, ValueError, OverflowError):
        raise ClusterError(f"Malformed index creation date: {value!r}")


def to_epoch_millis(moment: datetime) -> int:
    return (moment - EPOCH) // timedelta(milliseconds=1)
