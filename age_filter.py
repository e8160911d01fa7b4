from datetime import datetime
from typing import List, Sequence
from loguru import logger
from errors import ConfigurationError
from models import IndexRecord


def index_age_days(index: IndexRecord, now: datetime) -> int:
    """Whole days elapsed since the index was created"""
    return (now - index.creation_time).days


def select_outdated(indices: Sequence[IndexRecord], keep_days: int, now: datetime) -> List[str]:
    """Names of the indices older than keep_days, in input order.

    An index exactly keep_days old is kept; it becomes outdated the day after.
    """
    if keep_days < 0:
        raise ConfigurationError(f"Keep days must be >= 0, got {keep_days}")

    outdated = []
    for index in indices:
        if index.creation_time > now:
            logger.warning(f"Index {index.name} has a future creation timestamp ({index.creation_time.isoformat()}), keeping it")
            continue
        if index_age_days(index, now) > keep_days:
            outdated.append(index.name)
    return outdated
