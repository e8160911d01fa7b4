import time
from datetime import datetime, timezone
from typing import Callable, List, Optional
from loguru import logger
from age_filter import select_outdated
from cluster_client import ClusterClient
from errors import ConfigurationError, RetirementError
from models import RetirementOutcome
from retirement import IndexRetirement, run_to_completion
from settings import Settings, split_index_filter
from snapshot_gate import SnapshotGate, POLL_INTERVAL_SECONDS


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def find_outdated_indices(client: ClusterClient, keep_days: int, index_filter: str, clock: Callable[[], datetime] = utc_now) -> List[str]:
    patterns = split_index_filter(index_filter)
    if not patterns:
        raise ConfigurationError(f"Index filter {index_filter!r} contains no patterns")

    indices = client.list_indices(patterns)
    logger.info(f"index_filter: {list(patterns)}, {len(indices)} matching indices")
    outdated = select_outdated(indices, keep_days, clock())
    logger.info(f"Indices older than {keep_days} days: {outdated}")
    return outdated


def retire_outdated_indices(client: ClusterClient, repository: str, keep_days: int, index_filter: str, sleep: Callable[[float], None] = time.sleep, clock: Callable[[], datetime] = utc_now, poll_interval_seconds: float = POLL_INTERVAL_SECONDS, fail_on_snapshot_error: bool = False, max_failed_snapshot_polls: int = 3) -> List[RetirementOutcome]:
    """Snapshot and delete every index older than keep_days, one index at a time.

    The first error aborts the run and propagates; indices after the failing
    one are left untouched. A re-run starts from the current cluster state.
    """
    outdated = find_outdated_indices(client, keep_days, index_filter, clock)
    if outdated:
        logger.info(f"{len(outdated)} outdated indices found")
    gate = SnapshotGate(client, sleep, poll_interval_seconds)
    outcomes: List[RetirementOutcome] = []
    for position, index_name in enumerate(outdated, start=1):
        logger.info(f"Retiring {index_name} ({position}/{len(outdated)})")
        machine = IndexRetirement(
            client,
            repository,
            index_name,
            fail_on_snapshot_error=fail_on_snapshot_error,
            max_failed_snapshot_polls=max_failed_snapshot_polls,
            gate=gate,
        )
        try:
            outcomes.append(run_to_completion(machine, sleep, poll_interval_seconds))
        except RetirementError:
            remaining = len(outdated) - position
            retired = [outcome.index_name for outcome in outcomes]
            logger.error(f"Aborting retirement run at {index_name}, already retired: {retired}, {remaining} remaining indices left untouched")
            raise

    logger.info(f"Retired {len(outcomes)} indices")
    return outcomes


class IndexCleaner:
    """Runs retirement with the configured settings"""

    def __init__(self, settings: Settings, client: Optional[ClusterClient] = None, sleep: Callable[[float], None] = time.sleep, clock: Callable[[], datetime] = utc_now) -> None:
        self.settings = settings
        self.client = client or ClusterClient.from_settings(settings)
        self.sleep = sleep
        self.clock = clock

    def retire_outdated_indices(self) -> List[RetirementOutcome]:
        return retire_outdated_indices(
            self.client,
            self.settings.repository,
            self.settings.keep_days,
            self.settings.index_filter,
            sleep=self.sleep,
            clock=self.clock,
            poll_interval_seconds=self.settings.poll_interval_seconds,
            fail_on_snapshot_error=self.settings.fail_on_snapshot_error,
            max_failed_snapshot_polls=self.settings.max_failed_snapshot_polls,
        )

    def list_outdated_indices(self) -> List[str]:
        return find_outdated_indices(self.client, self.settings.keep_days, self.settings.index_filter, self.clock)
