"""
Cooperative guard against overlapping snapshots.

Only one snapshot may run cluster wide, so before requesting one we wait until
the cluster reports no snapshot in progress. This is an observation, not a lock:
another client can start a snapshot between our check and our create call. In
that case a cluster that allows a single snapshot rejects the create call and the
run aborts.
"""
import time
from typing import Callable, Optional
from loguru import logger
from cluster_client import ClusterClient

POLL_INTERVAL_SECONDS = 10


class SnapshotGate:

    def __init__(self, client: ClusterClient, sleep: Callable[[float], None] = time.sleep, poll_interval_seconds: float = POLL_INTERVAL_SECONDS) -> None:
        self.client = client
        self.sleep = sleep
        self.poll_interval_seconds = poll_interval_seconds

    def is_clear(self) -> bool:
        """True when no snapshot is running anywhere in the cluster"""
        logger.debug("Checking cluster wide snapshot status")
        running = self.client.list_snapshot_status()
        if running:
            names = ", ".join(f"{s.repository}/{s.snapshot_name}" for s in running)
            logger.info(f"{len(running)} snapshot(s) in progress: {names}")
            return False
        return True

    def wait_until_clear(self) -> int:
        """Block until no snapshot is running, returns how many times we slept"""
        waits = 0
        while not self.is_clear():
            logger.info(f"Waiting {self.poll_interval_seconds}s for running snapshots to finish")
            self.sleep(self.poll_interval_seconds)
            waits += 1
        return waits


def wait_until_clear(client: ClusterClient, sleep: Optional[Callable[[float], None]] = None, poll_interval_seconds: float = POLL_INTERVAL_SECONDS) -> int:
    return SnapshotGate(client, sleep or time.sleep, poll_interval_seconds).wait_until_clear()
