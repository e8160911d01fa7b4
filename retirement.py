import time
from enum import Enum
from typing import Any, Callable, Dict, Optional
from loguru import logger
from cluster_client import ClusterClient
from errors import RetirementError, SnapshotFailedError
from models import RetirementOutcome, SnapshotState
from snapshot_gate import SnapshotGate, POLL_INTERVAL_SECONDS

TAKEN_BY = "index-cleaner"
TAKEN_BECAUSE = "scheduled backup"


class RetirementState(Enum):
    PENDING = "PENDING"
    GATE_WAIT = "GATE_WAIT"
    SNAPSHOT_REQUESTED = "SNAPSHOT_REQUESTED"
    SNAPSHOT_POLLING = "SNAPSHOT_POLLING"
    SNAPSHOT_DONE = "SNAPSHOT_DONE"
    INDEX_DELETED = "INDEX_DELETED"
    FAILED = "FAILED"


class StepResult(Enum):
    ADVANCE = "advance"  # call step() again right away
    WAIT = "wait"        # sleep one poll interval before the next step()
    DONE = "done"


def snapshot_body(index_name: str) -> Dict[str, Any]:
    return {
        "indices": index_name,
        "ignore_unavailable": True,
        "include_global_state": False,
        "metadata": {
            "taken_by": TAKEN_BY,
            "taken_because": TAKEN_BECAUSE
        }
    }


class IndexRetirement:
    """Snapshot one index, wait for the snapshot to succeed, then delete the index.

    The snapshot carries the index name, so the status lookup is a name match.
    Each call to step() performs at most one cluster interaction and reports
    whether the caller should poll again later. Sleeping is left to the caller.

    By default a FAILED or PARTIAL snapshot is treated like one still running and
    polled forever. With fail_on_snapshot_error the run gives up after
    max_failed_snapshot_polls consecutive polls in one of those states.
    """

    def __init__(self, client: ClusterClient, repository: str, index_name: str, fail_on_snapshot_error: bool = False, max_failed_snapshot_polls: int = 3, gate: Optional[SnapshotGate] = None) -> None:
        self.client = client
        self.repository = repository
        self.index_name = index_name
        self.fail_on_snapshot_error = fail_on_snapshot_error
        self.max_failed_snapshot_polls = max_failed_snapshot_polls
        self.gate = gate or SnapshotGate(client)

        self.state = RetirementState.PENDING
        self.outcome: Optional[RetirementOutcome] = None
        self.status_polls = 0
        self._failed_polls = 0

    @property
    def snapshot_name(self) -> str:
        return self.index_name

    @property
    def finished(self) -> bool:
        return self.state in (RetirementState.INDEX_DELETED, RetirementState.FAILED)

    def step(self) -> StepResult:
        if self.finished:
            return StepResult.DONE
        try:
            return self._advance()
        except SnapshotFailedError as e:
            self._fail(RetirementOutcome.snapshot_failed(self.index_name, str(e)))
            raise
        except RetirementError as e:
            self._fail(RetirementOutcome.transport_error(self.index_name, str(e)))
            raise

    def _advance(self) -> StepResult:
        if self.state is RetirementState.PENDING:
            self._transition(RetirementState.GATE_WAIT)
            return StepResult.ADVANCE

        if self.state is RetirementState.GATE_WAIT:
            if not self.gate.is_clear():
                return StepResult.WAIT
            self._request_snapshot()
            self._transition(RetirementState.SNAPSHOT_REQUESTED)
            return StepResult.ADVANCE

        if self.state is RetirementState.SNAPSHOT_REQUESTED:
            self._transition(RetirementState.SNAPSHOT_POLLING)
            return StepResult.ADVANCE

        if self.state is RetirementState.SNAPSHOT_POLLING:
            if not self._snapshot_succeeded():
                logger.info(f"Snapshot {self.snapshot_name} is not ready yet")
                return StepResult.WAIT
            self._transition(RetirementState.SNAPSHOT_DONE)
            return StepResult.ADVANCE

        # SNAPSHOT_DONE
        self._delete_index()
        self.outcome = RetirementOutcome.retired(self.index_name)
        self._transition(RetirementState.INDEX_DELETED)
        return StepResult.DONE

    def _request_snapshot(self) -> None:
        logger.info(f"Taking snapshot for {self.index_name}, repository: {self.repository}")
        body = self.client.create_snapshot(self.repository, self.snapshot_name, snapshot_body(self.index_name))
        logger.info(f"Take snapshot response: {body}")

    def _snapshot_succeeded(self) -> bool:
        self.status_polls += 1
        snapshots = self.client.list_snapshot_status(self.repository, [self.snapshot_name])
        logger.debug(f"Snapshot status for {self.snapshot_name}: {snapshots}")

        matching = [s for s in snapshots if s.snapshot_name == self.snapshot_name]
        if any(s.state is SnapshotState.SUCCESS for s in matching):
            logger.info(f"Snapshot {self.snapshot_name} completed successfully after {self.status_polls} poll(s)")
            return True

        unhealthy = [s for s in matching if s.state in (SnapshotState.FAILED, SnapshotState.PARTIAL)]
        if not unhealthy:
            self._failed_polls = 0
            return False

        self._failed_polls += 1
        state = unhealthy[0].state.value
        logger.warning(f"Snapshot {self.snapshot_name} reports state {state} ({self._failed_polls} consecutive poll(s))")
        if self.fail_on_snapshot_error and self._failed_polls >= self.max_failed_snapshot_polls:
            raise SnapshotFailedError(self.snapshot_name, state, self._failed_polls)
        return False

    def _delete_index(self) -> None:
        body = self.client.delete_index(self.index_name)
        logger.info(f"Delete index: {self.index_name}, response: {body}")

    def _transition(self, new_state: RetirementState) -> None:
        logger.debug(f"{self.index_name}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _fail(self, outcome: RetirementOutcome) -> None:
        logger.error(f"Retirement of {self.index_name} failed in state {self.state.value}: {outcome.reason}")
        self.outcome = outcome
        self.state = RetirementState.FAILED


def run_to_completion(machine: IndexRetirement, sleep: Callable[[float], None] = time.sleep, poll_interval_seconds: float = POLL_INTERVAL_SECONDS) -> RetirementOutcome:
    """Drive a retirement until it deletes the index or raises"""
    while not machine.finished:
        if machine.step() is StepResult.WAIT:
            sleep(poll_interval_seconds)
    if machine.outcome is None:
        raise RuntimeError(f"Retirement of {machine.index_name} finished without an outcome")
    return machine.outcome
