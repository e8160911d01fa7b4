from typing import Optional


class RetirementError(Exception):
    """Base class for everything that aborts a retirement run"""


class ConfigurationError(RetirementError):
    pass


class ClusterError(RetirementError):
    """A cluster call failed: network error, non-success status or malformed body"""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SnapshotFailedError(RetirementError):
    """Snapshot kept reporting FAILED or PARTIAL past the allowed number of polls"""

    def __init__(self, snapshot_name: str, state: str, polls: int) -> None:
        super().__init__(f"Snapshot {snapshot_name} reported {state} on {polls} consecutive polls")
        self.snapshot_name = snapshot_name
        self.state = state
        self.polls = polls
