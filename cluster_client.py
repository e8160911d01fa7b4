import requests
from typing import List, Dict, Any, Optional, Sequence
from loguru import logger
from errors import ClusterError
from models import IndexRecord, SnapshotRecord, SnapshotState, parse_creation_date
from settings import Settings


class ClusterClient:
    """Thin adapter over the Elasticsearch/OpenSearch REST API.

    Every call raises ClusterError on a transport failure, a non-2xx status or
    a body that cannot be parsed. Nothing is retried here.
    """

    def __init__(self, base_url: str, session: requests.Session, timeout: int = 60) -> None:
        self.base_url: str = base_url.rstrip("/")
        self.requests = session
        self.timeout: int = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClusterClient":
        return cls(settings.url, settings.get_requests_object(), settings.request_timeout_seconds)

    def list_indices(self, name_patterns: Sequence[str]) -> List[IndexRecord]:
        """List indices matching the patterns together with their creation date"""
        patterns = ",".join(name_patterns)
        # cd = creation.date, i = index
        response = self._send("GET", f"/_cat/indices/{patterns}?h=cd,i&format=json", allow_not_found=True)
        if response.status_code == 404:
            logger.debug(f"No indices found matching {patterns}")
            return []

        rows = self._json(response)
        if not isinstance(rows, list):
            raise ClusterError(f"Unexpected cat indices response: {response.text}")

        indices = []
        for row in rows:
            try:
                indices.append(IndexRecord(name=row["i"], creation_time=parse_creation_date(row["cd"])))
            except (KeyError, TypeError):
                raise ClusterError(f"Malformed cat indices row: {row!r}")
        logger.debug(f"GET /_cat/indices/{patterns} returned {len(indices)} indices")
        return indices

    def list_snapshot_status(self, repository: Optional[str] = None, snapshot_names: Optional[Sequence[str]] = None) -> List[SnapshotRecord]:
        """Snapshot status, cluster wide when no repository is given.

        Without filters the API only reports snapshots that are currently running.
        """
        if repository is None:
            path = "/_snapshot/_status"
        elif snapshot_names:
            path = f"/_snapshot/{repository}/{','.join(snapshot_names)}/_status"
        else:
            path = f"/_snapshot/{repository}/_status"

        data = self._json(self._send("GET", path))
        try:
            snapshots: List[Dict[str, Any]] = data["snapshots"]
            return [
                SnapshotRecord(
                    snapshot_name=entry["snapshot"],
                    repository=entry.get("repository", repository or ""),
                    state=SnapshotState.from_cluster(entry.get("state")),
                )
                for entry in snapshots
            ]
        except (KeyError, TypeError, AttributeError):
            raise ClusterError(f"Malformed snapshot status response: {data!r}")

    def create_snapshot(self, repository: str, snapshot_name: str, body: Dict[str, Any]) -> str:
        """Request a snapshot without waiting for completion, returns the raw response body"""
        response = self._send("PUT", f"/_snapshot/{repository}/{snapshot_name}", json=body)
        return response.text

    def delete_index(self, name: str) -> str:
        response = self._send("DELETE", f"/{name}")
        return response.text

    def _send(self, method: str, path: str, allow_not_found: bool = False, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise ClusterError(f"{method} {path} failed: {e}") from e

        logger.debug(f"{method} {path} HTTP response: status_code={response.status_code}, content={response.text}")
        if allow_not_found and response.status_code == 404:
            return response
        if not 200 <= response.status_code < 300:
            raise ClusterError(
                f"{method} {path} failed (HTTP {response.status_code}) - Response: {response.text}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ClusterError(f"Malformed JSON response: {response.text}") from e
