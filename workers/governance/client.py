"""
HTTP client for the public governance dashboard API.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://ic-api.internetcomputer.org/api/v3"


class ProposalNotFound(LookupError):
    def __init__(self, proposal_id: int):
        self.proposal_id = proposal_id
        super().__init__(f"Proposal {proposal_id} not found")


class GovernanceClient:
    """Thin wrapper over ``GET /proposals`` and ``GET /proposals/{id}``."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self.base_url = base_url.rstrip("/")

    def __enter__(self) -> "GovernanceClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def get_proposal(self, proposal_id: int) -> Dict[str, Any]:
        url = f"{self.base_url}/proposals/{proposal_id}"
        logger.info("Fetching proposal %s from %s", proposal_id, url)
        resp = self._client.get(url, headers={"Accept": "application/json"})
        if resp.status_code == 404:
            raise ProposalNotFound(proposal_id)
        resp.raise_for_status()
        return resp.json()

    def list_proposals(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent proposals, newest first."""
        url = f"{self.base_url}/proposals"
        resp = self._client.get(
            url,
            params={"limit": limit},
            headers={"Accept": "application/json"},
        )
        resp.raise_for_status()
        body = resp.json()
        if isinstance(body, dict):
            body = body.get("data", [])
        logger.info("Retrieved %d proposals", len(body))
        return body
