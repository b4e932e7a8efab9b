"""
Proposals Router
Read-only access to the verification state file.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.config import settings
from workers.verifier.io.schema import EntryStatus, VerificationStateEntry
from workers.verifier.io.state_store import StateStore

log = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class ProposalStateResponse(BaseModel):
    proposal_id: int
    entry: VerificationStateEntry


class ProposalListResponse(BaseModel):
    last_checked_timestamp: int
    count: int
    proposals: List[ProposalStateResponse] = Field(default_factory=list)


# =============================================================================
# Dependencies
# =============================================================================

def get_state_store() -> StateStore:
    return StateStore(settings.workspace_path(settings.STATE_FILE))


def _numeric_id(key: str) -> int:
    try:
        return int(key)
    except ValueError:
        return -1


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=ProposalListResponse)
def list_proposals(
    status_filter: Optional[EntryStatus] = Query(None, alias="status"),
    store: StateStore = Depends(get_state_store),
):
    """All tracked proposals, newest id first, optionally filtered by status."""
    state = store.load()
    rows = [
        ProposalStateResponse(proposal_id=_numeric_id(key), entry=entry)
        for key, entry in state.proposals.items()
        if status_filter is None or entry.status == status_filter
    ]
    rows.sort(key=lambda r: r.proposal_id, reverse=True)
    return ProposalListResponse(
        last_checked_timestamp=state.last_checked_timestamp,
        count=len(rows),
        proposals=rows,
    )


@router.get("/{proposal_id}", response_model=ProposalStateResponse)
def get_proposal(proposal_id: int, store: StateStore = Depends(get_state_store)):
    entry = store.get(proposal_id)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Proposal {proposal_id} is not tracked",
        )
    return ProposalStateResponse(proposal_id=proposal_id, entry=entry)
