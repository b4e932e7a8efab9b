"""
Proposal monitor — pick newly eligible proposals for verification.

``filter_new_proposals`` is pure; ``select_new_proposals`` wires it to the
governance client and the state store.
"""
import logging
from typing import Any, Collection, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel

from workers.governance.client import GovernanceClient
from workers.governance.ingest import proposal_id_of, unwrap_opt
from workers.verifier.io.state_store import StateStore

logger = logging.getLogger(__name__)

# Governance topic enum (dashboard names without the TOPIC_ prefix)
TOPIC_IDS: Dict[str, int] = {
    "UNSPECIFIED": 0,
    "NEURON_MANAGEMENT": 1,
    "EXCHANGE_RATE": 2,
    "NETWORK_ECONOMICS": 3,
    "GOVERNANCE": 4,
    "NODE_ADMIN": 5,
    "PARTICIPANT_MANAGEMENT": 6,
    "SUBNET_MANAGEMENT": 7,
    "NETWORK_CANISTER_MANAGEMENT": 8,
    "KYC": 9,
    "NODE_PROVIDER_REWARDS": 10,
    "SNS_DECENTRALIZATION_SALE": 11,
    "IC_OS_VERSION_DEPLOYMENT": 12,
    "IC_OS_VERSION_ELECTION": 13,
    "SNS_AND_COMMUNITY_FUND": 14,
    "API_BOUNDARY_NODE_MANAGEMENT": 15,
    "SUBNET_RENTAL": 16,
    "PROTOCOL_CANISTER_MANAGEMENT": 17,
    "SERVICE_NERVOUS_SYSTEM_MANAGEMENT": 18,
}

TopicRef = Union[int, str]


class ProposalSummary(BaseModel):
    proposal_id: int
    topic: Optional[int] = None
    title: str = "Untitled"


def topic_id(value: Any) -> Optional[int]:
    """``17``, ``"17"``, ``"TOPIC_PROTOCOL_CANISTER_MANAGEMENT"`` → 17."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        name = text.upper()
        if name.startswith("TOPIC_"):
            name = name[len("TOPIC_"):]
        return TOPIC_IDS.get(name)
    return None


def summarize(raw: Dict[str, Any]) -> ProposalSummary:
    body = unwrap_opt(raw.get("proposal"))
    title = unwrap_opt((body if isinstance(body, dict) else raw).get("title"))
    return ProposalSummary(
        proposal_id=proposal_id_of(raw),
        topic=topic_id(unwrap_opt(raw.get("topic"))),
        title=title or "Untitled",
    )


def filter_new_proposals(
    candidates: Iterable[ProposalSummary],
    topics: Iterable[TopicRef],
    dispatched_ids: Collection[Any],
    min_id: Optional[int] = None,
) -> List[ProposalSummary]:
    """
    Keep proposals on a tracked topic, at or above *min_id*, and not yet
    dispatched.  Order of *candidates* is preserved.
    """
    tracked = {t for t in (topic_id(t) for t in topics) if t is not None}
    dispatched = {str(i) for i in dispatched_ids}

    selected = []
    for p in candidates:
        if p.topic not in tracked:
            continue
        if min_id is not None and p.proposal_id < min_id:
            continue
        if str(p.proposal_id) in dispatched:
            continue
        selected.append(p)
    return selected


def select_new_proposals(
    client: GovernanceClient,
    store: StateStore,
    topics: Iterable[TopicRef],
    min_id: Optional[int] = None,
    limit: int = 100,
    enabled: bool = True,
) -> List[ProposalSummary]:
    """Fetch, filter, and mark the selection ``pending`` in one state cycle."""
    if not enabled:
        logger.info("Monitoring is disabled, nothing selected")
        return []

    topics = list(topics)
    logger.info("Tracking topics: %s (min id %s)", topics, min_id)
    candidates = [summarize(r) for r in client.list_proposals(limit)]
    state = store.load()
    dispatched = set(state.proposals) | set(state.unrecognized)

    selected = filter_new_proposals(candidates, topics, dispatched, min_id)
    logger.info("Found %d new proposals matching criteria", len(selected))
    for p in selected:
        logger.info("  - #%d: %s (topic %s)", p.proposal_id, p.title, p.topic)

    store.mark_pending(p.proposal_id for p in selected)
    return selected
