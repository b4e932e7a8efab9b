"""
Shared fixtures for governance tests: canned dashboard records and a fake
client standing in for the HTTP API.
"""
from typing import Any, Dict, List

import pytest

from workers.governance.client import ProposalNotFound

COMMIT = "a1b2c3d4e5f60718293a4b5c6d7e8f9012345678"
WASM_HEX = "9a8a90c6d3f1b2e4a5c6d7e8f90a1b2c3d4e5f60718293a4b5c6d7e8f9a0b1c2"
ARG_HEX = "44" * 32


def dashboard_record(proposal_id: int = 134567, **overrides) -> Dict[str, Any]:
    record = {
        "proposal_id": proposal_id,
        "title": "Upgrade the Registry Canister",
        "summary": f"Upgrade registry to git revision {COMMIT.upper()}.\n\nSee the release notes.",
        "url": "",
        "topic": "TOPIC_PROTOCOL_CANISTER_MANAGEMENT",
        "action": "InstallCode",
        "payload": {
            "canister_id": "rwlgt-iiaaa-aaaaa-aaaaa-cai",
            "install_mode": "upgrade",
            "wasm_module_hash": WASM_HEX.upper(),
            "arg_hash": ARG_HEX,
        },
    }
    record.update(overrides)
    return record


def candid_record(proposal_id: int = 134568) -> Dict[str, Any]:
    return {
        "id": [{"id": proposal_id}],
        "topic": 17,
        "proposal": [{
            "title": ["Upgrade the Ledger"],
            "summary": f"Built from commit {COMMIT}",
            "url": "",
            "action": [{
                "InstallCode": {
                    "canister_id": [{"__principal__": "ryjl3-tyaaa-aaaaa-aaaba-cai"}],
                    "install_mode": [3],
                    "wasm_module_hash": [list(bytes.fromhex(WASM_HEX))],
                    "arg_hash": [],
                }
            }],
        }],
    }


class FakeGovernanceClient:
    def __init__(self, records: List[Dict[str, Any]]):
        self.records = records
        self.list_calls: List[int] = []

    def get_proposal(self, proposal_id: int) -> Dict[str, Any]:
        for r in self.records:
            if r.get("proposal_id") == proposal_id:
                return r
        raise ProposalNotFound(proposal_id)

    def list_proposals(self, limit: int = 100) -> List[Dict[str, Any]]:
        self.list_calls.append(limit)
        return self.records[:limit]

    def close(self) -> None:
        pass


@pytest.fixture
def records() -> List[Dict[str, Any]]:
    return [
        dashboard_record(200, topic="TOPIC_PROTOCOL_CANISTER_MANAGEMENT"),
        dashboard_record(199, topic="TOPIC_GOVERNANCE", action="Motion", payload={}),
        dashboard_record(198, topic=17),
        dashboard_record(150, topic=17),
    ]
