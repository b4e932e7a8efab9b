"""
Tests for workers.governance.monitor — topic mapping, filtering and the
pending bookkeeping.
"""
import pytest

from workers.governance.monitor import (
    ProposalSummary,
    filter_new_proposals,
    select_new_proposals,
    summarize,
    topic_id,
)
from workers.governance.tests.conftest import FakeGovernanceClient, candid_record
from workers.verifier.io.schema import EntryStatus
from workers.verifier.io.state_store import StateStore


@pytest.fixture
def store(tmp_path) -> StateStore:
    return StateStore(tmp_path / "state.json")


class TestTopicId:

    @pytest.mark.parametrize("value, expected", [
        (17, 17),
        ("17", 17),
        ("TOPIC_PROTOCOL_CANISTER_MANAGEMENT", 17),
        ("protocol_canister_management", 17),
        ("TOPIC_NOT_A_THING", None),
        (None, None),
        (True, None),
    ])
    def test_topic_id(self, value, expected):
        assert topic_id(value) == expected

    def test_summarize_candid_shape(self):
        s = summarize(candid_record(7))
        assert s == ProposalSummary(proposal_id=7, topic=17, title="Upgrade the Ledger")


class TestFilterNewProposals:
    candidates = [
        ProposalSummary(proposal_id=1, topic=17),
        ProposalSummary(proposal_id=2, topic=5),
        ProposalSummary(proposal_id=3, topic=9),
        ProposalSummary(proposal_id=4, topic=17),
        ProposalSummary(proposal_id=5, topic=None),
    ]

    def test_tracked_topics_only(self):
        got = filter_new_proposals(self.candidates, [17], dispatched_ids=[])
        assert [p.proposal_id for p in got] == [1, 4]

    def test_several_topics_by_name(self):
        got = filter_new_proposals(self.candidates, ["TOPIC_NODE_ADMIN", "KYC"], dispatched_ids=[])
        assert [p.proposal_id for p in got] == [2, 3]

    def test_dispatched_excluded(self):
        got = filter_new_proposals(self.candidates, [17], dispatched_ids={"1"})
        assert [p.proposal_id for p in got] == [4]

    def test_dispatched_ids_as_ints(self):
        got = filter_new_proposals(self.candidates, [17], dispatched_ids=[4])
        assert [p.proposal_id for p in got] == [1]

    def test_min_id(self):
        got = filter_new_proposals(self.candidates, [17], dispatched_ids=[], min_id=2)
        assert [p.proposal_id for p in got] == [4]

    def test_nothing_tracked(self):
        assert filter_new_proposals(self.candidates, [], dispatched_ids=[]) == []


class TestSelectNewProposals:

    def test_marks_selection_pending(self, records, store):
        client = FakeGovernanceClient(records)
        selected = select_new_proposals(client, store, [17], min_id=160, limit=50)
        assert [p.proposal_id for p in selected] == [200, 198]
        assert client.list_calls == [50]

        state = store.load()
        assert set(state.proposals) == {"200", "198"}
        assert all(e.status == EntryStatus.PENDING for e in state.proposals.values())
        assert state.last_checked_timestamp > 0

    def test_second_cycle_selects_nothing(self, records, store):
        client = FakeGovernanceClient(records)
        select_new_proposals(client, store, [17])
        assert select_new_proposals(client, store, [17]) == []

    def test_previous_outcome_not_reselected(self, records, store):
        store.upsert(200, status=EntryStatus.FAILED)
        selected = select_new_proposals(FakeGovernanceClient(records), store, [17])
        assert [p.proposal_id for p in selected] == [198, 150]
        assert store.get(200).status == EntryStatus.FAILED

    def test_unrecognised_entry_not_reselected(self, records, store):
        store.path.write_text('{"lastCheckedTimestamp": 0, "proposals": {"200": {"status": "building"}}}')
        selected = select_new_proposals(FakeGovernanceClient(records), store, [17])
        assert [p.proposal_id for p in selected] == [198, 150]
        assert '"building"' in store.path.read_text()

    def test_disabled(self, records, store):
        client = FakeGovernanceClient(records)
        assert select_new_proposals(client, store, [17], enabled=False) == []
        assert client.list_calls == []
        assert not store.path.exists()
