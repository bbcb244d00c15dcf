from datetime import timedelta
from decimal import Decimal

from payloads import NIL_VOTE, VOTE, ZERO_VOTE

from tmtop.core.errors import TransportError
from tmtop.core.types import Category, ChainValidator, NodeStatus, Upgrade
from tmtop.services.converter import build_consensus_update
from tmtop.services.state import StateSnapshot, StateStore


def consensus_update(make_round_state, make_validators, **kwargs):
    kwargs.setdefault("rounds", [([VOTE, VOTE, VOTE, ZERO_VOTE], [VOTE, VOTE, NIL_VOTE, NIL_VOTE])])
    return build_consensus_update(make_round_state(**kwargs), make_validators([40, 30, 20, 10]))


def without_timestamps(snapshot: StateSnapshot) -> dict:
    return snapshot.model_dump(exclude={"updated_at"})


class TestStateStore:
    def test_empty_snapshot(self):
        snapshot = StateStore().snapshot()

        assert snapshot.validators is None
        assert snapshot.prevote_percent(True) == Decimal(0)
        assert snapshot.get_validators_with_info() == []
        assert snapshot.get_validators_with_all_round_votes().validators == []

    def test_set_consensus(self, make_round_state, make_validators):
        store = StateStore()
        store.set_consensus(consensus_update(make_round_state, make_validators))
        snapshot = store.snapshot()

        assert (snapshot.height, snapshot.round, snapshot.step) == (100, 0, 6)
        assert snapshot.prevote_percent(False) == Decimal(90)
        assert snapshot.prevote_percent(True) == Decimal(100)
        assert snapshot.precommit_percent(True) == Decimal(70)
        assert Category.CONSENSUS in snapshot.updated_at

    def test_consensus_is_idempotent(self, make_round_state, make_validators):
        store = StateStore()
        update = consensus_update(make_round_state, make_validators)

        store.set_consensus(update)
        first = store.snapshot()
        store.set_consensus(update)

        assert without_timestamps(store.snapshot()) == without_timestamps(first)
        assert len(store.snapshot().validators) == 4

    def test_snapshots_are_not_mutated(self, make_round_state, make_validators):
        store = StateStore()
        store.set_consensus(consensus_update(make_round_state, make_validators))
        before = store.snapshot()

        store.set_consensus(
            consensus_update(
                make_round_state, make_validators, height_round_step="101/0/1", rounds=[([], [])]
            )
        )

        assert before.height == 100
        assert len(before.validators) == 4
        assert store.snapshot().height == 101
        assert store.snapshot().validators == []

    def test_error_keeps_data(self, make_round_state, make_validators):
        store = StateStore()
        store.set_consensus(consensus_update(make_round_state, make_validators))
        store.set_error(Category.CONSENSUS, TransportError("node down"))
        snapshot = store.snapshot()

        assert snapshot.error(Category.CONSENSUS) == "node down"
        assert snapshot.height == 100
        assert len(snapshot.validators) == 4

    def test_error_is_category_scoped(self):
        store = StateStore()
        store.set_node_status(NodeStatus(network="test-1"))
        store.set_upgrade(Upgrade(name="v2", height=500))
        store.set_error(Category.UPGRADE, TransportError("lcd down"))
        snapshot = store.snapshot()

        assert snapshot.error(Category.UPGRADE) == "lcd down"
        assert snapshot.error(Category.STATUS) is None
        assert snapshot.node_status.network == "test-1"
        assert snapshot.upgrade.name == "v2"

    def test_success_clears_error(self, make_round_state, make_validators):
        store = StateStore()
        store.set_error(Category.VALIDATORS, TransportError("down"))
        store.set_error(Category.BLOCK_TIME, TransportError("down"))
        store.set_consensus(consensus_update(make_round_state, make_validators))

        assert store.snapshot().error(Category.VALIDATORS) is None
        assert store.snapshot().error(Category.BLOCK_TIME) == "down"

        store.set_block_time(timedelta(seconds=6))
        assert store.snapshot().errors == {}

    def test_error_without_message(self):
        store = StateStore()
        store.set_error(Category.STATUS, TimeoutError())
        assert store.snapshot().error(Category.STATUS) == "TimeoutError"


class TestValidatorsWithInfo:
    def test_join_by_address(self, make_round_state, make_validators):
        store = StateStore()
        store.set_consensus(consensus_update(make_round_state, make_validators))
        store.set_chain_validators([ChainValidator(moniker="alice", address="VAL0")])

        validators = store.snapshot().get_validators_with_info()

        assert [v.display_name for v in validators] == ["alice", "VAL1", "VAL2", "VAL3"]
        assert validators[0].round_vote.is_proposer

    def test_join_by_assigned_key(self, make_round_state, make_validators):
        store = StateStore()
        store.set_consensus(consensus_update(make_round_state, make_validators))
        store.set_chain_validators(
            [
                ChainValidator(
                    moniker="bob",
                    address="PROVIDERKEY",
                    assigned_address="cosmosvalcons1xyz",
                    raw_assigned_address="VAL2",
                )
            ]
        )

        validators = store.snapshot().get_validators_with_info()
        assert validators[2].display_name == "bob"

    def test_all_rounds_grid(self, make_round_state, make_validators):
        store = StateStore()
        store.set_consensus(
            consensus_update(
                make_round_state,
                make_validators,
                height_round_step="100/1/3",
                rounds=[([VOTE], [VOTE]), ([VOTE] * 4, [NIL_VOTE] * 4)],
            )
        )
        store.set_chain_validators([ChainValidator(moniker="carol", address="VAL3")])

        grid = store.snapshot().get_validators_with_all_round_votes()

        assert len(grid.validators) == 4
        assert grid.validators[3].display_name == "carol"
        assert sorted(grid.rounds_votes) == [0, 1]
        assert all(len(votes) == 4 for votes in grid.rounds_votes.values())
