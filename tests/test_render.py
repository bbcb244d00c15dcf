from datetime import datetime, timedelta, timezone

import pytest
from payloads import NIL_VOTE, VOTE, ZERO_VOTE
from rich.console import Console

from tmtop.cli.commands import check_exit_code, format_as_api_json
from tmtop.cli.render import (
    chain_info,
    consensus_info,
    format_duration,
    get_timezone,
    pad_and_trim,
    render_dashboard,
    upgrade_info,
    vote_symbol,
)
from tmtop.core.errors import BlockTimeError, ConfigError, TransportError
from tmtop.core.types import Category, NodeStatus, Upgrade, Vote
from tmtop.services.converter import build_consensus_update
from tmtop.services.state import StateStore

NOW = datetime(2024, 1, 1, 0, 0, 10, tzinfo=timezone.utc)


@pytest.fixture
def store(make_round_state, make_validators):
    store = StateStore()
    store.set_consensus(
        build_consensus_update(
            make_round_state(
                height_round_step="1000/0/6",
                rounds=[([VOTE, VOTE, VOTE, ZERO_VOTE], [VOTE, NIL_VOTE, NIL_VOTE, NIL_VOTE])],
                start_time="2024-01-01T00:00:00Z",
            ),
            make_validators([40, 30, 20, 10]),
        )
    )
    return store


class TestHelpers:
    def test_vote_symbols(self):
        assert vote_symbol(Vote.VOTED) == "✅"
        assert vote_symbol(Vote.VOTED_ZERO) == "🤷"
        assert vote_symbol(Vote.VOTED_NIL, disable_emojis=True) == "[ ]"

    def test_pad_and_trim(self):
        assert pad_and_trim("abc", 5) == "abc  "
        assert pad_and_trim("abc", 5, align_left=False) == "  abc"
        assert pad_and_trim("abcdefghij", 6) == "abc..."

    @pytest.mark.parametrize(
        "duration, expected",
        [
            (timedelta(seconds=1), "1.000s"),
            (timedelta(milliseconds=250), "250.000ms"),
            (timedelta(minutes=2, seconds=3.5), "2m3.500s"),
            (timedelta(hours=1, minutes=1, seconds=1), "1h1m1.000s"),
            (timedelta(seconds=-5), "0.000ms"),
        ],
    )
    def test_format_duration(self, duration, expected):
        assert format_duration(duration) == expected

    def test_unknown_timezone(self):
        with pytest.raises(ConfigError):
            get_timezone("Mars/Olympus_Mons")


class TestConsensusInfo:
    def test_percentages(self, store):
        text = consensus_info(store.snapshot(), timezone.utc, now=NOW)

        assert "height=1000 round=0 step=6" in text
        assert "block time: 10.000s" in text
        assert "prevote consensus (total/agreeing): 100.00 / 90.00" in text
        assert "precommit consensus (total/agreeing): 40.00 / 40.00" in text

    def test_error_next_to_stale_data(self, store):
        store.set_error(Category.CONSENSUS, TransportError("node down"))
        text = consensus_info(store.snapshot(), timezone.utc, now=NOW)

        assert "consensus state error: node down" in text
        assert "height=1000" in text


class TestUpgradeInfo:
    def test_no_upgrade(self, store):
        assert upgrade_info(store.snapshot(), timezone.utc, NOW) == ["no chain upgrade scheduled"]

    def test_scheduled(self, store):
        store.set_upgrade(Upgrade(name="v2", height=1100))
        store.set_block_time(timedelta(seconds=2))
        lines = upgrade_info(store.snapshot(), timezone.utc, NOW)

        assert lines[0] == "chain upgrade v2 scheduled at block 1100"
        assert lines[1] == "blocks till upgrade: 100"
        assert lines[2] == "time till upgrade: 3m20.000s"

    def test_in_progress(self, store):
        store.set_upgrade(Upgrade(name="v2", height=999))
        assert upgrade_info(store.snapshot(), timezone.utc, NOW) == ["upgrade in progress..."]

    def test_applied(self, store):
        store.set_upgrade(Upgrade(name="v1", height=900))
        lines = upgrade_info(store.snapshot(), timezone.utc, NOW)

        assert lines == ["chain upgrade v1 applied at block 900", "blocks since upgrade: 100"]


class TestChainInfo:
    def test_chain_info(self, store):
        store.set_node_status(NodeStatus(network="test-1", version="0.38.12"))
        store.set_block_time(timedelta(seconds=6))
        text = chain_info(store.snapshot(), timezone.utc, NOW)

        assert "chain name: test-1" in text
        assert "tendermint version: v0.38.12" in text
        assert "avg block time: 6.000s" in text

    def test_upgrade_error(self, store):
        store.set_error(Category.UPGRADE, TransportError("lcd down"))
        text = chain_info(store.snapshot(), timezone.utc, NOW)

        assert "upgrade plan fetch error: lcd down" in text
        assert "no chain upgrade scheduled" not in text


class TestDashboard:
    @pytest.mark.parametrize("all_rounds", [False, True])
    def test_renders(self, store, all_rounds):
        console = Console(width=160, record=True)
        console.print(render_dashboard(store.snapshot(), timezone.utc, all_rounds=all_rounds))

        output = console.export_text()
        assert "VAL0" in output
        assert "height=1000" in output

    def test_renders_empty_state(self):
        console = Console(width=120, record=True)
        console.print(render_dashboard(StateStore().snapshot(), timezone.utc, paused=True))
        assert "PAUSED" in console.export_text()

    def test_json(self, store):
        result = format_as_api_json(store.snapshot())

        assert result["height"] == 1000
        assert result["prevotes"]["agreeing_percent"] == "90"
        assert result["validators"][3]["prevote"] == "voted_zero"
        assert result["validators"][0]["is_proposer"] is True


class TestCheckExitCode:
    def test_healthy(self, store):
        assert check_exit_code(store.snapshot()) == 0

    def test_young_chain_block_time_is_not_fatal(self, store):
        store.set_error(Category.BLOCK_TIME, BlockTimeError("latest height 5, older height 1"))
        store.set_error(Category.UPGRADE, TransportError("lcd down"))

        assert check_exit_code(store.snapshot()) == 0
        assert format_as_api_json(store.snapshot())["errors"]["block_time"]

    @pytest.mark.parametrize("category", [Category.CONSENSUS, Category.VALIDATORS])
    def test_consensus_or_validators_error_fails(self, store, category):
        store.set_error(category, TransportError("node down"))
        assert check_exit_code(store.snapshot()) == 1
