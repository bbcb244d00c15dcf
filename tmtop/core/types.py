"""Data models for the consensus dashboard."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict


class Category(str, Enum):
    """Refresh categories. Each one owns a data slice and an error slot."""

    CONSENSUS = "consensus"
    VALIDATORS = "validators"
    CHAIN_VALIDATORS = "chain_validators"
    UPGRADE = "upgrade"
    STATUS = "status"
    BLOCK_TIME = "block_time"


class Vote(str, Enum):
    """How a validator voted in one phase of a round."""

    VOTED = "voted"
    # Signed, but for the all-zero block hash
    VOTED_ZERO = "voted_zero"
    VOTED_NIL = "voted_nil"


class Phase(str, Enum):
    PREVOTE = "prevote"
    PRECOMMIT = "precommit"


class Validator(BaseModel):
    """A validator of the current height, ranked by node order."""

    model_config = ConfigDict(frozen=True)

    index: int
    address: str
    voting_power: int
    voting_power_percent: Decimal


class RoundVote(BaseModel):
    """One validator's votes in one round."""

    model_config = ConfigDict(frozen=True)

    address: str
    prevote: Vote
    precommit: Vote
    is_proposer: bool = False

    def vote(self, phase: Phase) -> Vote:
        return self.prevote if phase is Phase.PREVOTE else self.precommit


class ValidatorWithRoundVote(BaseModel):
    model_config = ConfigDict(frozen=True)

    validator: Validator
    round_vote: RoundVote


class ChainValidator(BaseModel):
    """Identity of a validator as known by the chain's staking module."""

    model_config = ConfigDict(frozen=True)

    moniker: str
    address: str
    raw_address: str = ""
    assigned_address: str = ""
    raw_assigned_address: str = ""


class ValidatorWithInfo(BaseModel):
    """A validator joined with its roster identity, if any."""

    model_config = ConfigDict(frozen=True)

    validator: Validator
    round_vote: RoundVote | None = None
    chain_validator: ChainValidator | None = None

    @property
    def display_name(self) -> str:
        if self.chain_validator is not None:
            return self.chain_validator.moniker
        return self.validator.address


class AllRoundsVotes(BaseModel):
    """Per-round vote grid aligned to one validator ordering."""

    model_config = ConfigDict(frozen=True)

    validators: list[ValidatorWithInfo] = []
    rounds_votes: dict[int, list[RoundVote]] = {}


class Upgrade(BaseModel):
    """A chain upgrade, either scheduled on-chain or from a halt height."""

    model_config = ConfigDict(frozen=True)

    name: str
    height: int
    source: str = "plan"


class NodeStatus(BaseModel):
    """Identity and sync state of the node being observed."""

    model_config = ConfigDict(frozen=True)

    node_id: str = ""
    moniker: str = ""
    network: str = ""
    version: str = ""
    latest_block_height: int = 0
    latest_block_time: datetime | None = None
    catching_up: bool = False
    validator_address: str = ""
