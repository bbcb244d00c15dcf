"""Raw payloads returned by the Tendermint RPC endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ConsensusHeightVoteSet(BaseModel):
    round: int
    prevotes: list[str] = Field(default_factory=list)
    precommits: list[str] = Field(default_factory=list)

    @field_validator("prevotes", "precommits", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return value or []


class ConsensusProposer(BaseModel):
    address: str = ""
    index: int = 0


class ConsensusRoundState(BaseModel):
    """The `round_state` object of /consensus_state."""

    height_round_step: str = Field(alias="height/round/step")
    start_time: datetime | None = None
    height_vote_set: list[ConsensusHeightVoteSet] = Field(default_factory=list)
    proposer: ConsensusProposer = Field(default_factory=ConsensusProposer)

    @field_validator("height_vote_set", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return value or []


class ValidatorPubKey(BaseModel):
    type: str = ""
    value: str = ""


class TendermintValidator(BaseModel):
    address: str
    voting_power: str
    pub_key: ValidatorPubKey = Field(default_factory=ValidatorPubKey)
    proposer_priority: str | None = None

    @field_validator("voting_power", "proposer_priority", mode="before")
    @classmethod
    def as_string(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class ValidatorsResult(BaseModel):
    """One page of /validators."""

    block_height: str = ""
    count: str
    total: str
    validators: list[TendermintValidator] = Field(default_factory=list)


class DumpValidatorSet(BaseModel):
    validators: list[TendermintValidator] = Field(default_factory=list)


class DumpConsensusRoundState(BaseModel):
    """The `round_state` object of /dump_consensus_state."""

    validators: DumpValidatorSet


class BlockHeader(BaseModel):
    height: int
    time: datetime


class StatusNodeInfo(BaseModel):
    id: str = ""
    moniker: str = ""
    network: str = ""
    version: str = ""


class StatusSyncInfo(BaseModel):
    latest_block_height: int = 0
    latest_block_time: datetime | None = None
    catching_up: bool = False


class StatusValidatorInfo(BaseModel):
    address: str = ""


class StatusResult(BaseModel):
    """The `result` object of /status."""

    node_info: StatusNodeInfo = Field(default_factory=StatusNodeInfo)
    sync_info: StatusSyncInfo = Field(default_factory=StatusSyncInfo)
    validator_info: StatusValidatorInfo = Field(default_factory=StatusValidatorInfo)
