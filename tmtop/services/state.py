"""The reconciled view of the chain that the dashboard renders."""

import logging
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..core.types import (
    AllRoundsVotes,
    Category,
    ChainValidator,
    NodeStatus,
    Phase,
    RoundVote,
    Upgrade,
    ValidatorWithInfo,
    ValidatorWithRoundVote,
)
from .converter import ConsensusUpdate, voting_power_percent

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StateSnapshot(BaseModel):
    """An immutable snapshot of everything known about the chain.

    Each category's slice is replaced wholesale by its own refresh. A failed
    refresh only records an error for its category and leaves the last good
    data in place, so both can be shown together.
    """

    model_config = ConfigDict(frozen=True)

    height: int = 0
    round: int = 0
    step: int = 0
    start_time: datetime = Field(default_factory=_now)

    validators: list[ValidatorWithRoundVote] | None = None
    all_round_votes: dict[int, list[RoundVote]] | None = None
    chain_validators: list[ChainValidator] | None = None
    node_status: NodeStatus | None = None
    upgrade: Upgrade | None = None
    block_time: timedelta | None = None

    errors: dict[Category, str] = {}
    updated_at: dict[Category, datetime] = {}

    def error(self, category: Category) -> str | None:
        return self.errors.get(category)

    def prevote_percent(self, inclusive: bool) -> Decimal:
        """Prevoted share of voting power in the current round."""
        return voting_power_percent(self.validators or [], Phase.PREVOTE, inclusive)

    def precommit_percent(self, inclusive: bool) -> Decimal:
        """Precommitted share of voting power in the current round."""
        return voting_power_percent(self.validators or [], Phase.PRECOMMIT, inclusive)

    def _chain_validators_by_address(self) -> dict[str, ChainValidator]:
        by_address: dict[str, ChainValidator] = {}
        for chain_validator in self.chain_validators or []:
            by_address[chain_validator.address] = chain_validator
            if chain_validator.raw_assigned_address:
                by_address[chain_validator.raw_assigned_address] = chain_validator
        return by_address

    def get_validators_with_info(self) -> list[ValidatorWithInfo]:
        """Current round's validators joined with their roster identity.

        Validators missing from the roster are kept and display their address.
        """
        by_address = self._chain_validators_by_address()

        return [
            ValidatorWithInfo(
                validator=v.validator,
                round_vote=v.round_vote,
                chain_validator=by_address.get(v.validator.address),
            )
            for v in self.validators or []
        ]

    def get_validators_with_all_round_votes(self) -> AllRoundsVotes:
        """Per-round vote grid, rows aligned with get_validators_with_info()."""
        if self.validators is None:
            return AllRoundsVotes()

        by_address = self._chain_validators_by_address()
        validators = [
            ValidatorWithInfo(
                validator=v.validator,
                chain_validator=by_address.get(v.validator.address),
            )
            for v in self.validators
        ]

        return AllRoundsVotes(
            validators=validators,
            rounds_votes=self.all_round_votes or {},
        )


class StateStore:
    """Owns the current snapshot and serializes every read and replace.

    Writers never mutate a snapshot; they swap in a new one, so a reader holds
    a consistent height/round/step triple for as long as it likes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = StateSnapshot()

    def snapshot(self) -> StateSnapshot:
        with self._lock:
            return self._snapshot

    def _publish(self, categories: tuple[Category, ...], **update: Any) -> None:
        now = _now()
        with self._lock:
            current = self._snapshot
            errors = {k: v for k, v in current.errors.items() if k not in categories}
            updated_at = {**current.updated_at, **{category: now for category in categories}}
            self._snapshot = current.model_copy(
                update={**update, "errors": errors, "updated_at": updated_at}
            )

    def set_consensus(self, update: ConsensusUpdate) -> None:
        """Replace the consensus slice; validators and votes come together."""
        fields: dict[str, Any] = {
            "height": update.height,
            "round": update.round,
            "step": update.step,
            "validators": update.validators,
            "all_round_votes": update.all_round_votes,
        }
        if update.start_time is not None:
            fields["start_time"] = update.start_time

        self._publish((Category.CONSENSUS, Category.VALIDATORS), **fields)

    def set_chain_validators(self, validators: list[ChainValidator]) -> None:
        self._publish((Category.CHAIN_VALIDATORS,), chain_validators=validators)

    def set_upgrade(self, upgrade: Upgrade | None) -> None:
        self._publish((Category.UPGRADE,), upgrade=upgrade)

    def set_node_status(self, status: NodeStatus) -> None:
        self._publish((Category.STATUS,), node_status=status)

    def set_block_time(self, block_time: timedelta) -> None:
        self._publish((Category.BLOCK_TIME,), block_time=block_time)

    def set_error(self, category: Category, error: BaseException | str) -> None:
        """Record a failure for one category, keeping its last good data."""
        message = str(error) or type(error).__name__
        logger.debug(f"Recording {category.value} error: {message}")
        with self._lock:
            current = self._snapshot
            self._snapshot = current.model_copy(
                update={"errors": {**current.errors, category: message}}
            )
