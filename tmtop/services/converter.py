"""Turn raw consensus payloads into votes and voting-power percentages.

Voting power is kept as `int` and percentages as `Decimal`: summed voting
power routinely exceeds what a float represents exactly, which shows up as
drift in the displayed percentages.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, localcontext

from ..core.errors import ConsensusParseError
from ..core.rpc_types import ConsensusHeightVoteSet, ConsensusRoundState, TendermintValidator
from ..core.types import Phase, RoundVote, Validator, ValidatorWithRoundVote, Vote

NIL_VOTE = "nil-Vote"

# A prevote for the all-zero block hash
ZERO_PREVOTE_MARKER = "SIGNED_MSG_TYPE_PREVOTE(Prevote) 000000000000"

PERCENT_PRECISION = 50

_VOTING_POWER_RE = re.compile(r"^[0-9]+$")
_HEIGHT_ROUND_STEP_RE = re.compile(r"^([0-9]+)/([0-9]+)/([0-9]+)$")


@dataclass(frozen=True)
class ConsensusUpdate:
    """Everything one consensus payload contributes to the state."""

    height: int
    round: int
    step: int
    start_time: datetime | None
    validators: list[ValidatorWithRoundVote]
    all_round_votes: dict[int, list[RoundVote]]


def vote_from_string(source: str) -> Vote:
    """Classify a raw vote string from /consensus_state.

    Matching on the zero-hash marker is brittle, but it is what decides
    VOTED_ZERO versus VOTED and has to stay exactly as is.
    """
    if source == NIL_VOTE:
        return Vote.VOTED_NIL

    if ZERO_PREVOTE_MARKER in source:
        return Vote.VOTED_ZERO

    return Vote.VOTED


def parse_height_round_step(value: str) -> tuple[int, int, int]:
    match = _HEIGHT_ROUND_STEP_RE.match(value)
    if match is None:
        raise ConsensusParseError(f"invalid height/round/step: {value!r}")

    height, round_, step = (int(part) for part in match.groups())
    return height, round_, step


def parse_voting_power(value: str) -> int:
    if not _VOTING_POWER_RE.match(value):
        raise ConsensusParseError(f"invalid voting power: {value!r}")
    return int(value)


def percent_of(part: int, total: int) -> Decimal:
    """`part / total * 100`, defined as 0 for an empty total."""
    if total == 0:
        return Decimal(0)

    with localcontext() as ctx:
        ctx.prec = PERCENT_PRECISION
        return Decimal(part) * 100 / Decimal(total)


def total_voting_power(validators: Iterable[ValidatorWithRoundVote]) -> int:
    return sum(v.validator.voting_power for v in validators)


def voting_power_percent(
    validators: Sequence[ValidatorWithRoundVote],
    phase: Phase,
    inclusive: bool,
) -> Decimal:
    """Share of voting power that voted in `phase`.

    Strict counts only VOTED; inclusive also counts VOTED_ZERO.
    """
    counted = {Vote.VOTED, Vote.VOTED_ZERO} if inclusive else {Vote.VOTED}

    voted = sum(
        v.validator.voting_power
        for v in validators
        if v.round_vote.vote(phase) in counted
    )
    return percent_of(voted, total_voting_power(validators))


def _round_vote(
    vote_set: ConsensusHeightVoteSet,
    index: int,
    address: str,
    proposer_address: str,
) -> RoundVote:
    prevote = vote_set.prevotes[index] if index < len(vote_set.prevotes) else NIL_VOTE
    precommit = vote_set.precommits[index] if index < len(vote_set.precommits) else NIL_VOTE

    return RoundVote(
        address=address,
        prevote=vote_from_string(prevote),
        precommit=vote_from_string(precommit),
        is_proposer=address == proposer_address,
    )


def validators_with_round_vote(
    round_state: ConsensusRoundState,
    tendermint_validators: Sequence[TendermintValidator],
    round_: int,
) -> list[ValidatorWithRoundVote]:
    """Validators of the given round, index-aligned to the node's ordering."""
    vote_sets = {vote_set.round: vote_set for vote_set in round_state.height_vote_set}
    vote_set = vote_sets.get(round_, ConsensusHeightVoteSet(round=round_))

    if len(vote_set.prevotes) > len(tendermint_validators):
        raise ConsensusParseError(
            f"round {round_} has {len(vote_set.prevotes)} votes "
            f"but only {len(tendermint_validators)} validators are known"
        )

    proposer = round_state.proposer.address
    entries = []

    for index in range(len(vote_set.prevotes)):
        tendermint_validator = tendermint_validators[index]
        entries.append(
            (
                tendermint_validator.address,
                parse_voting_power(tendermint_validator.voting_power),
                _round_vote(vote_set, index, tendermint_validator.address, proposer),
            )
        )

    total = sum(voting_power for _, voting_power, _ in entries)

    return [
        ValidatorWithRoundVote(
            validator=Validator(
                index=index,
                address=address,
                voting_power=voting_power,
                voting_power_percent=percent_of(voting_power, total),
            ),
            round_vote=round_vote,
        )
        for index, (address, voting_power, round_vote) in enumerate(entries)
    ]


def all_rounds_votes(
    round_state: ConsensusRoundState,
    validators: Sequence[ValidatorWithRoundVote],
) -> dict[int, list[RoundVote]]:
    """Votes of every round, projected onto the current round's ordering."""
    proposer = round_state.proposer.address

    return {
        vote_set.round: [
            _round_vote(vote_set, v.validator.index, v.validator.address, proposer)
            for v in validators
        ]
        for vote_set in sorted(round_state.height_vote_set, key=lambda s: s.round)
    }


def build_consensus_update(
    round_state: ConsensusRoundState,
    tendermint_validators: Sequence[TendermintValidator],
) -> ConsensusUpdate:
    """Parse one consensus payload. Raises ConsensusParseError on bad input."""
    height, round_, step = parse_height_round_step(round_state.height_round_step)

    validators = validators_with_round_vote(round_state, tendermint_validators, round_)

    return ConsensusUpdate(
        height=height,
        round=round_,
        step=step,
        start_time=round_state.start_time,
        validators=validators,
        all_round_votes=all_rounds_votes(round_state, validators),
    )
