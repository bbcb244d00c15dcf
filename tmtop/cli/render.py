"""Rich renderables for the consensus dashboard."""

import math
from datetime import datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from ..core.errors import ConfigError
from ..core.types import Category, RoundVote, ValidatorWithInfo, Vote
from ..services.state import StateSnapshot

VOTE_EMOJIS = {
    Vote.VOTED: "✅",
    Vote.VOTED_ZERO: "🤷",
    Vote.VOTED_NIL: "❌",
}

VOTE_ASCII = {
    Vote.VOTED: "[X]",
    Vote.VOTED_ZERO: "[0]",
    Vote.VOTED_NIL: "[ ]",
}

PROPOSER_STYLE = "on dark_green"

NAME_WIDTH = 25


def get_timezone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"unknown timezone: {name}") from e


def vote_symbol(vote: Vote, disable_emojis: bool = False) -> str:
    symbols = VOTE_ASCII if disable_emojis else VOTE_EMOJIS
    return symbols[vote]


def pad_and_trim(source: str, width: int, align_left: bool = True) -> str:
    """Fit `source` into exactly `width` characters, eliding with `...`."""
    if len(source) > width:
        return source[: max(width - 3, 0)] + "..."
    return source.ljust(width) if align_left else source.rjust(width)


def format_duration(duration: timedelta) -> str:
    """Millisecond precision above a second, microsecond below it."""
    seconds = max(duration.total_seconds(), 0.0)

    if seconds < 1:
        return f"{seconds * 1000:.3f}ms"

    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(int(minutes), 60)
    if hours:
        return f"{hours}h{minutes}m{seconds:.3f}s"
    if minutes:
        return f"{minutes}m{seconds:.3f}s"
    return f"{seconds:.3f}s"


def format_time(moment: datetime, tz: tzinfo) -> str:
    return moment.astimezone(tz).strftime("%A, %d-%b-%y %H:%M:%S %Z")


def format_percent(value: Decimal) -> str:
    return f"{value:.2f}"


def time_till_block(
    current_height: int,
    target_height: int,
    block_time: timedelta,
    now: datetime,
) -> datetime:
    """Estimated wall-clock time of `target_height`, which may be in the past."""
    seconds = math.trunc((target_height - current_height) * block_time.total_seconds())
    return now + timedelta(seconds=seconds)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def consensus_info(snapshot: StateSnapshot, tz: tzinfo, now: datetime | None = None) -> str:
    now = now or _now()

    error = snapshot.error(Category.CONSENSUS) or snapshot.error(Category.VALIDATORS)
    lines = []
    if error:
        lines.append(f"consensus state error: {error}")

    if snapshot.validators is None:
        return "\n".join(lines)

    elapsed = now - snapshot.start_time
    lines += [
        f"height={snapshot.height} round={snapshot.round} step={snapshot.step}",
        f"block time: {format_duration(elapsed)} ({format_time(snapshot.start_time, tz)})",
        "prevote consensus (total/agreeing): "
        f"{format_percent(snapshot.prevote_percent(True))} / "
        f"{format_percent(snapshot.prevote_percent(False))}",
        "precommit consensus (total/agreeing): "
        f"{format_percent(snapshot.precommit_percent(True))} / "
        f"{format_percent(snapshot.precommit_percent(False))}",
        f"last updated at: {format_time(now, tz)}",
    ]
    return "\n".join(lines)


def upgrade_info(snapshot: StateSnapshot, tz: tzinfo, now: datetime | None = None) -> list[str]:
    """Scheduled, in progress or applied, relative to the current height."""
    upgrade = snapshot.upgrade
    if upgrade is None:
        return ["no chain upgrade scheduled"]

    now = now or _now()
    height = snapshot.height
    block_time = snapshot.block_time

    if upgrade.height + 1 == height:
        return ["upgrade in progress..."]

    if upgrade.height + 1 < height:
        lines = [
            f"chain upgrade {upgrade.name} applied at block {upgrade.height}",
            f"blocks since upgrade: {height - upgrade.height}",
        ]
        if block_time:
            upgrade_time = time_till_block(height, upgrade.height, block_time, now)
            lines += [
                f"time since upgrade: {format_duration(now - upgrade_time)}",
                f"upgrade approximate time: {format_time(upgrade_time, tz)}",
            ]
        return lines

    lines = [
        f"chain upgrade {upgrade.name} scheduled at block {upgrade.height}",
        f"blocks till upgrade: {upgrade.height - height}",
    ]
    if block_time:
        upgrade_time = time_till_block(height, upgrade.height, block_time, now)
        lines += [
            f"time till upgrade: {format_duration(upgrade_time - now)}",
            f"upgrade estimated time: {format_time(upgrade_time, tz)}",
        ]
    return lines


def chain_info(snapshot: StateSnapshot, tz: tzinfo, now: datetime | None = None) -> str:
    """Node, block time and upgrade lines. Errors sit next to stale data."""
    lines = []

    if error := snapshot.error(Category.STATUS):
        lines.append(f"chain info fetch error: {error}")
    if snapshot.node_status is not None:
        lines.append(f"chain name: {snapshot.node_status.network}")
        lines.append(f"tendermint version: v{snapshot.node_status.version}")

    if error := snapshot.error(Category.BLOCK_TIME):
        lines.append(f"block time fetch error: {error}")
    if snapshot.block_time:
        lines.append(f"avg block time: {format_duration(snapshot.block_time)}")

    if error := snapshot.error(Category.CHAIN_VALIDATORS):
        lines.append(f"validators fetch error: {error}")

    if error := snapshot.error(Category.UPGRADE):
        lines.append(f"upgrade plan fetch error: {error}")
    else:
        lines += upgrade_info(snapshot, tz, now)

    return "\n".join(lines)


def progress_bars(snapshot: StateSnapshot) -> Table:
    grid = Table.grid(expand=True, padding=(0, 1))
    grid.add_column(width=12)
    grid.add_column(ratio=1)

    if snapshot.validators is None:
        return grid

    for label, percent in (
        ("Prevotes", snapshot.prevote_percent(True)),
        ("Precommits", snapshot.precommit_percent(True)),
    ):
        grid.add_row(label, ProgressBar(total=100, completed=float(percent)))
    return grid


def validator_cell(validator: ValidatorWithInfo, disable_emojis: bool = False) -> str:
    round_vote = validator.round_vote
    prevote = vote_symbol(round_vote.prevote if round_vote else Vote.VOTED_NIL, disable_emojis)
    precommit = vote_symbol(
        round_vote.precommit if round_vote else Vote.VOTED_NIL, disable_emojis
    )

    return (
        f"{prevote} {precommit} "
        f"{pad_and_trim(str(validator.validator.index + 1), 3, align_left=False)} "
        f"{pad_and_trim(format_percent(validator.validator.voting_power_percent), 6, align_left=False)}% "
        f"{pad_and_trim(validator.display_name, NAME_WIDTH)}"
    )


def last_round_table(
    snapshot: StateSnapshot,
    columns: int = 2,
    disable_emojis: bool = False,
) -> Table:
    """Current round's validators laid out row by row across `columns`."""
    validators = snapshot.get_validators_with_info()

    table = Table.grid(padding=(0, 2))
    for _ in range(columns):
        table.add_column(no_wrap=True)

    rows = math.ceil(len(validators) / columns)
    for row in range(rows):
        cells = []
        for column in range(columns):
            index = row * columns + column
            if index >= len(validators):
                cells.append(Text(""))
                continue

            validator = validators[index]
            style = PROPOSER_STYLE if validator.round_vote and validator.round_vote.is_proposer else ""
            cells.append(Text(validator_cell(validator, disable_emojis), style=style))
        table.add_row(*cells)

    return table


def _round_vote_cell(round_vote: RoundVote, disable_emojis: bool) -> Text:
    text = f"{vote_symbol(round_vote.prevote, disable_emojis)} {vote_symbol(round_vote.precommit, disable_emojis)}"
    return Text(text, style=PROPOSER_STYLE if round_vote.is_proposer else "")


def all_rounds_table(snapshot: StateSnapshot, disable_emojis: bool = False) -> Table:
    """One row per validator, one column per round of the current height."""
    grid = snapshot.get_validators_with_all_round_votes()

    table = Table(box=None, padding=(0, 1), show_edge=False)
    table.add_column("validator", no_wrap=True)
    rounds = list(grid.rounds_votes)
    for round_ in rounds:
        table.add_column(str(round_), justify="center", no_wrap=True)

    for row, validator in enumerate(grid.validators):
        name = (
            f"{pad_and_trim(str(validator.validator.index + 1), 3, align_left=False)} "
            f"{pad_and_trim(validator.display_name, NAME_WIDTH)}"
        )
        table.add_row(
            name,
            *(_round_vote_cell(grid.rounds_votes[round_][row], disable_emojis) for round_ in rounds),
        )

    return table


def render_dashboard(
    snapshot: StateSnapshot,
    tz: tzinfo,
    columns: int = 2,
    disable_emojis: bool = False,
    all_rounds: bool = False,
    paused: bool = False,
) -> RenderableType:
    header = Table.grid(expand=True, padding=(0, 1))
    header.add_column(ratio=1)
    header.add_column(ratio=1)
    header.add_row(
        Panel(consensus_info(snapshot, tz), title="Consensus", border_style="blue"),
        Panel(chain_info(snapshot, tz), title="Chain", border_style="blue"),
    )

    if all_rounds:
        votes = Panel(all_rounds_table(snapshot, disable_emojis), title="All rounds")
    else:
        votes = Panel(last_round_table(snapshot, columns, disable_emojis), title="Last round")

    parts: list[RenderableType] = [header, progress_bars(snapshot), votes]
    if paused:
        parts.insert(0, Text("PAUSED", style="bold yellow"))
    return Group(*parts)
