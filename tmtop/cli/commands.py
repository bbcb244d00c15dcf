"""Typer CLI commands with Rich formatting."""

import asyncio
import json
import signal
from typing import Any, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from ..core.config import Settings, load_settings
from ..core.errors import ConfigError
from ..core.logging import setup_logging
from ..core.types import Category
from ..services.aggregator import Aggregator
from ..services.scheduler import RefreshScheduler
from ..services.state import StateSnapshot, StateStore
from .render import (
    all_rounds_table,
    chain_info,
    consensus_info,
    get_timezone,
    last_round_table,
    render_dashboard,
)

# Errors in these categories fail `tmtop check`
FATAL_CATEGORIES = (Category.CONSENSUS, Category.VALIDATORS)

app = typer.Typer(
    name="tmtop",
    help="Observe Tendermint consensus rounds and validator votes as they happen",
)
console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Helper to run async functions from sync CLI."""
    return asyncio.run(coro)


def format_as_api_json(snapshot: StateSnapshot) -> dict[str, Any]:
    """Format a snapshot as a JSON-serializable dict."""
    validators = snapshot.get_validators_with_info()

    result: dict[str, Any] = {
        "height": snapshot.height,
        "round": snapshot.round,
        "step": snapshot.step,
        "start_time": snapshot.start_time.isoformat(),
        "prevotes": {
            "total_percent": str(snapshot.prevote_percent(True)),
            "agreeing_percent": str(snapshot.prevote_percent(False)),
        },
        "precommits": {
            "total_percent": str(snapshot.precommit_percent(True)),
            "agreeing_percent": str(snapshot.precommit_percent(False)),
        },
        "validators": [
            {
                "index": v.validator.index,
                "address": v.validator.address,
                "name": v.display_name,
                "voting_power": v.validator.voting_power,
                "voting_power_percent": str(v.validator.voting_power_percent),
                "prevote": v.round_vote.prevote.value if v.round_vote else None,
                "precommit": v.round_vote.precommit.value if v.round_vote else None,
                "is_proposer": bool(v.round_vote and v.round_vote.is_proposer),
            }
            for v in validators
        ],
        "errors": {category.value: message for category, message in snapshot.errors.items()},
    }

    if snapshot.node_status is not None:
        result["node"] = snapshot.node_status.model_dump(mode="json")

    if snapshot.block_time is not None:
        result["block_time_seconds"] = snapshot.block_time.total_seconds()

    if snapshot.upgrade is not None:
        result["upgrade"] = snapshot.upgrade.model_dump(mode="json")

    return result


def check_exit_code(snapshot: StateSnapshot) -> int:
    """1 when consensus or validators could not be fetched, otherwise 0."""
    return 1 if any(category in snapshot.errors for category in FATAL_CATEGORIES) else 0


def _load_settings(**overrides: Any) -> Settings:
    try:
        return load_settings(**overrides)
    except ConfigError as e:
        err_console.print(f"[red]Error: invalid configuration: {e}[/red]")
        raise typer.Exit(1)


def _install_pause_handler(scheduler: RefreshScheduler) -> None:
    """Toggle pause on SIGUSR1 where the platform has it."""
    if not hasattr(signal, "SIGUSR1"):
        return
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGUSR1, scheduler.toggle_pause)
    except (NotImplementedError, RuntimeError):
        pass


@app.command()
def run(
    rpc_host: Optional[str] = typer.Option(
        None, "--rpc-host", help="Tendermint RPC host URL"
    ),
    chain_type: Optional[str] = typer.Option(
        None, "--chain-type", help="Validator roster source: tendermint or cosmos-lcd"
    ),
    lcd_host: Optional[str] = typer.Option(
        None, "--lcd-host", help="Cosmos LCD host URL"
    ),
    provider_lcd_host: Optional[str] = typer.Option(
        None, "--provider-lcd-host", help="Provider chain LCD host URL (consumer chains)"
    ),
    consumer_chain_id: Optional[str] = typer.Option(
        None, "--consumer-chain-id", help="Consumer chain ID (consumer chains)"
    ),
    refresh_rate: Optional[float] = typer.Option(
        None, "--refresh-rate", help="Consensus refresh interval, seconds"
    ),
    validators_refresh_rate: Optional[float] = typer.Option(
        None, "--validators-refresh-rate", help="Validator roster refresh interval, seconds"
    ),
    chain_info_refresh_rate: Optional[float] = typer.Option(
        None, "--chain-info-refresh-rate", help="Node status refresh interval, seconds"
    ),
    upgrade_refresh_rate: Optional[float] = typer.Option(
        None, "--upgrade-refresh-rate", help="Upgrade plan refresh interval, seconds"
    ),
    block_time_refresh_rate: Optional[float] = typer.Option(
        None, "--block-time-refresh-rate", help="Block time refresh interval, seconds"
    ),
    halt_height: Optional[int] = typer.Option(
        None, "--halt-height", help="Show a halt-height upgrade at this height"
    ),
    blocks_behind: Optional[int] = typer.Option(
        None, "--blocks-behind", help="Blocks to average block time over"
    ),
    tz_name: Optional[str] = typer.Option(
        None, "--timezone", help="Timezone to display times in"
    ),
    columns: int = typer.Option(
        2, "--columns", "-c", min=1, help="Columns of the last round table"
    ),
    disable_emojis: bool = typer.Option(
        False, "--disable-emojis", help="Show votes as ASCII instead of emojis"
    ),
    all_rounds: bool = typer.Option(
        False, "--all-rounds", "-a", help="Show votes of every round of the height"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", "-l", help="Log level"
    ),
):
    """
    Watch consensus of a Tendermint node live.

    Send SIGUSR1 to pause or resume refreshing.

    Examples:
        tmtop run --rpc-host https://rpc.example.com:443
        tmtop run --chain-type cosmos-lcd --lcd-host https://lcd.example.com
    """
    settings = _load_settings(
        rpc_host=rpc_host,
        chain_type=chain_type,
        lcd_host=lcd_host,
        provider_lcd_host=provider_lcd_host,
        consumer_chain_id=consumer_chain_id,
        refresh_rate=refresh_rate,
        validators_refresh_rate=validators_refresh_rate,
        chain_info_refresh_rate=chain_info_refresh_rate,
        upgrade_refresh_rate=upgrade_refresh_rate,
        block_time_refresh_rate=block_time_refresh_rate,
        halt_height=halt_height,
        blocks_behind=blocks_behind,
        timezone=tz_name,
        log_level=log_level,
    )

    try:
        tz = get_timezone(settings.timezone)
        setup_logging(settings.log_level, console=console, log_file=settings.log_file)
    except (ConfigError, ValueError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    store = StateStore()
    scheduler = RefreshScheduler(store, Aggregator(settings), settings)

    def dashboard():
        return render_dashboard(
            store.snapshot(),
            tz,
            columns=columns,
            disable_emojis=disable_emojis,
            all_rounds=all_rounds,
            paused=scheduler.paused,
        )

    async def main():
        _install_pause_handler(scheduler)
        with Live(get_renderable=dashboard, console=console, refresh_per_second=4, screen=True):
            await scheduler.run()

    try:
        run_async(main())
    except KeyboardInterrupt:
        pass


@app.command()
def check(
    rpc_host: Optional[str] = typer.Option(
        None, "--rpc-host", help="Tendermint RPC host URL"
    ),
    chain_type: Optional[str] = typer.Option(
        None, "--chain-type", help="Validator roster source: tendermint or cosmos-lcd"
    ),
    lcd_host: Optional[str] = typer.Option(
        None, "--lcd-host", help="Cosmos LCD host URL"
    ),
    provider_lcd_host: Optional[str] = typer.Option(
        None, "--provider-lcd-host", help="Provider chain LCD host URL (consumer chains)"
    ),
    consumer_chain_id: Optional[str] = typer.Option(
        None, "--consumer-chain-id", help="Consumer chain ID (consumer chains)"
    ),
    halt_height: Optional[int] = typer.Option(
        None, "--halt-height", help="Show a halt-height upgrade at this height"
    ),
    blocks_behind: Optional[int] = typer.Option(
        None, "--blocks-behind", help="Blocks to average block time over"
    ),
    tz_name: Optional[str] = typer.Option(
        None, "--timezone", help="Timezone to display times in"
    ),
    output_json: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON"
    ),
    all_rounds: bool = typer.Option(
        False, "--all-rounds", "-a", help="Show votes of every round of the height"
    ),
    disable_emojis: bool = typer.Option(
        False, "--disable-emojis", help="Show votes as ASCII instead of emojis"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", "-l", help="Log level"
    ),
):
    """
    Fetch everything once and print it.

    Examples:
        tmtop check --rpc-host http://localhost:26657
        tmtop check --json
    """
    settings = _load_settings(
        rpc_host=rpc_host,
        chain_type=chain_type,
        lcd_host=lcd_host,
        provider_lcd_host=provider_lcd_host,
        consumer_chain_id=consumer_chain_id,
        halt_height=halt_height,
        blocks_behind=blocks_behind,
        timezone=tz_name,
        log_level=log_level,
    )

    try:
        tz = get_timezone(settings.timezone)
        setup_logging(settings.log_level, console=err_console, log_file=settings.log_file)
    except (ConfigError, ValueError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    store = StateStore()
    scheduler = RefreshScheduler(store, Aggregator(settings), settings)

    if output_json:
        run_async(scheduler.refresh_all())
    else:
        console.print()
        with console.status(f"[bold blue]Querying {settings.rpc_host}..."):
            run_async(scheduler.refresh_all())

    snapshot = store.snapshot()

    if output_json:
        print(json.dumps(format_as_api_json(snapshot), indent=2))
        raise typer.Exit(check_exit_code(snapshot))

    console.print(Panel(consensus_info(snapshot, tz), title="Consensus", border_style="blue"))
    console.print(Panel(chain_info(snapshot, tz), title="Chain", border_style="blue"))

    if snapshot.validators is not None:
        if all_rounds:
            console.print(all_rounds_table(snapshot, disable_emojis))
        else:
            console.print(last_round_table(snapshot, columns=1, disable_emojis=disable_emojis))

    if snapshot.errors:
        errors = Table(title="Errors", show_header=True, header_style="bold red")
        errors.add_column("Category")
        errors.add_column("Error")
        for category, message in snapshot.errors.items():
            errors.add_row(category.value, message)
        console.print(errors)

    exit_code = check_exit_code(snapshot)
    if exit_code:
        raise typer.Exit(exit_code)


if __name__ == "__main__":
    app()
