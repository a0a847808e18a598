"""
epochledger/cli.py

Command line interface.

    epochledger epoch --genesis 1700000000 --at 1701209600
    epochledger simulate scenario.json --json
"""

import json
import logging
from typing import Optional

import click

from .config import LedgerConfig
from .epoch import EpochClock
from .exceptions import LedgerError
from .simulation import ScenarioError, load_scenario, run_scenario
from .storage import LedgerStore

logger = logging.getLogger("epochledger.cli")


@click.group()
@click.option('--log-level', default='WARNING',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging verbosity')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False), default=None,
              help='JSON ledger config (overridden by EPOCHLEDGER_* variables)')
@click.pass_context
def main(ctx, log_level: str, config_path: Optional[str]):
    """Epoch-quantized reward ledger tools."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.option('--genesis', type=int, default=None, help='Genesis timestamp')
@click.option('--epoch-length', type=int, default=None, help='Epoch length in seconds')
@click.option('--at', 'timestamp', type=int, default=None, help='Timestamp to convert (default: now)')
@click.option('--json', 'as_json', is_flag=True, help='Print JSON')
@click.pass_context
def epoch(ctx, genesis: Optional[int], epoch_length: Optional[int], timestamp: Optional[int], as_json: bool):
    """Show the epoch containing a timestamp and its boundaries."""
    config = LedgerConfig.load(ctx.obj.get("config_path"), genesis=genesis, epoch_length=epoch_length)
    clock = EpochClock(config.genesis, config.epoch_length)
    timestamp = clock.now() if timestamp is None else timestamp

    if clock.has_started(timestamp):
        index = clock.epoch(timestamp)
        info = {
            "timestamp": timestamp,
            "epoch": index,
            "epoch_start": clock.epoch_start(index),
            "epoch_end": clock.epoch_end(index),
            "elapsed": clock.elapsed_in_epoch(timestamp),
            "started": True,
        }
    else:
        info = {
            "timestamp": timestamp,
            "epoch": None,
            "first_open_epoch": clock.first_open_epoch(timestamp),
            "seconds_to_genesis": config.genesis - timestamp,
            "started": False,
        }

    if as_json:
        click.echo(json.dumps(info, indent=2))
        return
    if not info["started"]:
        click.echo(f"Before genesis ({info['seconds_to_genesis']}s to go); deposits go to epoch 0")
        return
    click.echo(f"Epoch {info['epoch']}: [{info['epoch_start']}, {info['epoch_end']}) elapsed {info['elapsed']}s")


@main.command()
@click.argument('scenario_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--json', 'as_json', is_flag=True, help='Print the full report as JSON')
@click.option('--max-sync-epochs', type=int, default=None, help='Override the catch-up bound')
@click.pass_context
def simulate(ctx, scenario_path: str, as_json: bool, max_sync_epochs: Optional[int]):
    """Replay SCENARIO_PATH against an in-memory ledger."""
    scenario = load_scenario(scenario_path)
    try:
        base = LedgerConfig.load(ctx.obj.get("config_path"))
        report = run_scenario(scenario, base=base, max_sync_epochs=max_sync_epochs)
    except (LedgerError, ScenarioError) as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")

    if as_json:
        click.echo(json.dumps(report, indent=2, default=str))
        return

    click.echo(f"Time {report['time']} (epoch {report['epoch']})")
    click.echo("Balances:")
    for account, balance in report["balances"].items():
        click.echo(f"  {account}: {balance}")
    for component, accounts in report["claimable"].items():
        click.echo(f"Claimable in {component}:")
        for account, amount in accounts.items():
            click.echo(f"  {account}: {amount}")


@main.command()
@click.argument('snapshot_path', type=click.Path(exists=True, dir_okay=False))
def inspect(snapshot_path: str):
    """Summarize a saved ledger snapshot."""
    try:
        document = LedgerStore(snapshot_path).read()
    except LedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"Snapshot v{document['version']} saved at {document.get('saved_at')}")
    for name, state in document.get("participants", {}).items():
        keys = ", ".join(sorted(state))
        click.echo(f"  {name}: {keys}")


if __name__ == "__main__":
    main()
