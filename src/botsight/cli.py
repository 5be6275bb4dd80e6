"""
BotSight CLI - Command Line Interface for replay bot detection

Provides commands for:
- Analyzing decoded replay files (single files or whole folders)
- Showing the population baseline
- Generating a default configuration file
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from botsight import __version__
from botsight.analysis.models import GameAnalysisResult
from botsight.analysis.scoring import score_band
from botsight.core.config import (
    configure_logging,
    generate_default_config,
    get_config,
    load_config,
    set_config,
)
from botsight.core.errors import BotSightError
from botsight.infra.database import BaselineStore

app = typer.Typer(
    name="botsight",
    help="Replay-based bot detection - timing statistics, detectors and a population baseline",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

SEVERITY_STYLES = {
    "CRITICAL": "bold red",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "dim",
}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]BotSight[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable verbose output"),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (.yaml, .toml or .json)",
        exists=True,
        dir_okay=False,
    ),
) -> None:
    """BotSight - Replay-based bot detection"""
    config = load_config(config_file) if config_file else get_config()
    set_config(config)
    configure_logging(config.logging, verbose=verbose)


def _open_store(db: Optional[Path]) -> BaselineStore:
    config = get_config()
    return BaselineStore(db or config.store.db_path, echo=config.store.echo)


def _print_game(result: GameAnalysisResult) -> None:
    if result.skipped:
        console.print(f"[dim]Skipped (already analyzed):[/dim] {result.game_id}")
        return

    console.print(
        f"\n[bold]{result.game_id}[/bold] {result.map_name} "
        f"({result.duration_ms / 60000:.1f} min, {len(result.players)} players)"
    )
    for player in sorted(result.players, key=lambda p: p.suspicion_score, reverse=True):
        band = score_band(player.suspicion_score)
        human = " [green](verified human)[/green]" if player.verified_human else ""
        console.print(
            f"  [cyan]{player.name}[/cyan] ({player.user_id}) "
            f"score [bold]{player.suspicion_score}[/bold] {band}{human}"
        )
        for flag in player.flags:
            style = SEVERITY_STYLES[flag.severity.value]
            console.print(f"    [{style}]{flag.severity.value:<8}[/{style}] {flag.message}")


@app.command()
def analyze(
    paths: list[Path] = typer.Argument(
        ...,
        help="Decoded replay files (.json / .json.gz) or folders containing them",
        exists=True,
        resolve_path=True,
    ),
    db: Optional[Path] = typer.Option(None, "--db", help="Baseline database path"),
    force: bool = typer.Option(False, "--force", "-f", help="Re-analyze games already stored"),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Worker threads for multi-file runs"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the single-file result as JSON"
    ),
) -> None:
    """
    Analyze decoded replays and record them in the baseline store.

    A single file is analyzed directly and its flags are printed. Several
    files, or a folder, are analyzed in parallel with one shared writer.
    """
    from botsight.infra.parallel import BatchAnalyzer, find_replays
    from botsight.pipeline.orchestrator import ReplayAnalyzer

    config = get_config()
    store = _open_store(db)

    try:
        if len(paths) == 1 and paths[0].is_file():
            analyzer = ReplayAnalyzer(store, config=config.analysis)
            try:
                result = analyzer.analyze_file(paths[0], force=force)
            except BotSightError as e:
                console.print(f"[red]Error:[/red] {e}")
                raise typer.Exit(1)

            _print_game(result)
            if output:
                output.write_text(json.dumps(result.to_dict(), indent=2))
                console.print(f"\n[green]Result written to {output}[/green]")
            return

        batch = BatchAnalyzer(
            store, workers=workers or config.batch.max_workers, config=config.analysis
        )
        replay_paths: list[Path] = []
        for path in paths:
            if path.is_dir():
                replay_paths.extend(find_replays(path, suffix=config.batch.replay_suffix))
            else:
                replay_paths.append(path)

        summary = batch.analyze_batch(replay_paths, force=force)
        for item in summary.results:
            if not item.success:
                console.print(f"[red]Failed:[/red] {item.replay_path}: {item.error_message}")
            elif item.skipped:
                console.print(f"[dim]Skipped:[/dim] {item.replay_path}")
            else:
                band = score_band(item.max_suspicion_score)
                console.print(
                    f"[green]OK[/green] {item.replay_path}: {item.players_analyzed} players, "
                    f"{item.players_flagged} flagged, top score {item.max_suspicion_score} ({band})"
                )

        console.print(
            f"\n{summary.successful}/{summary.total_replays} analyzed "
            f"({summary.skipped} skipped, {summary.failed} failed) "
            f"in {summary.total_duration_seconds:.1f}s"
        )
        if summary.failed:
            raise typer.Exit(1)
    finally:
        store.close()


@app.command()
def baseline(
    db: Optional[Path] = typer.Option(None, "--db", help="Baseline database path"),
    exclude: Optional[int] = typer.Option(
        None, "--exclude", help="Leave this user id's own games out of the population"
    ),
) -> None:
    """
    Show the population baseline the comparative detector calibrates against.
    """
    store = _open_store(db)
    try:
        stats = store.get_baseline_stats(exclude_user_id=exclude)
        totals = store.get_global_stats()
    finally:
        store.close()

    console.print("\n[bold blue]Population baseline[/bold blue]")
    console.print(
        f"  Games: {totals['total_games']}  Players: {totals['total_players']}  "
        f"Flags: {totals['total_flags']}"
    )
    console.print(f"  Sample size: {stats.sample_size}")
    console.print(f"  Avg APM: {stats.avg_apm:.1f}")
    console.print(f"  Avg ultra-fast: {stats.avg_ultra_fast_pct:.2f}%")
    console.print(f"  Avg very fast: {stats.avg_very_fast_pct:.2f}%")
    console.print(f"  Avg fast: {stats.avg_fast_pct:.2f}%")
    console.print(f"  Avg CV: {stats.avg_cv:.3f}")
    console.print(f"  Avg dominant interval share: {stats.avg_top_interval_pct:.2f}%")
    if not stats.usable:
        console.print("[yellow]  Too few player-games for the comparative detector[/yellow]")


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(Path("botsight.yaml"), help="Where to write the config file"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace an existing file"),
) -> None:
    """
    Write a default configuration file.
    """
    if path.exists() and not overwrite:
        console.print(f"[yellow]{path} already exists (use --overwrite)[/yellow]")
        raise typer.Exit(1)

    generate_default_config(path)
    console.print(f"[green]Config written to {path}[/green]")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
