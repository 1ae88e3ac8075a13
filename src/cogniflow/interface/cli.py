"""CogniFlow CLI — study, simulation, sync and data management commands."""

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml

from cogniflow.application.config import AppConfig, resolve_config
from cogniflow.domain.errors import CogniflowError, ConflictUnresolvedError, ValidationError
from cogniflow.domain.models import Snapshot
from cogniflow.domain.sync.models import (
    Entity,
    EntityKind,
    MergeReport,
    ResolutionChoice,
    Section,
    UserResolution,
)

app = typer.Typer(
    help="cogniflow: spaced-repetition scheduling and offline sync.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage cogniflow configuration.")
app.add_typer(config_app, name="config")

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_CONFLICTS = 3


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity."),
    ] = 0,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Only log warnings.")] = False,
    data_dir: Annotated[
        Path | None, typer.Option(help="Directory holding the local snapshot.")
    ] = None,
):
    """Global settings for cogniflow."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {"data_dir": data_dir, "verbose": verbose}
    if quiet:
        logging.getLogger().setLevel(logging.WARNING)
    elif verbose:
        logging.getLogger().setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(ctx: typer.Context, **overrides: Any) -> AppConfig:
    base = dict((ctx.obj or {}).get("overrides", {}))
    base.update(overrides)
    try:
        return resolve_config(base)
    except ValueError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(EXIT_USAGE) from e


def _now() -> datetime:
    # Local wall clock, so "today" matches the user's calendar day
    return datetime.now().astimezone()


def _fail(message: str, code: int = EXIT_ERROR) -> typer.Exit:
    typer.secho(message, fg="red", err=True)
    return typer.Exit(code)


def _load(config: AppConfig) -> Snapshot:
    from cogniflow.application.factory import get_storage

    try:
        return asyncio.run(get_storage(config).load()) or Snapshot()
    except ValidationError as e:
        for problem in e.problems:
            typer.secho(f"  {problem}", fg="red", err=True)
        raise _fail(f"Local snapshot is invalid: {e}") from e
    except CogniflowError as e:
        raise _fail(str(e)) from e


def _save(config: AppConfig, snapshot: Snapshot) -> None:
    from cogniflow.application.factory import get_storage

    try:
        asyncio.run(get_storage(config).save(snapshot))
    except CogniflowError as e:
        raise _fail(str(e)) from e


def _entity_summary(entity: Entity | None) -> dict[str, Any] | None:
    if entity is None:
        return None
    if isinstance(entity, Section):
        return {"value": entity.value}
    return {
        "name": entity.name,
        "deleted": entity.is_deleted,
        "lastModified": entity.last_modified.isoformat() if entity.last_modified else None,
    }


def conflicts_to_yaml(report: MergeReport) -> str:
    """Human-readable listing of the conflicts awaiting a decision."""
    listing = [
        {
            "kind": c.kind.value,
            "id": c.entity_id,
            "local": _entity_summary(c.local),
            "remote": _entity_summary(c.remote),
        }
        for c in report.conflicts
    ]
    return yaml.safe_dump({"conflicts": listing}, sort_keys=False)


def parse_resolutions(text: str) -> list[UserResolution]:
    """
    Parse a YAML resolution file::

        deck:
          deck-1: local
        series:
          series-1: remote
        section:
          folders: local
    """
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("resolutions must be a mapping of kind -> {id: local|remote}")

    resolutions = []
    for kind_key, choices in data.items():
        kind = EntityKind(kind_key)
        if not isinstance(choices, dict):
            raise ValueError(f"'{kind_key}' must map entity ids to local|remote")
        for entity_id, choice in choices.items():
            resolutions.append(UserResolution(kind, str(entity_id), ResolutionChoice(choice)))
    return resolutions


# ---------------------------------------------------------------------------
# Study
# ---------------------------------------------------------------------------


@app.command()
def due(
    ctx: typer.Context,
    deck: Annotated[str | None, typer.Option(help="Only this deck.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List items due today."""
    from cogniflow.application.scheduling import due_items

    config = _config(ctx)
    snapshot = _load(config)
    entries = due_items(snapshot, _now(), deck_id=deck)

    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "deckId": e.deck_id,
                        "itemId": e.item.id,
                        "dueDate": e.item.due_date.isoformat(),
                        "interval": e.item.interval,
                    }
                    for e in entries
                ],
                indent=2,
            )
        )
        return

    if not entries:
        typer.secho("No items due.", fg="green")
        return
    for e in entries:
        typer.echo(
            f"{e.deck_id}/{e.item.id}  due {e.item.due_date.date()}  interval {e.item.interval}d"
        )
    typer.echo(f"\n{len(entries)} item(s) due.")


@app.command()
def review(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck owning the item.")],
    item_id: Annotated[str, typer.Argument(help="Item to rate.")],
    rating: Annotated[str, typer.Argument(help="again, hard, good, easy (or 1-4), or suspend.")],
    series: Annotated[str | None, typer.Option(help="Series the review belongs to.")] = None,
):
    """Rate one item and reschedule it."""
    from cogniflow.application.scheduling import review_item

    config = _config(ctx)
    snapshot = _load(config)
    try:
        result = review_item(
            snapshot, deck_id, item_id, rating, _now(), config=config.engine(), series_id=series
        )
    except CogniflowError as e:
        raise _fail(str(e)) from e
    _save(config, result.snapshot)

    item = result.item
    if item.suspended:
        typer.secho(f"{item_id} is suspended.", fg="yellow")
    else:
        typer.echo(
            f"{item_id}: next review {item.due_date.date()} "
            f"(interval {item.interval}d, ease {item.ease_factor:.2f})"
        )
    if result.is_leech:
        typer.secho(f"{item_id} is a leech ({item.lapses} lapses).", fg="yellow")


@app.command()
def reset(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck to reset.")],
    item: Annotated[
        list[str] | None, typer.Option("--item", help="Only reset these items (repeatable).")
    ] = None,
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation.")] = False,
):
    """Reset scheduling progress of a deck."""
    from cogniflow.application.scheduling import reset_deck_progress

    if not force:
        typer.confirm(f"Reset progress of deck '{deck_id}'?", abort=True)

    config = _config(ctx)
    snapshot = _load(config)
    try:
        snapshot = reset_deck_progress(snapshot, deck_id, _now(), item_ids=item)
    except CogniflowError as e:
        raise _fail(str(e)) from e
    _save(config, snapshot)
    typer.secho(f"Progress of deck '{deck_id}' reset.", fg="green")


@app.command()
def simulate(
    ctx: typer.Context,
    deck: Annotated[str | None, typer.Option(help="Only this deck.")] = None,
    days: Annotated[int | None, typer.Option(help="Days to project.")] = None,
    new_per_day: Annotated[int | None, typer.Option(help="New items per day.")] = None,
    retention: Annotated[float | None, typer.Option(help="Recall probability (0-1).")] = None,
    seed: Annotated[int | None, typer.Option(help="Random seed.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Project the review workload of the coming days."""
    from cogniflow.application.scheduling import simulate as run_simulation
    from cogniflow.application.scheduling import summarize

    config = _config(
        ctx,
        simulation_days=days,
        simulation_new_per_day=new_per_day,
        simulation_retention=retention,
    )
    snapshot = _load(config)
    items = [
        it
        for d in snapshot.decks
        if not d.is_deleted and (deck is None or d.id == deck)
        for it in d.items
    ]
    engine = config.engine()
    projection = run_simulation(
        items,
        config.simulation_days,
        engine.new_items_per_day,
        engine.retention,
        _now(),
        seed=seed,
    )
    summary = summarize(projection)

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "days": [
                        {
                            "day": d.day,
                            "date": d.date.isoformat(),
                            "reviewCount": d.review_count,
                            "newCount": d.new_count,
                            "totalLoad": d.total_load,
                            "meanMastery": round(d.mean_mastery, 4),
                        }
                        for d in projection
                    ],
                    "peakLoad": summary.peak_load,
                    "peakDay": summary.peak_day,
                    "meanLoad": round(summary.mean_load, 2),
                },
                indent=2,
            )
        )
        return

    for d in projection:
        typer.echo(
            f"{d.date}  reviews {d.review_count:>4}  new {d.new_count:>4}  "
            f"total {d.total_load:>4}  mastery {d.mean_mastery:.0%}"
        )
    typer.echo(f"\nPeak: {summary.peak_load} on day {summary.peak_day}. Mean: {summary.mean_load:.1f}/day.")


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


def _edit(ctx: typer.Context, operation: Callable[..., Snapshot], *args: str) -> None:
    config = _config(ctx)
    try:
        snapshot = operation(_load(config), *args, _now())
    except CogniflowError as e:
        raise _fail(str(e)) from e
    _save(config, snapshot)


@app.command("delete-deck")
def delete_deck_command(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck to move to the trash.")],
):
    """Move a deck to the trash (the deletion syncs to other devices)."""
    from cogniflow.application.collection_service import delete_deck

    _edit(ctx, delete_deck, deck_id)
    typer.secho(f"Deck '{deck_id}' moved to the trash.", fg="green")


@app.command("restore-deck")
def restore_deck_command(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck to take out of the trash.")],
):
    """Restore a deck from the trash."""
    from cogniflow.application.collection_service import restore_deck

    _edit(ctx, restore_deck, deck_id)
    typer.secho(f"Deck '{deck_id}' restored.", fg="green")


@app.command("purge-deck")
def purge_deck_command(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck to delete permanently.")],
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation.")] = False,
):
    """Delete a deck permanently."""
    from cogniflow.application.collection_service import purge_deck

    if not force:
        typer.confirm(f"Permanently delete deck '{deck_id}'?", abort=True)
    _edit(ctx, purge_deck, deck_id)
    typer.secho(f"Deck '{deck_id}' permanently deleted.", fg="green")


@app.command("delete-series")
def delete_series_command(
    ctx: typer.Context,
    series_id: Annotated[str, typer.Argument(help="Series to move to the trash.")],
):
    """Move a series and its decks to the trash."""
    from cogniflow.application.collection_service import delete_series

    _edit(ctx, delete_series, series_id)
    typer.secho(f"Series '{series_id}' and its decks moved to the trash.", fg="green")


@app.command("restore-series")
def restore_series_command(
    ctx: typer.Context,
    series_id: Annotated[str, typer.Argument(help="Series to take out of the trash.")],
):
    """Restore a series, and the decks trashed with it, from the trash."""
    from cogniflow.application.collection_service import restore_series

    _edit(ctx, restore_series, series_id)
    typer.secho(f"Series '{series_id}' restored.", fg="green")


@app.command("purge-series")
def purge_series_command(
    ctx: typer.Context,
    series_id: Annotated[str, typer.Argument(help="Series to delete permanently.")],
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation.")] = False,
):
    """Delete a series and its decks permanently."""
    from cogniflow.application.collection_service import purge_series

    if not force:
        typer.confirm(f"Permanently delete series '{series_id}' and its decks?", abort=True)
    _edit(ctx, purge_series, series_id)
    typer.secho(f"Series '{series_id}' permanently deleted.", fg="green")


@app.command()
def complete(
    ctx: typer.Context,
    series_id: Annotated[str, typer.Argument(help="Series.")],
    deck_id: Annotated[str, typer.Argument(help="Deck completed within the series.")],
):
    """Mark a deck as completed within a series."""
    from cogniflow.application.collection_service import mark_deck_completed

    _edit(ctx, mark_deck_completed, series_id, deck_id)
    typer.secho(f"Deck '{deck_id}' completed in series '{series_id}'.", fg="green")


@app.command("export")
def export_command(
    ctx: typer.Context,
    output: Annotated[Path, typer.Argument(help="Destination file, or '-' for stdout.")],
):
    """Export the local snapshot as canonical JSON."""
    from cogniflow.infrastructure.adapters.json_file_storage import write_atomic
    from cogniflow.infrastructure.serialization import encode_snapshot

    config = _config(ctx)
    text = encode_snapshot(_load(config))
    if str(output) == "-":
        typer.echo(text)
        return
    try:
        write_atomic(output, text)
    except OSError as e:
        raise _fail(f"Could not write {output}: {e}") from e
    typer.secho(f"Exported to {output}", fg="green")


@app.command("import")
def import_command(
    ctx: typer.Context,
    source: Annotated[Path, typer.Argument(help="Snapshot JSON file.", exists=True, dir_okay=False)],
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation.")] = False,
):
    """Replace the local snapshot with an exported one."""
    from cogniflow.infrastructure.serialization import decode_snapshot

    try:
        snapshot = decode_snapshot(source.read_text(encoding="utf-8"))
    except ValidationError as e:
        for problem in e.problems:
            typer.secho(f"  {problem}", fg="red", err=True)
        raise _fail(f"{source} is not a valid snapshot: {e}") from e

    if not force:
        typer.confirm("This replaces your local collection. Continue?", abort=True)

    config = _config(ctx)
    _save(config, snapshot)
    typer.secho(
        f"Imported {len(snapshot.decks)} deck(s), {len(snapshot.deck_series)} series, "
        f"{len(snapshot.reviews)} review(s).",
        fg="green",
    )


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@app.command()
def sync(
    ctx: typer.Context,
    resolutions: Annotated[
        Path | None,
        typer.Option(help="YAML file with conflict decisions.", exists=True, dir_okay=False),
    ] = None,
    backend: Annotated[str | None, typer.Option(help="Remote backend: file, http.")] = None,
    remote_path: Annotated[Path | None, typer.Option(help="Remote snapshot file.")] = None,
    remote_url: Annotated[str | None, typer.Option(help="Remote snapshot URL.")] = None,
    push: Annotated[
        bool | None, typer.Option("--push/--no-push", help="Publish the merged snapshot.")
    ] = None,
):
    """[bold green]Sync[/bold green] the local collection with the remote snapshot."""
    from cogniflow.application.factory import get_orchestrator
    from cogniflow.application.sync import SyncState

    config = _config(
        ctx,
        backend=backend,
        remote_path=remote_path,
        remote_url=remote_url,
        push_after_merge=push,
    )

    decisions: list[UserResolution] = []
    if resolutions is not None:
        try:
            decisions = parse_resolutions(resolutions.read_text(encoding="utf-8"))
        except (ValueError, yaml.YAMLError) as e:
            raise _fail(f"Invalid resolutions file: {e}", EXIT_USAGE) from e

    try:
        orchestrator = get_orchestrator(config)
    except CogniflowError as e:
        raise _fail(str(e), EXIT_USAGE) from e

    async def attempt() -> int:
        outcome = await orchestrator.start(_now())
        if outcome.state is SyncState.AWAITING_RESOLUTION:
            report = outcome.report
            typer.echo(conflicts_to_yaml(report))
            relevant = [d for d in decisions if report.conflict(d.kind, d.entity_id)]
            if not relevant:
                orchestrator.cancel()
                typer.secho(
                    "Sync cancelled: resolve the conflicts above with --resolutions.",
                    fg="yellow",
                )
                return EXIT_CONFLICTS
            try:
                outcome = await orchestrator.resolve(relevant, _now())
            except ConflictUnresolvedError as e:
                orchestrator.cancel()
                typer.secho(f"Sync cancelled: {e}", fg="yellow")
                return EXIT_CONFLICTS

        merged = outcome.snapshot
        typer.secho(
            f"Synced: {len(merged.decks)} deck(s), {len(merged.deck_series)} series, "
            f"{len(merged.reviews)} review(s).",
            fg="green",
        )
        return 0

    async def run() -> int:
        try:
            return await attempt()
        finally:
            await orchestrator.close()

    try:
        code = asyncio.run(run())
    except CogniflowError as e:
        raise _fail(f"Sync failed: {e}") from e
    if code:
        raise typer.Exit(code)


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Port.")] = 8777,
    reload: Annotated[bool, typer.Option("--reload", help="Auto-reload on code changes.")] = False,
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("cogniflow.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = config.model_dump(mode="json")
    if d.get("api_key"):
        d["api_key"] = "***"
    typer.echo(json.dumps(d, indent=2))

