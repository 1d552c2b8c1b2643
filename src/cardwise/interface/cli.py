"""Cardwise CLI: study sessions, due counts and interval previews."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any

import typer

from cardwise.application.config import AppConfig, resolve_config
from cardwise.application.interval_calculator import format_interval, preview_intervals
from cardwise.application.stats import SessionSummary, accuracy_band, format_next_review
from cardwise.domain.errors import CardStoreError, CardwiseError, NoCardsDue
from cardwise.domain.models import StudyMode, StudyStats

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="cardwise: spaced-repetition study sessions for vocabulary flashcards.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage cardwise configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Enable debug logging."
        ),
    ] = 0,
    backend: Annotated[str | None, typer.Option(help="Card store backend: http, memory.")] = None,
    api_url: Annotated[str | None, typer.Option(help="Flashcard API base URL.")] = None,
    cards_file: Annotated[
        Path | None, typer.Option(help="JSON card list for the memory backend.")
    ] = None,
):
    """Global settings for cardwise."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {"backend": backend, "api_url": api_url, "cards_file": cards_file}
    if verbose >= 1:
        logging.getLogger().setLevel(logging.DEBUG)


def _resolve(ctx: typer.Context, **overrides: Any) -> AppConfig:
    obj = ctx.obj or {}
    merged = {**obj.get("overrides", {}), **overrides}
    return resolve_config(merged)


def _print_summary(summary: SessionSummary) -> None:
    typer.secho("\nSession complete", fg="green", bold=True)
    typer.echo(f"  Cards:     {summary.reviewed_cards}/{summary.total_cards} reviewed")
    typer.echo(
        f"  Accuracy:  {summary.accuracy}% ({accuracy_band(summary.accuracy)}), "
        f"{summary.correct_cards} correct / {summary.incorrect_cards} incorrect"
    )
    typer.echo(f"  Completed: {summary.completion_rate:.0f}%")
    typer.echo(f"  Duration:  {summary.duration_minutes:.1f} min")
    typer.echo(f"  Avg time:  {summary.average_time_per_card_seconds:.1f}s per card")
    if summary.grade_breakdown:
        parts = ", ".join(f"{k}={v}" for k, v in summary.grade_breakdown.items())
        typer.echo(f"  Grades:    {parts}")


# ---------------------------------------------------------------------------
# Study (local, easy/hard)
# ---------------------------------------------------------------------------


@app.command()
def study(
    ctx: typer.Context,
    deck_id: Annotated[int, typer.Argument(help="Deck to study.")],
    title: Annotated[str, typer.Option(help="Deck title shown in the session.")] = "",
    shuffle: Annotated[
        bool | None, typer.Option("--shuffle/--no-shuffle", help="Shuffle the deck first.")
    ] = None,
):
    """[bold green]Study[/bold green] a whole deck until every card is rated easy.

    Nothing is written back; this is untracked practice.
    """
    from cardwise.application.factory import get_card_store
    from cardwise.application.local_scheduler import (
        LocalPreferences,
        LocalSessionScheduler,
        LocalState,
    )

    config = _resolve(ctx, shuffle_cards=shuffle)
    store = get_card_store(config)
    scheduler = LocalSessionScheduler(
        preferences=LocalPreferences(
            show_progress=config.show_progress, shuffle_cards=config.shuffle_cards
        )
    )

    async def load():
        try:
            await scheduler.start_from_store(store, deck_id, title, page_size=config.page_size)
        finally:
            await store.aclose()

    try:
        asyncio.run(load())
    except CardwiseError as e:
        typer.secho(f"Could not start session: {e}", fg="red")
        raise typer.Exit(1) from None

    while scheduler.state == LocalState.ACTIVE:
        session = scheduler.session
        card = scheduler.current_card
        if config.show_progress:
            typer.echo(
                f"\n[{session.completed_count}/{session.total_cards} mastered] "
                f"card {session.current_index + 1}"
            )
        typer.secho(card.card.front, bold=True)
        if session.answer_shown:
            typer.echo(f"  {card.card.back}")
            if card.card.ipa:
                typer.echo(f"  /{card.card.ipa}/")

        choice = typer.prompt("[s]how [e]asy [h]ard [p]revious [q]uit", default="s")
        choice = choice.strip().lower()[:1]
        if choice == "s":
            scheduler.show_answer()
        elif choice == "e":
            scheduler.rate_card("easy")
        elif choice == "h":
            scheduler.rate_card("hard")
        elif choice == "p":
            scheduler.previous_card()
        elif choice == "q":
            break

    summary = scheduler.end()
    if summary:
        _print_summary(summary)


# ---------------------------------------------------------------------------
# Practice (SRS)
# ---------------------------------------------------------------------------


@app.command()
def practice(
    ctx: typer.Context,
    deck: Annotated[int | None, typer.Option(help="Restrict to one deck.")] = None,
    mode: Annotated[StudyMode | None, typer.Option(help="Study mode.")] = None,
):
    """[bold green]Practice[/bold green] due cards and save the new schedule."""
    from cardwise.application.factory import get_card_store
    from cardwise.application.srs_scheduler import SrsSessionScheduler

    config = _resolve(ctx)
    store = get_card_store(config)
    scheduler = SrsSessionScheduler(
        store, page_size=config.page_size, max_cards=config.max_cards_per_session
    )

    async def run():
        try:
            session = await scheduler.start(mode or config.default_mode, deck)
        except NoCardsDue:
            typer.secho("No cards due and none scheduled.", fg="yellow")
            return None

        if session.availability and session.availability.due_cards == 0:
            wait = format_next_review(session.availability.minutes_until_next)
            typer.secho(f"No cards due right now. Next review: {wait}", fg="yellow")
            return None

        while True:
            try:
                practice_card = await scheduler.get_next_card()
            except CardStoreError as e:
                typer.secho(f"Could not load the next card: {e}", fg="red")
                if typer.confirm("Retry?", default=True):
                    continue
                return scheduler.complete()
            if practice_card is None:
                break
            card = practice_card.card
            typer.echo(f"\n[{session.reviewed_cards + 1}/{session.total_cards}]")
            typer.secho(card.front, bold=True)
            typer.prompt("Press enter to reveal", default="", show_default=False)
            typer.echo(f"  {card.back}")

            previews = preview_intervals(card.stats or StudyStats.initial())
            labels = "  ".join(
                f"{int(g)}={g.label} ({format_interval(r.interval)})" for g, r in previews.items()
            )
            while True:
                raw = typer.prompt(f"{labels}  q=quit").strip().lower()
                if raw == "q":
                    return scheduler.complete()
                try:
                    await scheduler.submit_review(int(raw) if raw.isdigit() else raw)
                    break
                except CardStoreError as e:
                    typer.secho(f"Could not save review, try again: {e}", fg="red")
                except CardwiseError as e:
                    typer.secho(str(e), fg="red")

        return scheduler.complete()

    async def main():
        try:
            return await run()
        finally:
            await store.aclose()

    try:
        summary = asyncio.run(main())
    except CardStoreError as e:
        typer.secho(f"Card store unavailable: {e}", fg="red")
        raise typer.Exit(1) from None

    if summary is not None:
        _print_summary(summary)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@app.command()
def due(
    ctx: typer.Context,
    deck: Annotated[int | None, typer.Option(help="Restrict to one deck.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show how many cards are due and when the next one is."""
    from cardwise.application.factory import get_card_store

    config = _resolve(ctx)
    store = get_card_store(config)

    async def run():
        try:
            return await store.get_due_count(deck)
        finally:
            await store.aclose()

    try:
        counts = asyncio.run(run())
    except CardStoreError as e:
        typer.secho(f"Card store unavailable: {e}", fg="red")
        raise typer.Exit(1) from None

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "due": counts.due_cards,
                    "new": counts.new_cards,
                    "learning": counts.learning_cards,
                    "review": counts.review_cards,
                    "has_cards_available": counts.has_cards_available,
                    "next_card_available_at": counts.next_card_available_at.isoformat()
                    if counts.next_card_available_at
                    else None,
                    "minutes_until_next": counts.minutes_until_next,
                },
                indent=2,
            )
        )
        return

    typer.echo(
        f"Due: {counts.due_cards}  New: {counts.new_cards}  "
        f"Learning: {counts.learning_cards}  Review: {counts.review_cards}"
    )
    if counts.due_cards == 0:
        if counts.next_card_available_at is None:
            typer.secho("Nothing scheduled.", fg="yellow")
        else:
            typer.echo(f"Next review: {format_next_review(counts.minutes_until_next)}")


@app.command()
def preview(
    ease: Annotated[float, typer.Option(help="Current ease factor.")] = 2.5,
    interval: Annotated[int, typer.Option(help="Current interval in days.")] = 0,
    reps: Annotated[int, typer.Option(help="Consecutive successful reviews.")] = 0,
):
    """Show what each grade would do to a card's schedule."""
    stats = StudyStats(ease_factor=ease, interval=interval, repetitions=reps)
    for grade, result in preview_intervals(stats).items():
        typer.echo(
            f"{int(grade)} {grade.label:<6} -> {format_interval(result.interval):>5}  "
            f"ease {result.ease_factor:.2f}  reps {result.repetitions}"
        )


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    if d.get("api_token"):
        d["api_token"] = "***"
    typer.echo(json.dumps(d, indent=2, default=str))


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8777,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Run the study session HTTP server."""
    import uvicorn

    uvicorn.run("cardwise.server:app", host=host, port=port, reload=reload)
