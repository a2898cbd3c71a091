# ruff: noqa: I001
"""Typer CLI for ``statement_ledger``.

Commands:

- ``learn``: learn an extraction profile from sample lines.
- ``import``: import a pasted statement file into a monthly snapshot.
- ``period``: print CURRENT or YTD rows and spend by category.
- ``recurring``: print the recurring bill calendar and forecast.

The root callback loads ``.env`` from the working directory and configures
logging before any command runs. State lives in the ``ledger_kv`` table
selected by ``--database-url`` or ``DATABASE_URL``.
"""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from .config import config_from_env
from .logging_setup import configure_logging
from .persistence import PersistencePort


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Parse pasted bank statements into categorized monthly snapshots.",
)

DATABASE_URL_OPTION = typer.Option(None, "--database-url", help="Override DATABASE_URL (falls back to env var).")


def _open_port(database_url: str | None) -> PersistencePort:
    from .persistence import SqlKeyValueStore

    return SqlKeyValueStore(database_url=database_url)


def _fmt(d: Decimal) -> str:
    from .amounts import fmt_amount

    return fmt_amount(d)


@app.command("learn")
def learn_cmd(
    sample: Annotated[list[str], typer.Option("--sample", "-s", help="Sample statement line (repeatable).")],
    save: bool = typer.Option(False, help="Store the learned profile for later imports."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Learn a profile from one or two sample lines and print it as JSON."""

    from .importer import write_profile
    from .profiles import learn_profile

    result = learn_profile(sample)
    for m in result.matches:
        status = "ok" if m.ok else "no match"
        typer.echo(f"[{status}] {m.line}")
    if result.profile is None:
        typer.echo("No profile learned; please provide clearer sample lines.", err=True)
        raise typer.Exit(1)

    typer.echo(result.profile.model_dump_json(by_alias=True, indent=2))
    if save:
        cfg = config_from_env()
        write_profile(_open_port(database_url), result.profile, cfg.namespace)
        typer.echo("Profile saved.")


@app.command("import")
def import_cmd(
    file: Annotated[Path, typer.Argument(help="Text file with the pasted statement.")],
    year: int = typer.Option(..., help="Statement year."),
    month: int | None = typer.Option(None, min=1, max=12, help="Statement month (inferred when omitted)."),
    sample: Annotated[list[str] | None, typer.Option("--sample", "-s", help="Sample line to learn from.")] = None,
    beginning_balance: str | None = typer.Option(None, help="Beginning balance from the statement."),
    total_deposits: str | None = typer.Option(None, help="Total deposits from the statement."),
    total_withdrawals: str | None = typer.Option(None, help="Total withdrawals from the statement."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Import a statement text file and cache it as a monthly snapshot."""

    from .amounts import to_decimal
    from .importer import Stage, import_statement

    try:
        text = file.read_text(encoding="utf-8")
    except OSError as exc:
        typer.echo(f"Error: cannot read {file}: {exc}", err=True)
        raise typer.Exit(1) from exc

    def _money(raw: str | None) -> Decimal | None:
        if raw is None:
            return None
        try:
            return to_decimal(raw)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc

    result = import_statement(
        _open_port(database_url),
        text,
        year=year,
        month=month,
        samples=sample or (),
        config=config_from_env(),
        beginning_balance=_money(beginning_balance),
        total_deposits=_money(total_deposits),
        total_withdrawals=_money(total_withdrawals),
    )
    typer.echo(f"Stages: {' -> '.join(s.value for s in result.stages)}")
    typer.echo(f"Transactions: {len(result.transactions)}")
    if not result.transactions:
        typer.echo("No transactions parsed for this month.", err=True)
    if result.reached is not Stage.SNAPSHOT_CACHED or result.snapshot is None:
        typer.echo("Could not determine the statement month; pass --month.", err=True)
        raise typer.Exit(1)
    snap = result.snapshot
    typer.echo(
        f"Snapshot {snap.id}: deposits {_fmt(snap.inputs.total_deposits)}, "
        f"withdrawals {_fmt(snap.inputs.total_withdrawals)}"
        + (" (totals auto-fixed)" if result.auto_fixed else "")
    )


@app.command("period")
def period_cmd(
    period: str = typer.Option("CURRENT", help="CURRENT or YTD."),
    statement: str | None = typer.Option(None, help="Statement month YYYY-MM (defaults to the selected one)."),
    as_json: bool = typer.Option(False, "--json", help="Print rows as JSON."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Print the rows and spend by category for CURRENT or YTD."""

    from .periods import coerce_period, rows_for_period
    from .ruleset import load_ruleset, snapshot_rows
    from .statements import SnapshotStore
    from .summary import spending_by_category

    try:
        p = coerce_period(period)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    cfg = config_from_env()
    port = _open_port(database_url)
    store = SnapshotStore(port, cfg.namespace)
    current = store.resolve_current_id(statement)
    if current is None:
        typer.echo("No statements imported yet.", err=True)
        raise typer.Exit(1)

    ruleset = load_ruleset(port, namespace=cfg.namespace, config=cfg)
    snapshot = store.read(current)
    live = ruleset.categorize(snapshot_rows(snapshot, ruleset)) if snapshot else []
    rows = rows_for_period(p, store, ruleset, live_rows=live, query_param=statement)

    if as_json:
        typer.echo(json.dumps([r.model_dump(mode="json", by_alias=True) for r in rows], indent=2))
        return
    typer.echo(f"{p.value} through {current}: {len(rows)} rows")
    for category, amount in spending_by_category(rows):
        typer.echo(f"  {category:<24} {_fmt(amount):>12}")


@app.command("recurring")
def recurring_cmd(
    statement: str | None = typer.Option(None, help="Anchor month YYYY-MM (defaults to the selected one)."),
    forecast: bool = typer.Option(False, help="Also print the typical-month balance curve."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Print recurring bills and income found across the year to date."""

    from .models import Period
    from .periods import rows_for_period
    from .recurring import build_recurring, forecast_typical_month
    from .ruleset import load_ruleset
    from .statements import SnapshotStore

    cfg = config_from_env()
    port = _open_port(database_url)
    store = SnapshotStore(port, cfg.namespace)
    ruleset = load_ruleset(port, namespace=cfg.namespace, config=cfg)
    rows = rows_for_period(Period.YTD, store, ruleset, query_param=statement)

    recurring = build_recurring(rows, categories=cfg.recurring_categories)
    if not recurring:
        typer.echo("No recurring items found.")
        return
    for r in recurring:
        typer.echo(f"{r.day:>2}  {r.type:<7} {r.description:<32} {_fmt(r.avg_amount):>10}  {r.category}")
    if forecast:
        for point in forecast_typical_month(recurring):
            typer.echo(f"day {point.day:>2}: {_fmt(point.balance)}")


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command: load ``.env`` and configure logging."""

    # Load environment from .env in CWD (override=False to keep existing env)
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    app()
