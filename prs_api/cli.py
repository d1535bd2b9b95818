from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict
from typing import Optional

import typer

from .config import settings
from .db.session import SessionLocal
from .dependencies.dashboard import get_engine_config
from .services.dashboard import DashboardQuery, DashboardService
from .services.errors import DashboardError
from .services.time_window import resolve_time_window
from .services.union import assemble_documents, load_source_batch
from .services.visibility import RequestUser
from .workers.snapshot import build_refresher

app = typer.Typer(help="PRS dashboard operator CLI")


def _parse_json_option(raw: Optional[str], name: str):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{name} must be valid JSON") from exc


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine events to stdout")) -> None:
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING, handlers=[logging.StreamHandler(sys.stdout)])


@app.command()
def refresh_snapshot(
    horizon_days: int = typer.Option(
        settings.snapshot.horizon_days, "--horizon-days", min=1, show_default=True, help="Days of history to assemble"
    ),
) -> None:
    """Build the dashboard snapshot once and print the refresh outcome."""
    outcome = build_refresher(horizon_days).refresh()
    typer.echo(json.dumps(asdict(outcome), indent=2))
    if outcome.status != "published":
        raise typer.Exit(code=1)


@app.command()
def audit_orphans(
    time_range: Optional[str] = typer.Option(None, "--time-range", "-t", help="Named range, e.g. '3 months'"),
    date: Optional[str] = typer.Option(None, "--date", "-d", help="Single day (YYYY-MM-DD)"),
) -> None:
    """List sub-documents whose requisition is missing inside a window."""
    config = get_engine_config()
    try:
        window = resolve_time_window(time_range, date, default_range=config.default_time_range, tz=config.tz)
    except DashboardError as exc:
        raise typer.BadParameter(exc.message) from exc

    db = SessionLocal()
    try:
        assembly = assemble_documents(load_source_batch(db, window), window)
    finally:
        db.close()

    for orphan in assembly.orphans:
        typer.echo(f"{orphan.doc_type}\t{orphan.document_id}\trequisition={orphan.requisition_id}")
    typer.echo(
        f"{len(assembly.orphans)} orphaned of {len(assembly.documents) + len(assembly.orphans)} documents "
        f"between {window.start.isoformat()} and {window.end.isoformat()}"
    )


@app.command()
def dashboard(
    user_id: int = typer.Argument(..., help="Requesting user id"),
    role: Optional[str] = typer.Option(None, "--role", "-r", help="Role name, e.g. 'Purchasing Staff'"),
    request_type: Optional[str] = typer.Option(None, "--request-type", help="my_request, my_approval or all"),
    limit: int = typer.Option(10, "--limit", min=1, max=100, show_default=True),
    page: int = typer.Option(1, "--page", min=1, show_default=True),
    time_range: Optional[str] = typer.Option(None, "--time-range", "-t"),
    filter_by: Optional[str] = typer.Option(None, "--filter-by", help="filterBy JSON object"),
    order: Optional[str] = typer.Option(None, "--order", help="order JSON object, e.g. '{\"updated_at\": \"asc\"}'"),
) -> None:
    """Run one dashboard request on the live path and print the response body."""
    query = DashboardQuery(
        user=RequestUser(id=user_id, role=role),
        limit=limit,
        page=page,
        order=_parse_json_option(order, "--order"),
        filter_by=_parse_json_option(filter_by, "--filter-by"),
        request_type=request_type,
        time_range=time_range,
    )
    db = SessionLocal()
    try:
        result = DashboardService(db, get_engine_config()).get_dashboard(query)
    except DashboardError as exc:
        typer.echo(json.dumps({"error": type(exc).__name__, **exc.to_detail()}), err=True)
        raise typer.Exit(code=1) from exc
    finally:
        db.close()

    typer.echo(json.dumps({"source": result.source, **result.body}, indent=2, default=str))


if __name__ == "__main__":
    app()
