"""CLI entry point for Seaguard - maritime compliance checks."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, Optional
from uuid import uuid4

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .compliance.certifications import evaluate_crew_certifications
from .compliance.passengers import validate_manifest
from .compliance.roles import ROLE_SUBSTITUTIONS
from .compliance.safe_manning import evaluate_safe_manning, requirements_from_mapping
from .errors import SeaguardError
from .models.compliance import ComplianceIssue
from .models.crew import CrewMember
from .models.passenger import PassengerFields
from .security.crypto import generate_key as new_key
from .utils import as_utc, parse_date, utcnow
from .version import get_version_info

app = typer.Typer(
    name="seaguard",
    help="Seaguard - crew, certification and passenger manifest compliance checks",
)
console = Console()

logger = logging.getLogger(__name__)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(code=2)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(code=2)


def _load_roster(path: Path) -> tuple[List[CrewMember], Optional[dict], Optional[float]]:
    """Crew list plus optional ``requirements`` and ``gross_tonnage``.

    The file is either a bare list of crew members or an object with a
    ``crew`` key. Certificates may omit ``crew_id``.
    """
    data = _load_json(path)
    requirements = None
    tonnage = None
    if isinstance(data, dict):
        requirements = data.get("requirements")
        tonnage = data.get("gross_tonnage")
        data = data.get("crew", [])

    crew: List[CrewMember] = []
    try:
        for raw in data:
            member_id = str(raw.get("id") or uuid4())
            certs = [{"crew_id": member_id, **c} for c in raw.get("certifications", [])]
            crew.append(CrewMember.model_validate({**raw, "id": member_id, "certifications": certs}))
    except ValidationError as e:
        console.print(f"[red]Invalid roster entry: {e.errors()[0].get('msg')}[/red]")
        raise typer.Exit(code=2)
    return crew, requirements, tonnage


def _issues_table(title: str, issues: List[ComplianceIssue]) -> Table:
    table = Table(title=title)
    table.add_column("Severity", style="cyan", no_wrap=True)
    # Codes stay whole; Subject and Message wrap
    table.add_column("Code", style="yellow", no_wrap=True)
    table.add_column("Subject")
    table.add_column("Message", style="red")
    for issue in issues:
        subject = issue.crew_name or issue.field or issue.role or ""
        table.add_row(issue.severity.value, issue.code, subject, issue.message)
    return table


@app.command()
def version():
    """Show version information."""
    for key, value in get_version_info().items():
        console.print(f"{key}: {value}")


@app.command("generate-key")
def generate_key():
    """Print a new 64-hex-character encryption key."""
    console.print(new_key())


@app.command()
def roles():
    """Show which ranks may fill each required role."""
    table = Table(title="Rank Substitutions")
    table.add_column("Required role", style="cyan")
    table.add_column("Satisfied by", style="green")
    for required, ranks in ROLE_SUBSTITUTIONS.items():
        table.add_row(required.value, ", ".join(r.value for r in ranks))
    console.print(table)


@app.command("check-manning")
def check_manning(
    roster: Path = typer.Argument(..., help="JSON roster file"),
    tonnage: Optional[float] = typer.Option(None, "--tonnage", "-t", help="Gross tonnage"),
):
    """Evaluate safe manning for a roster."""
    crew, requirements, file_tonnage = _load_roster(roster)
    try:
        result = evaluate_safe_manning(
            crew,
            requirements=requirements_from_mapping(requirements) if requirements is not None else None,
            gross_tonnage=tonnage if tonnage is not None else file_tonnage,
        )
    except SeaguardError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)

    table = Table(title=f"Safe Manning ({result.source})")
    table.add_column("Role", style="cyan")
    table.add_column("Required", justify="right")
    table.add_column("Available", justify="right", style="green")
    for role, count in result.required.items():
        available = result.fulfillable_by_role.get(role, 0)
        style = "red" if available < count else "green"
        table.add_row(role, str(count), f"[{style}]{available}[/{style}]")
    console.print(table)

    if result.errors:
        console.print(_issues_table("Violations", result.errors))
    if not result.compliant:
        console.print("[red]Roster is NOT compliant[/red]")
        raise typer.Exit(code=1)
    console.print("[green]Roster is compliant[/green]")


@app.command("check-certs")
def check_certs(
    roster: Path = typer.Argument(..., help="JSON roster file"),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date (YYYY-MM-DD)"),
):
    """Evaluate certificate coverage and expiry for a roster."""
    crew, _, _ = _load_roster(roster)
    try:
        reference = as_utc(parse_date(as_of, "as_of")) if as_of else utcnow()
    except SeaguardError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)

    report = evaluate_crew_certifications(crew, reference)
    issues = report.errors + report.critical + report.warnings
    if issues:
        console.print(_issues_table(f"Certificates ({report.evaluated_crew} crew)", issues))
    if not report.compliant:
        console.print("[red]Certification check FAILED[/red]")
        raise typer.Exit(code=1)
    console.print("[green]All required certificates are current[/green]")


@app.command("validate-manifest")
def validate_manifest_cmd(
    passengers_file: Path = typer.Argument(..., help="JSON list of passengers"),
    sailing_date: str = typer.Option(..., "--sailing-date", "-d", help="Departure date (YYYY-MM-DD)"),
    minimum_age: int = typer.Option(18, "--minimum-age", help="Minimum passenger age"),
):
    """Validate a passenger list against a sailing date."""
    data = _load_json(passengers_file)
    if isinstance(data, dict):
        data = data.get("passengers", [])
    try:
        departure = parse_date(sailing_date, "sailing_date")
        passengers = [PassengerFields.model_validate(p) for p in data]
    except SeaguardError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)
    except ValidationError as e:
        console.print(f"[red]Invalid passenger entry: {e.errors()[0].get('msg')}[/red]")
        raise typer.Exit(code=2)

    result = validate_manifest(passengers, departure, minimum_age=minimum_age)
    issues = result.errors + result.warnings
    if issues:
        console.print(_issues_table(f"Manifest ({len(passengers)} passengers)", issues))
    if not result.valid:
        console.print(f"[red]Manifest INVALID: {len(result.errors)} error(s)[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Manifest valid ({len(result.warnings)} warning(s))[/green]")


@app.command()
def history(
    entity_type: str = typer.Argument(..., help="Entity type, e.g. MANIFEST"),
    entity_id: str = typer.Argument(..., help="Entity id"),
):
    """Show the audit trail of one entity."""
    asyncio.run(_history(entity_type, entity_id))


async def _history(entity_type: str, entity_id: str):
    """Async implementation of history command."""
    from .audit.ledger import AuditLedger
    from .config import get_settings
    from .storage.supabase_client import SupabaseClient

    db = SupabaseClient.from_settings(get_settings())
    ledger = AuditLedger(db)
    try:
        entries = await ledger.history(entity_type, entity_id)
    finally:
        await db.close()

    table = Table(title=f"Audit trail {entity_type.upper()} {entity_id} ({len(entries)} entries)")
    table.add_column("Timestamp", style="dim")
    table.add_column("Action", style="cyan")
    table.add_column("Outcome")
    table.add_column("Actor", style="green")
    table.add_column("Changed")
    table.add_column("Reason")
    for entry in entries:
        outcome_style = "green" if entry.outcome.value == "SUCCESS" else "red"
        table.add_row(
            _format_timestamp(entry.timestamp),
            entry.action.value,
            f"[{outcome_style}]{entry.outcome.value}[/{outcome_style}]",
            entry.actor.name,
            ", ".join(entry.changed_fields),
            entry.reason or "",
        )
    console.print(table)


def _format_timestamp(value: datetime | date) -> str:
    return as_utc(value).strftime("%Y-%m-%d %H:%M:%S")


if __name__ == "__main__":
    app()
