"""
Command Line Interface

CLI for validating and submitting consultations.
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from consultation_pad.config import ConsultationConfig, load_config
from consultation_pad.fhir.bundle import BundleConstructionError, to_json
from consultation_pad.fhir.client import FHIRClient
from consultation_pad.logging_utils import configure_logging
from consultation_pad.submission.coordinator import SubmitOutcome
from consultation_pad.submission.session import ConsultationSession, load_consultation

app = typer.Typer(
    name="consultation-pad",
    help="Record and submit clinical consultations as FHIR bundles",
    add_completion=False,
)
console = Console()


@app.callback()
def main_options(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
) -> None:
    configure_logging(log_level)


def _load_session(consultation_file: Path, config: Optional[Path]) -> ConsultationSession:
    if not consultation_file.exists():
        console.print(f"[red]Error: File not found: {consultation_file}[/red]")
        raise typer.Exit(1)

    cfg = load_config(config) if config else ConsultationConfig()
    session = ConsultationSession.from_config(cfg, client=FHIRClient(cfg.fhir))
    session.load_entries(load_consultation(consultation_file))
    return session


def _print_errors(session: ConsultationSession) -> None:
    table = Table(title="Validation errors")
    table.add_column("Entry")
    table.add_column("Field")
    table.add_column("Error")

    state = session.diagnoses.get_state()
    entries = [
        *state.selected_diagnoses,
        *state.selected_conditions,
        *session.allergies.selected_allergies,
    ]
    for entry in entries:
        for field_name, code in entry.errors.items():
            table.add_row(entry.display, field_name, code)

    console.print(table)


def _validate(session: ConsultationSession) -> bool:
    diagnoses_valid = session.diagnoses.validate()
    allergies_valid = session.allergies.validate_all_allergies()
    return diagnoses_valid and allergies_valid


@app.command()
def validate(
    consultation_file: Path = typer.Argument(..., help="Consultation YAML/JSON file"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Validate a consultation without submitting it."""
    session = _load_session(consultation_file, config)

    if not _validate(session):
        _print_errors(session)
        raise typer.Exit(1)

    console.print("[green]Consultation is valid[/green]")


@app.command()
def bundle(
    consultation_file: Path = typer.Argument(..., help="Consultation YAML/JSON file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
    indent: int = typer.Option(2, "--indent", help="JSON indent"),
) -> None:
    """Build the FHIR transaction bundle for a consultation."""
    session = _load_session(consultation_file, config)

    if not session.encounter.is_ready:
        console.print("[red]Error: Encounter details are incomplete[/red]")
        raise typer.Exit(1)

    if not _validate(session):
        _print_errors(session)
        raise typer.Exit(1)

    try:
        built = session.coordinator.build_bundle()
    except BundleConstructionError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    json_output = to_json(built, indent)

    if output:
        output.write_text(json_output)
        console.print(f"[green]Output saved to: {output}[/green]")
    else:
        console.print(json_output)


@app.command()
def submit(
    consultation_file: Path = typer.Argument(..., help="Consultation YAML/JSON file"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Validate and submit a consultation to the FHIR server."""
    session = _load_session(consultation_file, config)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Submitting consultation...", total=None)
        outcome = session.coordinator.submit_sync()
        progress.update(task, completed=True)

    if outcome == SubmitOutcome.SUCCEEDED:
        record_id = session.coordinator.last_record_id
        console.print(
            f"[green]Consultation submitted[/green]"
            + (f" [dim](encounter {record_id})[/dim]" if record_id else "")
        )
        return

    if outcome == SubmitOutcome.NOT_READY:
        console.print("[red]Error: Encounter details are incomplete[/red]")
    elif outcome == SubmitOutcome.BLOCKED:
        _print_errors(session)
    else:
        for notification in session.notifier.drain():
            console.print(f"[red]{notification.title}: {notification.message}[/red]")
    raise typer.Exit(1)


@app.command()
def serve(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
) -> None:
    """Run the consultation API server."""
    import uvicorn

    from consultation_pad.server import create_app

    cfg = load_config(config) if config else ConsultationConfig()
    console.print(f"Starting consultation pad API on http://{host}:{port}")
    console.print(f"Docs available at: http://{host}:{port}/docs")
    uvicorn.run(create_app(cfg), host=host, port=port)


@app.command()
def version() -> None:
    """Show version information."""
    from consultation_pad import __version__

    console.print(f"consultation-pad version {__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
