"""RDF Forge CLI: talks to the daemon over HTTP."""

import json
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from rdfforge import __version__
from rdfforge.core.config import get_client_settings

app = typer.Typer(
    name="forge",
    help="RDF pipeline orchestration and SHACL validation",
    no_args_is_help=True,
)
console = Console()

DEFINITION_FORMATS = {".yaml": "yaml", ".yml": "yaml", ".json": "json", ".ttl": "turtle"}
STATUS_COLORS = {"completed": "green", "failed": "red", "cancelled": "dim", "running": "yellow", "pending": "cyan"}


def _client() -> httpx.Client:
    settings = get_client_settings()
    return httpx.Client(base_url=settings.host, timeout=120)


def _api(method: str, path: str, **kwargs) -> dict:
    """Make an API call to the daemon."""
    with _client() as client:
        try:
            resp = client.request(method, f"/api/v1{path}", **kwargs)
        except httpx.ConnectError:
            settings = get_client_settings()
            console.print(f"[red]Error:[/red] Cannot connect to RDF Forge daemon at {settings.host}")
            console.print("Start the daemon with: [bold]forged[/bold]")
            raise typer.Exit(1)

        if resp.status_code >= 400:
            if resp.headers.get("content-type", "").startswith("application/json"):
                body = resp.json()
                console.print(f"[red]Error {resp.status_code}:[/red] {body.get('detail', resp.text)}")
                for error in body.get("details", {}).get("errors", [])[:20]:
                    console.print(f"  [dim]{error.get('path', '')}[/dim] {error.get('message', error)}")
            else:
                console.print(f"[red]Error {resp.status_code}:[/red] {resp.text}")
            raise typer.Exit(1)

        if resp.status_code == 204:
            return {}
        return resp.json()


def _status(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def _variables(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] --vars must be a JSON object: {e}")
        raise typer.Exit(1)
    if not isinstance(value, dict):
        console.print("[red]Error:[/red] --vars must be a JSON object")
        raise typer.Exit(1)
    return value


# ─── Pipeline Commands ───


@app.command()
def deploy(
    file: Path = typer.Argument(..., help="Pipeline definition (.yaml, .json or .ttl)"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Pipeline name (default: file name)"),
    description: Optional[str] = typer.Option(None, "--desc", "-d", help="Pipeline description"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Change message for a new version"),
):
    """Create a pipeline, or store a new version if it already exists."""
    if not file.exists():
        console.print(f"[red]Error:[/red] File not found: {file}")
        raise typer.Exit(1)

    fmt = DEFINITION_FORMATS.get(file.suffix.lower(), "yaml")
    definition = file.read_text()
    name = name or file.stem

    with _client() as client:
        try:
            exists = client.get(f"/api/v1/pipelines/{name}").status_code == 200
        except httpx.ConnectError:
            exists = False

    if exists:
        result = _api("PUT", f"/pipelines/{name}", json={
            "definition": definition,
            "definition_format": fmt,
            "description": description,
            "change_message": message,
        })
        console.print(f"[green]✓[/green] Updated pipeline [bold]{result['name']}[/bold] → v{result['version']}")
    else:
        result = _api("POST", "/pipelines", json={
            "name": name,
            "definition": definition,
            "definition_format": fmt,
            "description": description,
        })
        console.print(f"[green]✓[/green] Deployed pipeline [bold]{result['name']}[/bold] (v{result['version']})")
    console.print(f"  Steps: {result['steps_count']}")


@app.command()
def pipelines(
    search: Optional[str] = typer.Option(None, "--search", "-s"),
    tag: Optional[str] = typer.Option(None, "--tag", "-t"),
):
    """List registered pipelines."""
    result = _api("GET", "/pipelines", params={k: v for k, v in {"search": search, "tag": tag}.items() if v})
    if not result["pipelines"]:
        console.print("[dim]No pipelines registered[/dim]")
        return

    table = Table(title=f"Pipelines ({result['total']})")
    table.add_column("Name", style="bold")
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("Steps")
    table.add_column("Last Run")
    for p in result["pipelines"]:
        table.add_row(p["name"], f"v{p['version']}", p["status"], str(p["steps_count"]), p.get("last_run_at") or "—")
    console.print(table)


@app.command()
def validate(file: Path = typer.Argument(..., help="Pipeline definition to check")):
    """Check a pipeline definition without registering it."""
    fmt = DEFINITION_FORMATS.get(file.suffix.lower(), "yaml")
    result = _api("POST", "/pipelines/validate", json={"definition": file.read_text(), "definition_format": fmt})
    if result["valid"]:
        console.print(f"[green]✓[/green] Valid ({result['steps_count']} steps)")
    else:
        console.print(f"[red]✗[/red] {len(result['errors'])} errors")
        for error in result["errors"]:
            console.print(f"  [dim]{error['path']}[/dim] {error['message']}")
    for warning in result["warnings"]:
        console.print(f"  [yellow]warning[/yellow] [dim]{warning['path']}[/dim] {warning['message']}")
    if not result["valid"]:
        raise typer.Exit(1)


# ─── Job Commands ───


@app.command()
def run(
    pipeline: str = typer.Argument(..., help="Pipeline name or id"),
    variables: Optional[str] = typer.Option(None, "--vars", "-v", help="JSON object of variables"),
    priority: int = typer.Option(5, "--priority", "-p", min=1, max=10),
    dry_run: bool = typer.Option(False, "--dry-run", help="Run every step but skip triplestore writes"),
):
    """Queue a job for a pipeline."""
    result = _api("POST", f"/pipelines/{pipeline}/run", json={
        "variables": _variables(variables),
        "priority": priority,
        "dry_run": dry_run,
    })
    console.print(f"[green]✓[/green] Queued job [bold]{result['id']}[/bold] for {result['pipeline_name']} v{result['pipeline_version']}")


@app.command()
def jobs(
    status: Optional[str] = typer.Option(None, "--status", "-s"),
    pipeline: Optional[str] = typer.Option(None, "--pipeline"),
    limit: int = typer.Option(20, "--limit", "-l"),
):
    """List recent jobs."""
    params = {"limit": limit}
    if status:
        params["status"] = status
    if pipeline:
        params["pipeline_id"] = pipeline
    result = _api("GET", "/jobs", params=params)

    table = Table(title=f"Jobs ({result['total']})")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Pipeline", style="bold")
    table.add_column("Status")
    table.add_column("Progress")
    table.add_column("Trigger")
    table.add_column("Duration")
    table.add_column("Created")
    for j in result["jobs"]:
        duration = f"{j['duration_ms']}ms" if j.get("duration_ms") is not None else "—"
        table.add_row(
            j["id"][:8],
            f"{j['pipeline_name']} v{j['pipeline_version']}",
            _status(j["status"]),
            f"{j['progress']}%",
            j["triggered_by"],
            duration,
            j.get("created_at") or "—",
        )
    console.print(table)


@app.command()
def job(job_id: str = typer.Argument(..., help="Job id")):
    """Show a job with its steps."""
    result = _api("GET", f"/jobs/{job_id}")
    console.print(f"{_status(result['status'])} [bold]{result['pipeline_name']}[/bold] v{result['pipeline_version']} — {result['progress']}%")
    if result.get("error_message"):
        console.print(Panel(result["error_message"], title=f"[red]{result['error_kind']}[/red]"))
    if result.get("output_graph"):
        console.print(f"  Output graph: {result['output_graph']}")

    table = Table(show_lines=False)
    table.add_column("#")
    table.add_column("Step", style="bold")
    table.add_column("Operation")
    table.add_column("Status")
    table.add_column("Duration")
    table.add_column("Metrics")
    for s in result["steps"]:
        duration = f"{s['duration_ms']}ms" if s.get("duration_ms") is not None else "—"
        table.add_row(
            str(s["position"] + 1), s["name"], s["operation"], _status(s["status"]), duration,
            json.dumps(s.get("metrics") or {}, default=str),
        )
    console.print(table)


@app.command()
def cancel(job_id: str = typer.Argument(..., help="Job id")):
    """Cancel a pending job, or stop a running one at its next step."""
    result = _api("POST", f"/jobs/{job_id}/cancel")
    if result["status"] == "cancelled":
        console.print(f"[yellow]Cancelled[/yellow] job {job_id}")
    else:
        console.print(f"[yellow]Cancellation requested[/yellow] for job {job_id}")


@app.command()
def retry(job_id: str = typer.Argument(..., help="Failed or cancelled job id")):
    """Re-run a failed or cancelled job as a new job."""
    result = _api("POST", f"/jobs/{job_id}/retry")
    console.print(f"[green]✓[/green] Queued retry [bold]{result['id']}[/bold] (retry of {job_id})")


@app.command()
def logs(
    job_id: str = typer.Argument(..., help="Job id"),
    level: Optional[str] = typer.Option(None, "--level", help="Minimum level: debug, info, warn, error"),
    limit: int = typer.Option(200, "--limit", "-l"),
):
    """Show the log of a job."""
    params = {"limit": limit}
    if level:
        params["level"] = level
    result = _api("GET", f"/jobs/{job_id}/logs", params=params)
    if not result["logs"]:
        console.print("[dim]No logs available[/dim]")
        return
    colors = {"debug": "dim", "info": "white", "warn": "yellow", "error": "red"}
    for entry in result["logs"]:
        color = colors.get(entry["level"], "white")
        step = f"[{entry['step']}] " if entry.get("step") else ""
        console.print(f"[dim]{entry['timestamp']}[/dim] [{color}]{entry['level']:<5}[/{color}] {step}{entry['message']}")


# ─── Schedule Commands ───


@app.command()
def schedule(
    pipeline: str = typer.Argument(..., help="Pipeline name or id"),
    cron: str = typer.Argument(..., help="Cron expression (e.g. '0 6 * * *')"),
    variables: Optional[str] = typer.Option(None, "--vars", "-v", help="JSON object of variables"),
    priority: int = typer.Option(5, "--priority", "-p", min=1, max=10),
):
    """Run a pipeline on a cron schedule."""
    result = _api("POST", "/schedules", json={
        "pipeline_id": pipeline,
        "cron_expression": cron,
        "variables": _variables(variables),
        "priority": priority,
    })
    console.print(f"[green]✓[/green] Schedule [bold]{result['id']}[/bold] created")
    console.print(f"  Next run: {result.get('next_run') or '—'}")


@app.command()
def schedules(pipeline: Optional[str] = typer.Option(None, "--pipeline")):
    """List schedules."""
    result = _api("GET", "/schedules", params={"pipeline_id": pipeline} if pipeline else None)
    if not result["schedules"]:
        console.print("[dim]No schedules[/dim]")
        return
    table = Table(title="Schedules")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Pipeline")
    table.add_column("Cron", style="bold")
    table.add_column("Active")
    table.add_column("Last Run")
    table.add_column("Next Run")
    for s in result["schedules"]:
        table.add_row(
            s["id"][:8], s["pipeline_id"][:8], s["cron_expression"],
            "[green]yes[/green]" if s["is_active"] else "[dim]no[/dim]",
            s.get("last_run") or "—", s.get("next_run") or "—",
        )
    console.print(table)


@app.command()
def unschedule(schedule_id: str = typer.Argument(..., help="Schedule id")):
    """Delete a schedule."""
    _api("DELETE", f"/schedules/{schedule_id}")
    console.print(f"[green]✓[/green] Removed schedule {schedule_id}")


# ─── Validation ───


@app.command()
def shacl(
    data: Path = typer.Argument(..., help="RDF data file"),
    shape: str = typer.Option(..., "--shape", "-s", help="Shape id, or a path to a shape file"),
    data_format: str = typer.Option("turtle", "--format", "-f"),
):
    """Validate an RDF file against a SHACL shape."""
    body = {"data": data.read_text(), "data_format": data_format}
    shape_path = Path(shape)
    if shape_path.exists():
        body["shape_content"] = shape_path.read_text()
    else:
        body["shape_id"] = shape
    result = _api("POST", "/validation/run", json=body)

    if result["conforms"]:
        console.print(f"[green]✓[/green] Conforms ({result['focus_node_count']} focus nodes, {result['execution_time']}ms)")
        return
    console.print(f"[red]✗[/red] {result['violation_count']} violations, {result['warning_count']} warnings")
    for v in result["violations"]:
        console.print(f"  [red]{v['severity']}[/red] {v['focus_node']} {v.get('path') or ''}: {v['message']}")
    raise typer.Exit(1)


@app.command()
def version():
    """Show RDF Forge version."""
    console.print(f"rdfforge v{__version__}")


@app.command()
def health():
    """Show daemon status."""
    with _client() as client:
        try:
            data = client.get("/health").json()
        except httpx.ConnectError:
            settings = get_client_settings()
            console.print(f"[red]●[/red] Daemon not running at {settings.host}")
            raise typer.Exit(1)
    workers = data.get("workers") or {}
    console.print(f"[green]●[/green] RDF Forge daemon v{data['version']} — running")
    console.print(f"  Workers: {workers.get('size', 0)}, queued: {workers.get('queued', 0)}, active: {len(workers.get('active_jobs', []))}")
    for j in data.get("scheduler_jobs", []):
        console.print(f"  {j['id']} → next: {j.get('next_run', '—')}")


if __name__ == "__main__":
    app()
