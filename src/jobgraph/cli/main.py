"""JobGraph CLI — talks to the daemon over HTTP."""

import json
from typing import List, Optional

import httpx
import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from jobgraph import __version__
from jobgraph.core.config import get_client_settings

app = typer.Typer(
    name="jobgraph",
    help="Job dependency graph management",
    no_args_is_help=True,
)
console = Console()

BASE = "/job-dependencies"


def _client() -> httpx.Client:
    settings = get_client_settings()
    return httpx.Client(base_url=settings.host, timeout=30)


def _api(method: str, path: str, **kwargs) -> dict:
    """Make an API call to the daemon."""
    with _client() as client:
        try:
            resp = client.request(method, f"/api/v1{BASE}{path}", **kwargs)
        except httpx.ConnectError:
            settings = get_client_settings()
            console.print(f"[red]Error:[/red] Cannot connect to JobGraph daemon at {settings.host}")
            console.print("Start the daemon with: [bold]jobgraphd[/bold]")
            raise typer.Exit(1)

        if resp.status_code >= 400:
            detail = resp.json().get("detail", resp.text) if resp.headers.get("content-type", "").startswith("application/json") else resp.text
            console.print(f"[red]Error {resp.status_code}:[/red] {detail}")
            raise typer.Exit(1)

        if resp.status_code == 204:
            return {}
        return resp.json()


def _status_cell(value: str) -> str:
    color = "green" if value == "satisfied" else "red" if value == "unsatisfied" else "dim"
    return f"[{color}]{value}[/{color}]"


# ─── Edge Commands ───


@app.command(name="list")
def list_dependencies(
    job: Optional[int] = typer.Option(None, "--job", "-j", help="Only edges of this dependent job"),
    all_: bool = typer.Option(False, "--all", "-a", help="Include inactive edges"),
    limit: int = typer.Option(50, "--limit", "-l", help="Page size (1-100)"),
    offset: int = typer.Option(0, "--offset", help="Page offset"),
):
    """List dependency edges."""
    params = {"activeOnly": not all_, "limit": limit, "offset": offset}
    path = f"/job/{job}" if job is not None else ""
    result = _api("GET", path, params=params)
    edges = result["data"]

    if not edges:
        console.print("[dim]No dependencies[/dim]")
        return

    table = Table(title="Dependencies", show_lines=False)
    table.add_column("ID", style="dim")
    table.add_column("Job", style="bold")
    table.add_column("Waits on", style="bold")
    table.add_column("Type")
    table.add_column("Wait for")
    table.add_column("Lookback")
    table.add_column("Max wait")
    table.add_column("Active")

    for e in edges:
        table.add_row(
            str(e["id"]),
            str(e["job_id"]),
            str(e["depends_on_job_id"]),
            e["dependency_type"],
            e["wait_for_status"],
            f"{e['lookback_days']}d",
            f"{e['max_wait_minutes']}m" if e.get("max_wait_minutes") is not None else "—",
            "[green]yes[/green]" if e["is_active"] else "[red]no[/red]",
        )

    console.print(table)
    pagination = result.get("pagination") or {}
    if pagination.get("hasMore"):
        console.print(f"[dim]Showing {len(edges)} of {pagination['total']} — use --offset for more[/dim]")


@app.command()
def show(dependency_id: int = typer.Argument(..., help="Dependency ID")):
    """Show one dependency edge."""
    result = _api("GET", f"/{dependency_id}")
    rprint(Panel(json.dumps(result["data"], indent=2, default=str), title=f"Dependency {dependency_id}"))


@app.command()
def add(
    job_id: int = typer.Argument(..., help="Dependent job ID"),
    depends_on: int = typer.Argument(..., help="Prerequisite job ID"),
    dependency_type: str = typer.Option("blocking", "--type", "-t", help="blocking | optional | cross_day | conditional"),
    wait_for: str = typer.Option("success", "--wait-for", "-w", help="any | success | completed | failure"),
    lookback: int = typer.Option(1, "--lookback", help="Lookback window in days (0-30)"),
    max_wait: Optional[int] = typer.Option(None, "--max-wait", help="Max minutes since the prerequisite finished (0-1440)"),
    inactive: bool = typer.Option(False, "--inactive", help="Create the edge deactivated"),
    user_id: Optional[int] = typer.Option(None, "--user", help="Actor recorded in audit fields"),
):
    """Declare that JOB_ID must wait on DEPENDS_ON."""
    data = {
        "job_id": job_id,
        "depends_on_job_id": depends_on,
        "dependency_type": dependency_type,
        "wait_for_status": wait_for,
        "lookback_days": lookback,
        "max_wait_minutes": max_wait,
        "is_active": not inactive,
        "user_id": user_id,
    }
    result = _api("POST", "", json=data)
    console.print(
        f"[green]✓[/green] Created dependency [bold]{result['id']}[/bold]: "
        f"{result['job_id']} → {result['depends_on_job_id']} ({result['dependency_type']})"
    )


@app.command()
def remove(
    dependency_id: Optional[int] = typer.Argument(None, help="Dependency ID to delete"),
    job: Optional[int] = typer.Option(None, "--job", help="Delete every edge of this dependent job"),
):
    """Delete a dependency edge, or all edges of a job."""
    if job is not None:
        result = _api("DELETE", f"/job/{job}/all")
        console.print(f"[green]✓[/green] Removed {result['data']['removed']} dependencies of job {job}")
        return
    if dependency_id is None:
        console.print("[red]Provide a dependency ID or --job[/red]")
        raise typer.Exit(1)
    _api("DELETE", f"/{dependency_id}")
    console.print(f"[green]✓[/green] Removed dependency [bold]{dependency_id}[/bold]")


def _batch(action: str, ids: List[int]) -> None:
    result = _api("POST", f"/batch/{action}", json={"dependency_ids": ids})
    data = result["data"]
    count = data.get(f"{action}d", 0)
    console.print(f"[green]✓[/green] {action.capitalize()}d {count} dependencies")
    for err in data.get("errors", []):
        console.print(f"  [red]✗[/red] {err['id']}: {err['error']}")


@app.command()
def activate(ids: List[int] = typer.Argument(..., help="Dependency IDs")):
    """Activate dependency edges (cycle-checked)."""
    _batch("activate", ids)


@app.command()
def deactivate(ids: List[int] = typer.Argument(..., help="Dependency IDs")):
    """Deactivate dependency edges."""
    _batch("deactivate", ids)


# ─── Graph Commands ───


def _print_chain(title: str, items: list) -> None:
    table = Table(title=title)
    table.add_column("Level")
    table.add_column("Job", style="bold")
    table.add_column("Name")
    table.add_column("Reached via", style="dim")
    show_duration = any(i.get("estimated_duration_minutes") is not None for i in items)
    if show_duration:
        table.add_column("Est. minutes")

    for i in items:
        row = [
            str(i["level"]),
            str(i["job_id"]),
            i.get("job_name") or "—",
            str(i["depends_on"]) if i.get("depends_on") is not None else "—",
        ]
        if show_duration:
            est = i.get("estimated_duration_minutes")
            row.append(f"{est:g}" if est is not None else "—")
        table.add_row(*row)

    console.print(table)


@app.command()
def chain(job_id: int = typer.Argument(..., help="Job ID")):
    """Show the prerequisite chain of a job, level by level."""
    result = _api("GET", f"/chain/{job_id}")
    _print_chain(f"Chain: job {job_id}", result["data"])


@app.command(name="critical-path")
def critical_path(job_id: int = typer.Argument(..., help="Job ID")):
    """Show the longest prerequisite path of a job."""
    result = _api("GET", f"/critical-path/{job_id}")
    _print_chain(f"Critical path: job {job_id}", result["data"])


@app.command()
def check(job_id: int = typer.Argument(..., help="Job ID")):
    """Check whether a job's prerequisites are satisfied."""
    result = _api("GET", f"/status/{job_id}")
    data = result["data"]

    if data["satisfied"]:
        console.print(f"[green]●[/green] Job {job_id} — ready")
    else:
        console.print(f"[red]●[/red] Job {job_id} — waiting on {data['unsatisfied_count']} dependencies")

    if not data["dependencies"]:
        console.print("  [dim]No dependencies[/dim]")
        return

    table = Table()
    table.add_column("ID", style="dim")
    table.add_column("Waits on", style="bold")
    table.add_column("Type")
    table.add_column("Required")
    table.add_column("Current")
    table.add_column("Status")
    table.add_column("Reason", style="dim")

    for d in data["dependencies"]:
        waits_on = str(d["depends_on_job_id"])
        if d.get("depends_on_job_name"):
            waits_on += f" ({d['depends_on_job_name']})"
        table.add_row(
            str(d["dependency_id"]),
            waits_on,
            d["dependency_type"],
            d["required_status"],
            d.get("current_status") or "—",
            _status_cell(d["status"]),
            d.get("reason") or "",
        )

    console.print(table)


# ─── Analytics Commands ───


@app.command()
def stats():
    """Show dependency statistics."""
    result = _api("GET", "/statistics")
    table = Table(title="Dependency statistics", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right", style="bold")
    for key, value in result["data"].items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


@app.command()
def orphaned():
    """List jobs with no active dependencies in either direction."""
    result = _api("GET", "/orphaned")
    jobs = result["data"]
    if not jobs:
        console.print("[green]No orphaned jobs[/green]")
        return
    for j in jobs:
        console.print(f"  {j['job_id']}  {j.get('job_name') or ''}")


@app.command(name="most-depended")
def most_depended(limit: int = typer.Option(10, "--limit", "-l", help="Number of jobs to show")):
    """Rank jobs by how many others wait on them."""
    result = _api("GET", "/most-depended", params={"limit": limit})
    table = Table(title="Most depended-on jobs")
    table.add_column("Job", style="bold")
    table.add_column("Name")
    table.add_column("Dependents", justify="right")
    for j in result["data"]:
        table.add_row(str(j["job_id"]), j.get("job_name") or "—", str(j["dependent_count"]))
    console.print(table)


@app.command()
def version():
    """Show JobGraph version."""
    console.print(f"jobgraph v{__version__}")


if __name__ == "__main__":
    app()
