"""CLI entry-point: create, inspect, run and cancel bulk product jobs."""

import json
import logging

import typer
from rich.console import Console
from rich.table import Table

from podflow.clients import ExternalCallError, build_capabilities, lookup_catalog
from podflow.config import get_settings
from podflow.jobs import ItemPick, Job, JobNotFoundError, JobParams, JobValidationError
from podflow.jobs import service
from podflow.jobs.errors import StepError
from podflow.jobs.orchestrator import blueprint_hint
from podflow.selection import choose_blueprint, choose_print_area, choose_provider

app = typer.Typer(help="Bulk print-on-demand product creator")
console = Console()

_STATUS_COLORS = {
    "queued": "white",
    "in_progress": "cyan",
    "completed": "green",
    "failed": "red",
    "cancelled": "yellow",
    "pending": "white",
    "created": "green",
    "published": "green",
}


def _colored(value: str) -> str:
    return f"[{_STATUS_COLORS.get(value, 'white')}]{value}[/]"


def _print_job(job: Job, show_results: bool = True) -> None:
    console.print(
        f"[bold]{job.id}[/bold]  {_colored(job.status.value)}  "
        f"total={job.total} completed={job.completed} failed={job.failed} next_index={job.next_index}"
    )
    if not show_results or not job.results:
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Product")
    table.add_column("Message", overflow="fold")
    for r in job.results:
        note = r.error or r.message
        if r.publish_error:
            note = f"{note} (publish: {r.publish_error})"
        table.add_row(str(r.index), r.step.value, _colored(r.status.value), r.product_id or "-", note)
    console.print(table)


def _load_job(job_id: str) -> Job:
    try:
        return service.get_job(job_id)
    except JobNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def create(
    prompt: str = typer.Argument(..., help="Design idea for every product in the job"),
    quantity: int = typer.Option(1, "--quantity", "-n", help="Number of products (capped by POD_MAX_ITEMS)"),
    shop: str = typer.Option(None, help="Printify shop id (default from PRINTIFY_SHOP_ID)"),
    scope: str = typer.Option("any", help="Product type hint, e.g. tshirt, hoodie, mug"),
    upload_url: list[str] = typer.Option(default=[], help="Use these image URLs instead of generating art"),
    remove_bg: bool = typer.Option(False, "--remove-bg", help="Request a transparent background"),
    style: str = typer.Option("", help="Style hint"),
    colors: str = typer.Option("", help="Color hint"),
    audience: str = typer.Option("", help="Target audience"),
    blueprint: str = typer.Option(None, help="Force a blueprint id"),
    provider: str = typer.Option(None, help="Force a print provider id"),
    picks: str = typer.Option(None, help="JSON list of per-item picks ({blueprint_id, provider_id, print_areas})"),
    publish: bool = typer.Option(False, "--publish", help="Publish products after creation"),
    markup: float = typer.Option(40.0, help="Markup percent over base cost"),
    run: bool = typer.Option(True, "--run/--no-run", help="Process the job in the foreground after creating it"),
):
    """Create a job; by default process it right away."""
    try:
        selected = [ItemPick.model_validate(p) for p in json.loads(picks)] if picks else []
    except (json.JSONDecodeError, ValueError) as e:
        console.print(f"[red]Error: invalid --picks: {e}[/red]")
        raise typer.Exit(1)

    params = JobParams(
        prompt=prompt,
        quantity=quantity,
        product_scope=scope,
        image_mode="upload" if upload_url else "generate",
        upload_urls=upload_url,
        remove_bg=remove_bg,
        style=style,
        colors=colors,
        audience=audience,
        blueprint_id=blueprint,
        provider_id=provider,
        publish_mode="publish" if publish else "draft",
        markup=markup,
        selected_picks=selected,
    )
    try:
        job = service.create_job(params, shop_id=shop)
    except JobValidationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"Created job [bold]{job.id}[/bold] with {job.total} item(s)")
    if run:
        job = service.run_job(job.id)
    _print_job(job)


@app.command()
def status(job_id: str = typer.Argument(..., help="Job id")):
    """Show a job snapshot with per-item results."""
    _print_job(_load_job(job_id))


@app.command("run")
def run_cmd(
    job_id: str = typer.Argument(..., help="Job id"),
    max_items: int = typer.Option(None, help="Process at most this many items, then stop"),
):
    """Run or resume a job in the foreground from its next index."""
    _load_job(job_id)
    job = service.run_job(job_id, max_items=max_items)
    _print_job(job)


@app.command()
def cancel(job_id: str = typer.Argument(..., help="Job id")):
    """Cancel a job; the item in flight finishes, later items are skipped."""
    try:
        job = service.cancel_job(job_id)
    except JobNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    _print_job(job, show_results=False)


@app.command("list")
def list_cmd(
    shop: str = typer.Option(None, help="Only jobs for this shop"),
    limit: int = typer.Option(20, help="Maximum number of jobs"),
):
    """List recent jobs, newest first."""
    jobs = service.list_jobs(shop_id=shop, limit=limit)
    if not jobs:
        console.print("No jobs.")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Job", no_wrap=True, min_width=20)
    for col in ("Created", "Shop", "Status", "Done", "Failed"):
        table.add_column(col)
    for j in jobs:
        table.add_row(
            j.id,
            j.created_at.strftime("%m-%d %H:%M"),
            j.owner_ref,
            _colored(j.status.value),
            f"{j.completed + j.failed}/{j.total}",
            str(j.failed),
        )
    console.print(table)


@app.command()
def preview(
    prompt: str = typer.Argument(..., help="Design idea"),
    shop: str = typer.Option(None, help="Printify shop id (default from PRINTIFY_SHOP_ID)"),
    scope: str = typer.Option("any", help="Product type hint"),
    provider_pref: str = typer.Option("", help="Preferred provider name"),
):
    """Show which blueprint, provider and print area a job item would use."""
    logging.basicConfig(level=logging.WARNING)
    settings = get_settings()
    try:
        caps = build_capabilities(shop or settings.printify_shop_id or "", settings)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    params = JobParams(prompt=prompt, product_scope=scope, provider_pref=provider_pref)
    try:
        snapshot = lookup_catalog(caps.catalog, scope)
        bp = choose_blueprint(snapshot.blueprints, blueprint_hint(params))
        pp = choose_provider(caps.catalog.list_providers(bp.id), provider_pref)
        area = choose_print_area(caps.catalog.list_print_areas(bp.id, pp.id), prompt)
    except StepError as e:
        console.print(f"[red]{e.step}: {e.message}[/red]")
        raise typer.Exit(1)
    except ExternalCallError as e:
        console.print(f"[red]Catalog lookup failed: {e}[/red]")
        raise typer.Exit(1)
    finally:
        caps.close()
    console.print(f"Blueprint:  [bold]{bp.id}[/bold] {bp.title}")
    console.print(f"Provider:   [bold]{pp.id}[/bold] {pp.title}")
    console.print(f"Print area: [bold]{area.position}[/bold] {area.size_key}")


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    app()


if __name__ == "__main__":
    main()
