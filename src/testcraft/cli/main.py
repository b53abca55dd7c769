"""TestCraft CLI — sign in, browse projects, and record test runs from a terminal or CI job.

Usage:
    testcraft login you@example.com                  # Prints a token to export
    testcraft orgs                                   # Organizations you belong to
    testcraft projects ORG_ID                        # Projects in an organization
    testcraft cases PROJECT_ID --status FAIL         # Test cases (filterable)
    testcraft record CASE_ID PASS --env staging      # Record a finished run
    testcraft stats PROJECT_ID                       # Pass rate and friends
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"

RUN_STATUSES = ["PASS", "FAIL", "BLOCKED", "SKIPPED", "IN_PROGRESS", "NOT_RUN"]


def _api_url() -> str:
    return os.environ.get("TESTCRAFT_API_URL", DEFAULT_API_URL).rstrip("/")


def _token() -> Optional[str]:
    return os.environ.get("TESTCRAFT_TOKEN")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the TestCraft API."""
    headers = {}
    token = _token()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _check(r: httpx.Response) -> object:
    """Return the JSON body, or print the API's error detail and exit 1."""
    if r.is_success:
        return r.json()
    try:
        detail = r.json().get("detail", r.text)
    except ValueError:
        detail = r.text
    click.secho(f"Error ({r.status_code}): {detail}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k) if row.get(k) is not None else "-")[:w].ljust(w)
                         for _, k, w in columns)
        click.echo(line)


def _status_color(status: str) -> str:
    """Map run statuses to click colors."""
    colors = {
        "PASS": "green",
        "FAIL": "red",
        "BLOCKED": "magenta",
        "SKIPPED": "cyan",
        "IN_PROGRESS": "yellow",
        "NOT_RUN": "white",
    }
    return colors.get(status, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="testcraft")
def main():
    """TestCraft — manage test cases and record runs from the command line."""


# ---------------------------------------------------------------------------
# testcraft login
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
@click.password_option(confirmation_prompt=False)
def login(email: str, password: str):
    """Sign in and print the session token as an export line."""
    _run(_login_impl(email, password))


async def _login_impl(email: str, password: str):
    async with _client() as c:
        r = await c.post("/api/v1/auth/login", json={"email": email, "password": password})
        data = _check(r)
    click.secho(f"Signed in as {data['user']['name']} <{data['user']['email']}>", fg="green", err=True)
    click.echo(f"export TESTCRAFT_TOKEN={data['token']}")


# ---------------------------------------------------------------------------
# testcraft orgs / projects
# ---------------------------------------------------------------------------


@main.command()
def orgs():
    """List organizations you belong to."""
    _run(_orgs_impl())


async def _orgs_impl():
    async with _client() as c:
        rows = _check(await c.get("/api/v1/organizations"))

    if not rows:
        click.echo("No organizations found.")
        return
    _print_table(rows, [
        ("ID", "id", 36),
        ("Name", "name", 30),
        ("Role", "role", 22),
        ("Members", "member_count", 8),
        ("Projects", "project_count", 8),
    ])


@main.command()
@click.argument("org_id")
def projects(org_id: str):
    """List projects in an organization."""
    _run(_projects_impl(org_id))


async def _projects_impl(org_id: str):
    async with _client() as c:
        rows = _check(await c.get(f"/api/v1/organizations/{org_id}/projects"))

    if not rows:
        click.echo("No projects found.")
        return
    _print_table(rows, [
        ("ID", "id", 36),
        ("Name", "name", 40),
        ("Description", "description", 40),
    ])


# ---------------------------------------------------------------------------
# testcraft cases
# ---------------------------------------------------------------------------


@main.command()
@click.argument("project_id")
@click.option("--status", "-s", type=click.Choice(RUN_STATUSES), help="Filter by last run status")
@click.option("--search", "-q", help="Search name and description")
@click.option("--page", default=1, show_default=True)
@click.option("--limit", "-l", default=20, show_default=True)
def cases(project_id: str, status: Optional[str], search: Optional[str], page: int, limit: int):
    """List test cases in a project."""
    _run(_cases_impl(project_id, status, search, page, limit))


async def _cases_impl(project_id: str, status: Optional[str], search: Optional[str],
                      page: int, limit: int):
    params: dict = {"page": page, "limit": limit}
    if status:
        params["status"] = status
    if search:
        params["search"] = search

    async with _client() as c:
        result = _check(await c.get(f"/api/v1/projects/{project_id}/test-cases", params=params))

    rows = result["data"]
    if not rows:
        click.echo("No test cases found.")
        return

    click.secho(
        f"Test cases (page {result['page']}/{max(result['total_pages'], 1)}, {result['total']} total):",
        bold=True,
    )
    click.echo()
    for row in rows:
        status_str = click.style(f"{row['last_run_status']:12s}", fg=_status_color(row["last_run_status"]))
        flag = click.style(" [debug]", fg="yellow") if row.get("debug_flag") else ""
        click.echo(f"  {row['id']}  {status_str}  {row['name'][:60]}{flag}")


# ---------------------------------------------------------------------------
# testcraft record
# ---------------------------------------------------------------------------


@main.command()
@click.argument("case_id")
@click.argument("status", type=click.Choice(["PASS", "FAIL", "BLOCKED", "SKIPPED"]))
@click.option("--env", "-e", "environment", required=True, help="Environment name, e.g. staging")
@click.option("--duration", "-d", type=int, help="Duration in seconds")
@click.option("--notes", "-n", help="Free-form notes")
def record(case_id: str, status: str, environment: str,
           duration: Optional[int], notes: Optional[str]):
    """Record a finished run of a test case (e.g. from a CI job)."""
    _run(_record_impl(case_id, status, environment, duration, notes))


async def _record_impl(case_id: str, status: str, environment: str,
                       duration: Optional[int], notes: Optional[str]):
    body: dict = {
        "test_case_id": case_id,
        "environment": environment.strip().lower(),
        "status": status,
    }
    if duration is not None:
        body["duration"] = duration
    if notes:
        body["notes"] = notes

    async with _client() as c:
        run = _check(await c.post("/api/v1/test-runs", json=body))

    click.secho(
        f"Run #{run['id']} recorded: {run['status']} on {run['environment']}",
        fg=_status_color(run["status"]),
    )


# ---------------------------------------------------------------------------
# testcraft stats
# ---------------------------------------------------------------------------


@main.command()
@click.argument("project_id")
def stats(project_id: str):
    """Show headline numbers for a project."""
    _run(_stats_impl(project_id))


async def _stats_impl(project_id: str):
    async with _client() as c:
        s = _check(await c.get(f"/api/v1/projects/{project_id}/stats"))

    click.echo(f"  Test cases:     {s['total_test_cases']}")
    click.echo(f"  Pass rate:      {s['pass_rate']}%")
    click.echo(f"  Runs (7 days):  {s['recent_runs']}")
    click.echo(f"  Debug flagged:  {s['debug_flagged']}")


if __name__ == "__main__":
    main()
