"""Hackteam CLI - team formation and peer voting from the command line."""

import json
import os
from typing import Annotated, Any

import httpx
import typer
from rich.console import Console
from rich.table import Table

from hackteam import __version__

app = typer.Typer(
    name="hackteam",
    help="Hackathon team formation and peer voting",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

# Sub-commands
team_app = typer.Typer(help="Form, join and leave teams")
problem_app = typer.Typer(help="Browse problem statements")
vote_app = typer.Typer(help="Rate other teams")
admin_app = typer.Typer(help="Organizer maintenance")

app.add_typer(team_app, name="team")
app.add_typer(problem_app, name="problem")
app.add_typer(vote_app, name="vote")
app.add_typer(admin_app, name="admin")


def get_base_url() -> str:
    """Get the Hackteam API base URL from environment or default."""
    return os.environ.get("HACKTEAM_URL", "http://localhost:8000")


def get_identity_headers() -> dict[str, str]:
    """Identity headers taken from HACKTEAM_USER_ID and HACKTEAM_USER_ROLE."""
    headers: dict[str, str] = {}
    user_id = os.environ.get("HACKTEAM_USER_ID")
    if user_id:
        headers["X-User-Id"] = user_id
    role = os.environ.get("HACKTEAM_USER_ROLE")
    if role:
        headers["X-User-Role"] = role
    return headers


def make_request(
    method: str,
    path: str,
    json_data: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
) -> httpx.Response:
    """Make an HTTP request to the Hackteam API."""
    url = f"{get_base_url()}/api/v1{path}"

    with httpx.Client(timeout=30.0) as client:
        response = client.request(
            method=method,
            url=url,
            json=json_data,
            params=params,
            headers=get_identity_headers(),
        )
    return response


def handle_response(response: httpx.Response) -> Any:
    """Handle API response, exiting with the error message on failure.

    Returns the JSON response which may be a dict or list depending on the endpoint.
    """
    if response.status_code >= 400:
        try:
            error = response.json().get("error", {})
            detail = f"{error.get('code', 'ERROR')}: {error.get('message', response.text)}"
        except ValueError:
            detail = response.text
        err_console.print(f"[red]Error ({response.status_code}):[/red] {detail}")
        raise typer.Exit(1)
    if response.status_code == 204:
        return {}
    return response.json()


def _format_rating(rating: float | None) -> str:
    return "-" if rating is None else f"{rating:.1f}"


def _print_team(team: dict[str, Any]) -> None:
    console.print(f"[bold]{team['name']}[/bold] (id: {team['id']})")
    if team.get("description"):
        console.print(f"  {team['description']}")
    console.print(f"  State: {team['state']}  Members: {team['member_count']}")
    console.print(f"  Rating: {_format_rating(team.get('rating'))} ({team['total_votes']} votes)")
    for member in team["members"]:
        marker = " [yellow](leader)[/yellow]" if member["role"] == "leader" else ""
        console.print(f"  - {member['user_id']}{marker}")


# ============================================================================
# Team commands
# ============================================================================


@team_app.command("create")
def team_create(
    name: Annotated[str, typer.Argument(help="Team name")],
    problem_statement_id: Annotated[
        str, typer.Option("--problem", "-p", help="Problem statement ID")
    ],
    description: Annotated[
        str | None, typer.Option("--description", "-d", help="Team description")
    ] = None,
) -> None:
    """Create a new team and become its leader."""
    data: dict[str, Any] = {"name": name, "problem_statement_id": problem_statement_id}
    if description:
        data["description"] = description

    response = make_request("POST", "/teams", json_data=data)
    team = handle_response(response)
    console.print(f"[green]Created team:[/green] {team['name']} (id: {team['id']})")


@team_app.command("join")
def team_join(
    team_id: Annotated[str, typer.Argument(help="Team ID")],
) -> None:
    """Join a team."""
    response = make_request("POST", f"/teams/{team_id}/join")
    team = handle_response(response)
    console.print(f"[green]Joined team:[/green] {team['name']}")


@team_app.command("leave")
def team_leave(
    team_id: Annotated[str, typer.Argument(help="Team ID")],
    transfer_to: Annotated[
        str | None, typer.Option("--transfer-to", "-t", help="New leader's user ID")
    ] = None,
) -> None:
    """Leave a team. Leaders may name their successor."""
    data = {"transfer_to_user_id": transfer_to} if transfer_to else None
    response = make_request("POST", f"/teams/{team_id}/leave", json_data=data)
    result = handle_response(response)
    console.print(f"[green]{result['message']}[/green]")
    if result.get("new_leader_id"):
        console.print(f"  New leader: {result['new_leader_id']}")


@team_app.command("mine")
def team_mine() -> None:
    """Show your current team."""
    response = make_request("GET", "/teams/mine")
    _print_team(handle_response(response))


@team_app.command("list")
def team_list(
    search: Annotated[str | None, typer.Option("--search", "-s", help="Search text")] = None,
    page: Annotated[int, typer.Option("--page", help="Page number")] = 1,
) -> None:
    """List teams."""
    params: dict[str, Any] = {"page": page}
    if search:
        params["search"] = search
    response = make_request("GET", "/teams", params=params)
    result = handle_response(response)
    teams = result.get("results", [])

    if not teams:
        console.print("[dim]No teams found[/dim]")
        return

    table = Table(title=f"Teams (page {result['page']} of {result['total_pages']})")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Members")
    table.add_column("State")
    table.add_column("Rating")

    for team in teams:
        table.add_row(
            team["id"],
            team["name"],
            str(team["member_count"]),
            team["state"],
            _format_rating(team.get("rating")),
        )

    console.print(table)


# ============================================================================
# Problem statement commands
# ============================================================================


@problem_app.command("list")
def problem_list(
    domain: Annotated[str | None, typer.Option("--domain", "-d", help="Filter by domain")] = None,
    search: Annotated[str | None, typer.Option("--search", "-s", help="Search text")] = None,
    page: Annotated[int, typer.Option("--page", help="Page number")] = 1,
) -> None:
    """List problem statements with their remaining slots."""
    params: dict[str, Any] = {"page": page}
    if domain:
        params["domain"] = domain
    if search:
        params["search"] = search
    response = make_request("GET", "/problem-statements", params=params)
    result = handle_response(response)
    problems = result.get("results", [])

    if not problems:
        console.print("[dim]No problem statements found[/dim]")
        return

    table = Table(title="Problem statements")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Domain")
    table.add_column("Slots left")

    for problem in problems:
        slots = str(problem["remaining_slots"])
        if not problem["is_available"]:
            slots = "[red]full[/red]"
        table.add_row(problem["id"], problem["title"], problem["domain"], slots)

    console.print(table)


@problem_app.command("custom")
def problem_custom(
    title: Annotated[str, typer.Option("--title", "-t", help="Title")],
    description: Annotated[str, typer.Option("--description", "-d", help="Description")],
    domain: Annotated[str, typer.Option("--domain", help="Domain")],
    topic: Annotated[str | None, typer.Option("--topic", help="Topic")] = None,
    technologies: Annotated[
        str | None, typer.Option("--technologies", help="Suggested technologies")
    ] = None,
) -> None:
    """Propose your own problem statement (one per user)."""
    data: dict[str, Any] = {"title": title, "description": description, "domain": domain}
    if topic:
        data["topic"] = topic
    if technologies:
        data["suggested_technologies"] = technologies

    response = make_request("POST", "/problem-statements/custom", json_data=data)
    problem = handle_response(response)
    console.print(f"[green]Created custom problem statement:[/green] {problem['id']}")


# ============================================================================
# Vote commands
# ============================================================================


def _print_vote_result(verb: str, result: dict[str, Any]) -> None:
    aggregate = result["aggregate"]
    console.print(
        f"[green]{verb}[/green] Team rating is now {_format_rating(aggregate['rating'])} "
        f"from {aggregate['total_votes']} votes"
    )


@vote_app.command("submit")
def vote_submit(
    team_id: Annotated[str, typer.Argument(help="Team ID")],
    rating: Annotated[int, typer.Option("--rating", "-r", min=1, max=5, help="Stars, 1-5")],
    comment: Annotated[str, typer.Option("--comment", "-c", help="Comment")],
) -> None:
    """Rate a team."""
    response = make_request(
        "POST", f"/votes/teams/{team_id}", json_data={"rating": rating, "comment": comment}
    )
    _print_vote_result("Vote submitted.", handle_response(response))


@vote_app.command("update")
def vote_update(
    team_id: Annotated[str, typer.Argument(help="Team ID")],
    rating: Annotated[int, typer.Option("--rating", "-r", min=1, max=5, help="Stars, 1-5")],
    comment: Annotated[str, typer.Option("--comment", "-c", help="Comment")],
) -> None:
    """Change your vote for a team."""
    response = make_request(
        "PUT", f"/votes/teams/{team_id}", json_data={"rating": rating, "comment": comment}
    )
    _print_vote_result("Vote updated.", handle_response(response))


@vote_app.command("delete")
def vote_delete(
    team_id: Annotated[str, typer.Argument(help="Team ID")],
) -> None:
    """Withdraw your vote for a team."""
    response = make_request("DELETE", f"/votes/teams/{team_id}")
    aggregate = handle_response(response)
    console.print(
        f"[green]Vote withdrawn.[/green] Team rating is now "
        f"{_format_rating(aggregate['rating'])} from {aggregate['total_votes']} votes"
    )


@vote_app.command("progress")
def vote_progress() -> None:
    """Show how many teams you still have to rate."""
    response = make_request("GET", "/votes/progress")
    progress = handle_response(response)
    console.print(f"Voted: {progress['voted']} / {progress['eligible_teams']}")
    if progress["completed"]:
        console.print("[green]You have rated every team.[/green]")
    else:
        console.print(f"Remaining: {progress['remaining']}")


@vote_app.command("teams")
def vote_teams(
    search: Annotated[str | None, typer.Option("--search", "-s", help="Search text")] = None,
) -> None:
    """List the teams you can rate."""
    params: dict[str, Any] = {}
    if search:
        params["search"] = search
    response = make_request("GET", "/votes/teams-with-ratings", params=params)
    teams = handle_response(response).get("results", [])

    if not teams:
        console.print("[dim]No teams to rate[/dim]")
        return

    table = Table(title="Teams")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Rating")
    table.add_column("Votes")
    table.add_column("Voted")

    for team in teams:
        table.add_row(
            team["id"],
            team["name"],
            _format_rating(team.get("rating")),
            str(team["total_votes"]),
            "[green]yes[/green]" if team["has_voted"] else "no",
        )

    console.print(table)


# ============================================================================
# Admin commands
# ============================================================================


@admin_app.command("reconcile")
def admin_reconcile(
    apply: Annotated[
        bool, typer.Option("--apply", help="Repair drift instead of only reporting it")
    ] = False,
) -> None:
    """Check stored counters against source rows."""
    response = make_request(
        "POST", "/admin/reconcile", params={"dry_run": str(not apply).lower()}
    )
    result = handle_response(response)

    if not result["drifts"]:
        console.print("[green]No drift found[/green]")
        return

    table = Table(title="Counter drift")
    table.add_column("Entity")
    table.add_column("ID", style="dim")
    table.add_column("Field")
    table.add_column("Stored")
    table.add_column("Actual")
    for drift in result["drifts"]:
        table.add_row(
            drift["entity_type"],
            drift["entity_id"],
            drift["field"],
            json.dumps(drift["stored"]),
            json.dumps(drift["actual"]),
        )
    console.print(table)
    if result["repaired"]:
        console.print(f"[green]Repaired {result['drift_count']} values[/green]")
    else:
        console.print("[yellow]Dry run; rerun with --apply to repair[/yellow]")


# ============================================================================
# Server command
# ============================================================================


@app.command("serve")
def serve(
    host: Annotated[str, typer.Option("--host", "-h", help="Host to bind")] = "0.0.0.0",
    port: Annotated[int, typer.Option("--port", "-p", help="Port to bind")] = 8000,
    reload: Annotated[bool, typer.Option("--reload", "-r", help="Enable auto-reload")] = False,
) -> None:
    """Start the Hackteam API server."""
    import uvicorn

    uvicorn.run("hackteam.main:app", host=host, port=port, reload=reload)


# ============================================================================
# Version command
# ============================================================================


@app.command("version")
def version() -> None:
    """Show Hackteam version."""
    console.print(f"hackteam {__version__}")


if __name__ == "__main__":
    app()
