"""CLI tool for administering sessions on a running Oxygen Escape server.

Usage:
    python manage_sessions.py login --name "Ms. Rivera"
    python manage_sessions.py create --owner own_...
    python manage_sessions.py create --owner own_... --combat --difficulty HARD
    python manage_sessions.py list --owner own_...
    python manage_sessions.py export --owner own_... --out sessions.json
    python manage_sessions.py complete --owner own_... --session <id>
    python manage_sessions.py delete --owner own_... --session <id>
    python manage_sessions.py action --owner own_... --session <id> pause
    python manage_sessions.py action --owner own_... --session <id> adjust_oxygen --seconds 60

Environment variables:
    OXYGEN_URL       Server URL (default: http://127.0.0.1:8000)
    ADMIN_SECRET     Admin secret for the server (default: change-me-in-production)
    OXYGEN_OWNER     Default owner id for --owner
"""

import argparse
import json
import os
import sys

import httpx

DEFAULT_URL = os.environ.get("OXYGEN_URL", "http://127.0.0.1:8000")
ADMIN_SECRET = os.environ.get("ADMIN_SECRET", "change-me-in-production")
DEFAULT_OWNER = os.environ.get("OXYGEN_OWNER")

ADMIN_ACTIONS = [
    "start", "pause", "resume", "skip_room", "adjust_oxygen",
    "reveal_clue", "force_victory", "force_defeat", "delete_session",
]


def _request(method: str, url: str, owner: str | None = None, **kwargs) -> httpx.Response:
    """Make an HTTP request with admin headers, handling connection errors."""
    headers = kwargs.setdefault("headers", {})
    headers["X-Admin-Secret"] = ADMIN_SECRET
    if owner:
        headers["X-Owner-Id"] = owner
    kwargs.setdefault("timeout", 10.0)
    try:
        return httpx.request(method, url, **kwargs)
    except httpx.ConnectError:
        print(f"Error: Could not connect to server at {url}", file=sys.stderr)
        print("Is the server running?", file=sys.stderr)
        sys.exit(1)


def _handle_error(resp: httpx.Response) -> None:
    """Print the server's error detail and exit on any non-200 response."""
    if resp.status_code == 200:
        return
    try:
        detail = resp.json().get("detail", resp.text)
    except ValueError:
        detail = resp.text
    if resp.status_code == 401:
        print("Error: Unknown owner id. Run 'login' first or pass --owner", file=sys.stderr)
    elif resp.status_code == 403:
        print(f"Error: {detail}", file=sys.stderr)
        print("Check ADMIN_SECRET and that you own the session", file=sys.stderr)
    else:
        print(f"Error {resp.status_code}: {detail}", file=sys.stderr)
    sys.exit(1)


def login(url: str, name: str) -> None:
    """Register as an administrator and print the owner id."""
    resp = _request("POST", f"{url}/admin/login", json={"name": name})
    _handle_error(resp)
    data = resp.json()
    print(f"Logged in: {data['name']}")
    print(f"Owner id:  {data['owner_id']}")


def create_session(url: str, owner: str, combat: bool, difficulty: str, oxygen: int | None) -> None:
    """Create an escape-room or combat session and print its join code."""
    if combat:
        config: dict = {"difficulty": difficulty}
        if oxygen is not None:
            config["oxygen_minutes"] = oxygen
        resp = _request("POST", f"{url}/combat/sessions", owner, json=config)
    else:
        resp = _request("POST", f"{url}/sessions", owner)
    _handle_error(resp)
    data = resp.json()
    print(f"Session:   {data['id']}")
    print(f"Join code: {data['join_code']}")


def list_sessions(url: str, owner: str) -> None:
    """List the owner's sessions, newest first."""
    resp = _request("GET", f"{url}/admin/sessions", owner)
    _handle_error(resp)
    sessions = resp.json()
    if not sessions:
        print("No sessions.")
        return
    print(f"{'ID':<38} {'CODE':<8} {'KIND':<8} {'STATUS':<10} {'PLAYERS':<7}")
    print("-" * 75)
    for s in sessions:
        print(f"{s['id']:<38} {s['join_code']:<8} {s['kind']:<8} {s['status']:<10} {len(s['players']):<7}")


def export_sessions(url: str, owner: str, out: str | None) -> None:
    """Write the owner's sessions to a file, or to stdout."""
    resp = _request("GET", f"{url}/admin/sessions/export", owner)
    _handle_error(resp)
    text = json.dumps(resp.json(), indent=2)
    if out is None:
        print(text)
        return
    with open(out, "w") as f:
        f.write(text)
    print(f"Exported {len(resp.json()['sessions'])} sessions to {out}")


def complete_session(url: str, owner: str, session_id: str) -> None:
    resp = _request("POST", f"{url}/admin/sessions/{session_id}/complete", owner)
    _handle_error(resp)
    print(resp.json()["message"])


def delete_session(url: str, owner: str, session_id: str) -> None:
    resp = _request("DELETE", f"{url}/admin/sessions/{session_id}", owner)
    _handle_error(resp)
    print(resp.json()["message"])


def combat_action(url: str, owner: str, session_id: str, action: str, seconds: float | None) -> None:
    """Run an admin action against a combat session."""
    body: dict = {"action": action}
    if seconds is not None:
        body["seconds"] = seconds
    resp = _request("POST", f"{url}/admin/combat/{session_id}/actions", owner, json=body)
    _handle_error(resp)
    data = resp.json()
    print(data["message"])
    session = data.get("session")
    if session:
        print(f"Phase: {session['phase']}  Room: {session['current_room_index'] + 1}/5  "
              f"Oxygen: {int(session['oxygen_remaining_ms'] // 1000)}s")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Administer Oxygen Escape sessions",
    )

    url_kwargs = dict(
        default=DEFAULT_URL,
        help=f"Server URL (default: {DEFAULT_URL}, or set OXYGEN_URL env var)",
    )
    owner_kwargs = dict(
        default=DEFAULT_OWNER,
        required=DEFAULT_OWNER is None,
        help="Owner id from 'login' (or set OXYGEN_OWNER env var)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    login_parser = subparsers.add_parser("login", help="Register as an administrator")
    login_parser.add_argument("--name", required=True, help="Display name")
    login_parser.add_argument("--url", **url_kwargs)

    create_parser = subparsers.add_parser("create", help="Create a session")
    create_parser.add_argument("--owner", **owner_kwargs)
    create_parser.add_argument("--combat", action="store_true", help="Create a combat session")
    create_parser.add_argument("--difficulty", default="NORMAL",
                               choices=["NORMAL", "HARD", "NIGHTMARE", "EXTREME"])
    create_parser.add_argument("--oxygen", type=int, help="Combat oxygen in minutes")
    create_parser.add_argument("--url", **url_kwargs)

    list_parser = subparsers.add_parser("list", help="List your sessions")
    list_parser.add_argument("--owner", **owner_kwargs)
    list_parser.add_argument("--url", **url_kwargs)

    export_parser = subparsers.add_parser("export", help="Export your sessions as JSON")
    export_parser.add_argument("--owner", **owner_kwargs)
    export_parser.add_argument("--out", help="Output file (default: stdout)")
    export_parser.add_argument("--url", **url_kwargs)

    complete_parser = subparsers.add_parser("complete", help="End a session")
    complete_parser.add_argument("--owner", **owner_kwargs)
    complete_parser.add_argument("--session", required=True, help="Session id")
    complete_parser.add_argument("--url", **url_kwargs)

    delete_parser = subparsers.add_parser("delete", help="Delete a session")
    delete_parser.add_argument("--owner", **owner_kwargs)
    delete_parser.add_argument("--session", required=True, help="Session id")
    delete_parser.add_argument("--url", **url_kwargs)

    action_parser = subparsers.add_parser("action", help="Run a combat admin action")
    action_parser.add_argument("--owner", **owner_kwargs)
    action_parser.add_argument("--session", required=True, help="Session id")
    action_parser.add_argument("name", choices=ADMIN_ACTIONS, help="Action to run")
    action_parser.add_argument("--seconds", type=float, help="For adjust_oxygen")
    action_parser.add_argument("--url", **url_kwargs)

    args = parser.parse_args()

    if args.command == "login":
        login(args.url, args.name)
    elif args.command == "create":
        create_session(args.url, args.owner, args.combat, args.difficulty, args.oxygen)
    elif args.command == "list":
        list_sessions(args.url, args.owner)
    elif args.command == "export":
        export_sessions(args.url, args.owner, args.out)
    elif args.command == "complete":
        complete_session(args.url, args.owner, args.session)
    elif args.command == "delete":
        delete_session(args.url, args.owner, args.session)
    elif args.command == "action":
        combat_action(args.url, args.owner, args.session, args.name, args.seconds)


if __name__ == "__main__":
    main()
