"""Command-line launcher for running the server and following a combat session."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import httpx

from combattracker.backend.config import CombatSettings, load_settings
from combattracker.backend.errors import SessionEndedError

from .api_client import CombatApiClient, CombatApiError
from .session_cache import SessionCache


logger = logging.getLogger(__name__)


def parse_args(settings: CombatSettings, argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="combattracker", description="Combat Tracker launcher")
    parser.add_argument("--server", default=f"http://{settings.host}:{settings.port}")
    parser.add_argument("--cache", type=Path, default=settings.client_cache_path)
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="run the API server")
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--port", type=int, default=settings.port)

    start = commands.add_parser("start", help="create a session and follow it")
    start.add_argument("--user-id", default=None)

    join = commands.add_parser("join", help="follow an existing session")
    join.add_argument("code")

    commands.add_parser("show", help="print the followed session")
    commands.add_parser("end", help="end the followed session")

    add = commands.add_parser("add", help="add monsters to the followed session")
    add.add_argument("name")
    add.add_argument("--count", type=int, default=1)
    add.add_argument("--ac", type=int, default=None)
    add.add_argument("--hp", type=int, default=None)

    attack = commands.add_parser("attack", help="report an attack roll against a monster")
    attack.add_argument("number", type=int)
    attack.add_argument("roll", type=int)
    attack.add_argument("outcome", choices=["hit", "miss"])

    damage = commands.add_parser("damage", help="record damage dealt to a monster")
    damage.add_argument("number", type=int)
    damage.add_argument("amount", type=int)
    damage.add_argument("damage_type")
    damage.add_argument("--tier", default="normal")

    kill = commands.add_parser("kill", help="mark a monster as dead")
    kill.add_argument("number", type=int)
    return parser.parse_args(argv)


def run_server(host: str, port: int, log_level: str) -> None:
    import uvicorn

    uvicorn.run("combattracker.backend.api:app", host=host, port=port, log_level=log_level.lower())


def format_monster(monster: dict[str, Any]) -> str:
    notes = f"  ({monster['notes']})" if monster.get("notes") else ""
    return f"#{monster['monsterNumber']:<3} {monster['name']:<20} {monster['acDisplay']:<14} HP {monster['hpDisplay']}{notes}"


def print_snapshot(snapshot: dict[str, Any]) -> None:
    session = snapshot["session"]
    print(f"Session {session['code']} (updated {session['lastUpdated']})")
    if not snapshot["monsters"]:
        print("  no monsters")
    for monster in snapshot["monsters"]:
        print(f"  {format_monster(monster)}")


def find_monster_id(client: CombatApiClient, number: int) -> str:
    snapshot = client.sync()
    if snapshot is None:
        raise CombatApiError(0, "not_found", "No session selected; start or join one first")
    for monster in snapshot["monsters"]:
        if monster["monsterNumber"] == number:
            return monster["id"]
    raise CombatApiError(0, "not_found", f"No living monster #{number} in session {snapshot['session']['code']}")


def run_command(args: argparse.Namespace, client: CombatApiClient) -> int:
    if args.command == "start":
        session = client.create_session(user_id=args.user_id)
        print(f"Session {session['code']} started")
    elif args.command == "join":
        session = client.join_session(args.code)
        print(f"Joined session {session['code']}")
    elif args.command == "show":
        snapshot = client.sync()
        if snapshot is None:
            print("No session selected; start or join one first", file=sys.stderr)
            return 1
        print_snapshot(snapshot)
    elif args.command == "end":
        client.end_session()
        print("Session ended")
    elif args.command == "add":
        monsters = client.add_monsters(args.name, count=args.count, known_ac=args.ac, known_max_hp=args.hp)
        for monster in monsters:
            print(format_monster(monster))
    elif args.command == "attack":
        monster_id = find_monster_id(client, args.number)
        result = client.report_attack(monster_id, args.roll, args.outcome == "hit")
        print(result["ac_display"])
    elif args.command == "damage":
        monster_id = find_monster_id(client, args.number)
        entry = {"damage_type": args.damage_type, "resistance_tier": args.tier, "original_value": args.amount}
        print(format_monster(client.add_damage(monster_id, [entry])))
    elif args.command == "kill":
        monster_id = find_monster_id(client, args.number)
        print(format_monster(client.mark_dead(monster_id)))
    return 0


def main(argv: list[str] | None = None) -> int:
    settings = load_settings()
    args = parse_args(settings, argv)
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command == "serve":
        run_server(args.host, args.port, settings.log_level)
        return 0

    client = CombatApiClient(args.server, SessionCache(args.cache))
    try:
        return run_command(args, client)
    except SessionEndedError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except CombatApiError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return 1
    except httpx.HTTPError as exc:
        logger.debug("Transport failure", exc_info=True)
        print(f"Server not reachable at {args.server}: {exc}", file=sys.stderr)
        return 1
    finally:
        client.close()


if __name__ == "__main__":
    raise SystemExit(main())
