#!/usr/bin/env python3
"""Create the Neo4j constraints the engine relies on, and optionally seed actors.

Run from repo root with .env (NEO4J_URI, NEO4J_USER, NEO4J_PASSWORD).
Idempotent. With --seed FILE, upserts actors and shares from a JSON file:
{"actors": [{"id", "display_name", "gender", "actor_type"}], "shares": [{"id", "code"}]}
"""
import argparse
import json
import os
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT / "src"))

from dotenv import load_dotenv  # noqa: E402
from neo4j import GraphDatabase  # noqa: E402

from actorgraph.domain import Actor, ActorType, Gender, Share  # noqa: E402
from actorgraph.infrastructure import Neo4jDirectory, ensure_schema  # noqa: E402

load_dotenv(REPO_ROOT / ".env")


def _seed(driver, path: Path) -> tuple[int, int]:
    data = json.loads(path.read_text(encoding="utf-8"))
    directory = Neo4jDirectory(driver)
    actors = data.get("actors") or []
    shares = data.get("shares") or []
    for item in actors:
        directory.upsert_actor(
            Actor(
                id=item["id"],
                display_name=item.get("display_name", ""),
                gender=Gender.parse(item.get("gender")),
                actor_type=ActorType(item.get("actor_type", ActorType.PERSON.value)),
            )
        )
    for item in shares:
        directory.upsert_share(Share(id=item["id"], code=item.get("code", "")))
    return len(actors), len(shares)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--seed", type=Path, help="JSON file with actors and shares to upsert")
    args = parser.parse_args()

    uri = os.environ.get("NEO4J_URI", "bolt://localhost:7687").strip()
    user = os.environ.get("NEO4J_USER", "neo4j").strip()
    password = os.environ.get("NEO4J_PASSWORD", "password").strip()
    driver = GraphDatabase.driver(uri, auth=(user, password))
    try:
        ensure_schema(driver)
        print("Constraints ensured.")
        if args.seed:
            n_actors, n_shares = _seed(driver, args.seed)
            print(f"Seeded {n_actors} actor(s) and {n_shares} share(s).")
        return 0
    except Exception as e:
        print(f"Schema setup failed: {e}", file=sys.stderr)
        return 1
    finally:
        driver.close()


if __name__ == "__main__":
    sys.exit(main())
