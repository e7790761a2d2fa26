"""Simple CLI for working with the family-tree graph offline.

Usage examples (from project root):

    # Ensure src is on PYTHONPATH, then:
    PYTHONPATH=src python -m famtree_mcp_server.cli find-person --name zeus

    PYTHONPATH=src python -m famtree_mcp_server.cli family --id <person id> --hops 2

The CLI uses:
- .env configuration (NEO4J_URI, NEO4J_USERNAME, NEO4J_PASSWORD)
- Neo4jClient for connection
- PersonDB readers/writers for the queries

Permission checks only apply to the MCP tools; the CLI talks to the
database directly.
"""

import argparse
import asyncio
import json
import logging
from typing import Any, Dict

from .config import Config
from .demo import seed_demo_family
from .errors import FamtreeError
from .family import derive_family
from .media import MediaStore
from .neo4j import Neo4jClient, PersonDB, PersonReader, ensure_schema
from .relationships import relationship_to_wire


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _print(result: Dict[str, Any]) -> None:
    print(json.dumps(result, indent=2, sort_keys=True, default=str))


async def _cmd_find_person(args: argparse.Namespace) -> None:
    """Look a person up by id or by name and print the matches."""

    async with Neo4jClient(config=Config()) as client:
        persondb = PersonDB(client)
        if args.id:
            person = await persondb.read(lambda act: act.find_by_id(args.id))
            people = [person] if person is not None else []
        else:
            people = await persondb.read(
                lambda act: act.find_by_name(args.name, exact=args.exact, limit=args.limit)
            )

    _print({
        "count": len(people),
        "results": [_dump(p) for p in people],
    })


async def _cmd_list_people(args: argparse.Namespace) -> None:
    """Print one page of people ordered by name."""

    async def page(act: PersonReader):
        return await act.get_page(args.limit, args.skip), await act.count_all()

    async with Neo4jClient(config=Config()) as client:
        people, total = await PersonDB(client).read(page)

    _print({
        "count": len(people),
        "total_count": total,
        "results": [_dump(p) for p in people],
    })


async def _cmd_relations(args: argparse.Namespace) -> None:
    """Print a person and everyone within --hops relations."""

    async with Neo4jClient(config=Config()) as client:
        people, relationships = await PersonDB(client).read(
            lambda act: act.find_person_with_relations(args.id, args.hops)
        )

    _print({
        "count": len(people),
        "hops": args.hops,
        "people": [_dump(p) for p in people],
        "relationships": [relationship_to_wire(r) for r in relationships],
    })


async def _cmd_family(args: argparse.Namespace) -> None:
    """Print the family view of a person (and partner)."""

    config = Config()
    hops = config.family_hops if args.hops is None else args.hops

    async def family(act: PersonReader):
        focus = [args.id]
        if args.with_partner:
            partner = await act.find_main_partner(args.id)
            if partner is not None:
                focus.append(partner.id)
        people, relationships = await act.find_family(focus, hops)
        return derive_family(people, relationships, focus)

    async with Neo4jClient(config=config) as client:
        view = await PersonDB(client).read(family)

    _print(view.to_dict())


async def _cmd_ensure_schema(args: argparse.Namespace) -> None:
    """Create missing constraints and indexes."""

    async with Neo4jClient(config=Config()) as client:
        applied = await ensure_schema(client)

    _print({"statements": applied})


async def _cmd_recreate_gods(args: argparse.Namespace) -> None:
    """Delete and re-add the demo family of Greek gods."""

    config = Config()
    async with Neo4jClient(config=config) as client:
        result = await PersonDB(client).write(seed_demo_family)

    files_removed = await MediaStore.from_config(config).delete_all(result.orphaned_files)

    _print({
        "people_deleted": result.people_deleted,
        "files_removed": files_removed,
        "people_added": result.people_added,
        "ids": result.ids,
    })


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CLI for the family-tree Neo4j functions",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        help="Log level written to stderr (e.g. DEBUG, INFO, WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # find-person command
    p_find = subparsers.add_parser(
        "find-person",
        help="Person lookup by id, or by (partial) name",
    )
    p_find_key = p_find.add_mutually_exclusive_group(required=True)
    p_find_key.add_argument("--id", type=str, help="Person id", dest="id")
    p_find_key.add_argument("--name", type=str, help="Name text (case-insensitive)")
    p_find.add_argument(
        "--exact",
        action="store_true",
        help="Match the whole name instead of a substring",
    )
    p_find.add_argument(
        "--limit",
        type=int,
        default=25,
        help="Maximum number of records to return (name lookups)",
    )
    p_find.set_defaults(func=_cmd_find_person)

    # list-people command
    p_list = subparsers.add_parser(
        "list-people",
        help="List people ordered by name",
    )
    p_list.add_argument("--limit", type=int, default=50, help="Page size")
    p_list.add_argument("--skip", type=int, default=0, help="Number of people to skip")
    p_list.set_defaults(func=_cmd_list_people)

    # relations command
    p_relations = subparsers.add_parser(
        "relations",
        help="A person with everyone within a number of relation hops",
    )
    p_relations.add_argument("--id", type=str, required=True, help="Person id", dest="id")
    p_relations.add_argument(
        "--hops",
        type=int,
        default=1,
        help="Relation hops to follow (0-25)",
    )
    p_relations.set_defaults(func=_cmd_relations)

    # family command
    p_family = subparsers.add_parser(
        "family",
        help="Family view: parents, partners, shared and individual children",
    )
    p_family.add_argument("--id", type=str, required=True, help="Person id", dest="id")
    p_family.add_argument(
        "--no-partner",
        action="store_false",
        dest="with_partner",
        help="Centre the view on the person alone, without their partner",
    )
    p_family.add_argument(
        "--hops",
        type=int,
        default=None,
        help="Relation hops fetched around the focus people (default: FAMILY_HOPS)",
    )
    p_family.set_defaults(func=_cmd_family)

    # ensure-schema command
    p_schema = subparsers.add_parser(
        "ensure-schema",
        help="Create missing constraints and indexes",
    )
    p_schema.set_defaults(func=_cmd_ensure_schema)

    # recreate-gods command
    p_gods = subparsers.add_parser(
        "recreate-gods",
        help="Delete and re-add the demo family of Greek gods",
    )
    p_gods.set_defaults(func=_cmd_recreate_gods)

    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))
    try:
        asyncio.run(args.func(args))
    except FamtreeError as e:
        _print({"error": e.to_dict()})
        raise SystemExit(1) from None


if __name__ == "__main__":
    main()
