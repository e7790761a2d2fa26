"""MCP tools for person-level operations.

This module exposes `PersonDB` reads and writes on single people as MCP
tools. Relations live in `tools.relatives`, photos in `tools.photos`.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

from ..errors import FamtreeError, InvalidArgument, NotFound
from ..mcp_instance import media_store, persondb, tool
from ..models import Permission
from ..neo4j.person import DEFAULT_LIMIT
from ..payloads import parse_new_person, parse_person_update
from .utils import authorize, dump, log_mcp_tool, tool_error


@tool()
async def query_person(
    session_token: str,
    id: Optional[str] = None,
    name: Optional[str] = None,
    exact: bool = False,
    limit: int = DEFAULT_LIMIT,
) -> Dict[str, Any]:
    """Query persons by id or by name.

    This tool searches for persons using either:
    - id (exact match), or
    - name (case-insensitive CONTAINS match, or equality with `exact`)

    Args:
        session_token: Session of the calling user (needs "view").
        id: Person id. Highest priority if provided.
        name: Person name text. Used if id is not provided.
        exact: Match the whole name instead of a substring.
        limit: Maximum number of records to return for name-based queries.

    Returns:
        A JSON-serializable dict:

            {
              "count": <int>,
              "results": [ { <Person properties> }, ... ]
            }
    """
    start_time = time.time()
    log_mcp_tool("query_person", "called", {
        "id": id,
        "name": name,
        "exact": exact,
        "limit": limit,
    })

    try:
        await authorize(session_token, Permission.VIEW)
        if id:
            person = await persondb.read(lambda act: act.find_by_id(id))
            people = [person] if person is not None else []
        elif name:
            people = await persondb.read(lambda act: act.find_by_name(name, exact=exact, limit=limit))
        else:
            raise InvalidArgument("either id or name must be provided")
    except FamtreeError as e:
        return tool_error("query_person", e, start_time)

    records = [dump(p) for p in people]

    duration = time.time() - start_time
    log_mcp_tool("query_person", "completed", {
        "id": id,
        "name": name,
        "result_count": len(records),
    }, duration=duration)

    return {
        "count": len(records),
        "results": records,
    }


@tool()
async def list_people(session_token: str, limit: int = 50, skip: int = 0) -> Dict[str, Any]:
    """List people ordered by name, one page at a time.

    Args:
        session_token: Session of the calling user (needs "view").
        limit: Page size.
        skip: Number of people to skip.

    Returns:
        {"count": <int>, "total_count": <int>, "results": [<Person>, ...]}
    """
    start_time = time.time()
    log_mcp_tool("list_people", "called", {"limit": limit, "skip": skip})

    async def page(act):
        return await act.get_page(limit, skip), await act.count_all()

    try:
        await authorize(session_token, Permission.VIEW)
        people, total = await persondb.read(page)
    except FamtreeError as e:
        return tool_error("list_people", e, start_time)

    duration = time.time() - start_time
    log_mcp_tool("list_people", "completed", {
        "limit": limit,
        "skip": skip,
        "result_count": len(people),
    }, duration=duration)

    return {
        "count": len(people),
        "total_count": total,
        "results": [dump(p) for p in people],
    }


@tool()
async def get_person(session_token: str, person_id: str) -> Dict[str, Any]:
    """Fetch one person by id. Fails with `not_found` if nobody has the id."""
    start_time = time.time()
    log_mcp_tool("get_person", "called", {"person_id": person_id})

    try:
        await authorize(session_token, Permission.VIEW)
        person = await persondb.read(lambda act: act.find_by_id(person_id))
        if person is None:
            raise NotFound(f"person {person_id} not found")
    except FamtreeError as e:
        return tool_error("get_person", e, start_time)

    log_mcp_tool("get_person", "completed", {"person_id": person_id}, duration=time.time() - start_time)
    return {"person": dump(person)}


@tool()
async def add_person(session_token: str, person: Dict[str, Any]) -> Dict[str, Any]:
    """Create a person.

    Args:
        session_token: Session of the calling user (needs "edit").
        person: Person fields: `name` (required), `gender`, `birthDate`,
            `deathDate` (ISO date, "unknown" or "n/a") and `bio`. The id is
            assigned by the server and must not be given.

    Returns:
        {"person": <Person>}
    """
    start_time = time.time()
    log_mcp_tool("add_person", "called", {"fields": sorted(person or {})})

    try:
        await authorize(session_token, Permission.EDIT)
        data = parse_new_person(person)
        created = await persondb.write(lambda act: act.add_person(data))
    except FamtreeError as e:
        return tool_error("add_person", e, start_time)

    log_mcp_tool("add_person", "completed", {"person_id": created.id}, duration=time.time() - start_time)
    return {"person": dump(created)}


@tool()
async def update_person(session_token: str, person: Dict[str, Any], partial: bool = True) -> Dict[str, Any]:
    """Update a person.

    With `partial` (the default) only the given fields change and fields
    given as null are removed. Without it the person is replaced by the
    given fields.

    Args:
        session_token: Session of the calling user (needs "edit").
        person: Update with the person's `id` and the fields to change.
        partial: Merge (True) or replace (False).

    Returns:
        {"person": <Person>}
    """
    start_time = time.time()
    log_mcp_tool("update_person", "called", {
        "person_id": (person or {}).get("id"),
        "fields": sorted(person or {}),
        "partial": partial,
    })

    try:
        await authorize(session_token, Permission.EDIT)
        update = parse_person_update(person)
        updated = await persondb.write(lambda act: act.update_person(update, partial=partial))
    except FamtreeError as e:
        return tool_error("update_person", e, start_time)

    log_mcp_tool("update_person", "completed", {"person_id": updated.id}, duration=time.time() - start_time)
    return {"person": dump(updated)}


@tool()
async def delete_person(session_token: str, person_id: str) -> Dict[str, Any]:
    """Delete a person with all its relations.

    Photos nobody else is in are deleted along with their files, and so is
    the person's portrait file.

    Returns:
        {"person": <deleted Person>, "photos_removed": <int>, "files_removed": <int>}
    """
    start_time = time.time()
    log_mcp_tool("delete_person", "called", {"person_id": person_id})

    try:
        await authorize(session_token, Permission.EDIT)
        deleted = await persondb.write(lambda act: act.delete_person(person_id))
        if deleted is None:
            raise NotFound(f"person {person_id} not found")
    except FamtreeError as e:
        return tool_error("delete_person", e, start_time)

    keys = [p.filename for p in deleted.photos if p.orphaned]
    if deleted.person.portrait:
        keys.append(deleted.person.portrait)
    files_removed = await media_store.delete_all(keys)

    log_mcp_tool("delete_person", "completed", {
        "person_id": person_id,
        "photos_removed": len(deleted.photos),
        "files_removed": files_removed,
    }, duration=time.time() - start_time)

    return {
        "person": dump(deleted.person),
        "photos_removed": len(deleted.photos),
        "files_removed": files_removed,
    }
