"""MCP tools for relations between people and the derived family view."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

from ..errors import FamtreeError, NotFound
from ..family import derive_family
from ..mcp_instance import config, persondb, tool
from ..models import Permission
from ..neo4j import PersonReader
from ..payloads import parse_relatives_change
from ..relationships import relationship_to_wire
from .utils import authorize, dump, log_mcp_tool, tool_error


@tool()
async def get_person_relations(session_token: str, person_id: str, hops: int = 1) -> Dict[str, Any]:
    """Fetch a person together with everyone within `hops` relations.

    Relations are followed in both directions (parent, child, partner),
    so `hops=1` returns parents, children and partners, and `hops=2` adds
    grandparents, siblings, in-laws, and so on. `hops=0` returns the
    person alone. Each person and relationship appears exactly once.

    Args:
        session_token: Session of the calling user (needs "view").
        person_id: Person to start from.
        hops: Relation hops to follow, 0 to 25.

    Returns:
        A JSON-serializable dict:

            {
              "count": <int>,
              "people": [ <Person>, ... ],
              "relationships": [
                {"relType": "parent", "participants": {"parent": [id], "child": [id]}},
                {"relType": "partner", "participants": {"partner": [id, id]}},
                ...
              ]
            }
    """
    start_time = time.time()
    log_mcp_tool("get_person_relations", "called", {"person_id": person_id, "hops": hops})

    try:
        await authorize(session_token, Permission.VIEW)
        people, relationships = await persondb.read(
            lambda act: act.find_person_with_relations(person_id, hops)
        )
        if not any(p.id == person_id for p in people):
            raise NotFound(f"person {person_id} not found")
    except FamtreeError as e:
        return tool_error("get_person_relations", e, start_time)

    log_mcp_tool("get_person_relations", "completed", {
        "person_id": person_id,
        "hops": hops,
        "result_count": len(people),
        "relationship_count": len(relationships),
    }, duration=time.time() - start_time)

    return {
        "count": len(people),
        "people": [dump(p) for p in people],
        "relationships": [relationship_to_wire(r) for r in relationships],
    }


@tool()
async def get_family(
    session_token: str,
    person_id: str,
    with_partner: bool = True,
    hops: Optional[int] = None,
) -> Dict[str, Any]:
    """Family view of a person, or of the person and their partner.

    The view lists the parents and partners of the focus people and splits
    their children into children shared by every focus person and
    children of only one of them.

    Args:
        session_token: Session of the calling user (needs "view").
        person_id: Person the view is centred on.
        with_partner: Also centre the view on the person's partner, if any.
        hops: Relation hops fetched around the focus people (defaults to
            the FAMILY_HOPS setting).

    Returns:
        {"focusIds", "people", "relationships", "parentsOf", "partnersOf",
         "sharedChildren", "individualChildren"}
    """
    start_time = time.time()
    relation_hops = config.family_hops if hops is None else hops
    log_mcp_tool("get_family", "called", {
        "person_id": person_id,
        "with_partner": with_partner,
        "hops": relation_hops,
    })

    async def family(act: PersonReader):
        person = await act.find_by_id(person_id)
        if person is None:
            raise NotFound(f"person {person_id} not found")
        focus = [person.id]
        if with_partner:
            partner = await act.find_main_partner(person.id)
            if partner is not None:
                focus.append(partner.id)
        people, relationships = await act.find_family(focus, relation_hops)
        return derive_family(people, relationships, focus)

    try:
        await authorize(session_token, Permission.VIEW)
        view = await persondb.read(family)
    except FamtreeError as e:
        return tool_error("get_family", e, start_time)

    log_mcp_tool("get_family", "completed", {
        "person_id": person_id,
        "focus_ids": list(view.focus_ids),
        "result_count": len(view.people),
    }, duration=time.time() - start_time)

    return view.to_dict()


@tool()
async def update_relatives(session_token: str, person_id: str, change: Dict[str, Any]) -> Dict[str, Any]:
    """Add and remove parents, children and partners of a person.

    Args:
        session_token: Session of the calling user (needs "edit").
        person_id: Person whose relatives change.
        change: Per relative kind, the ids to add and to remove:

            {
              "parent": {"added": [id, ...], "removed": [id, ...]},
              "child": {"added": [...], "removed": [...]},
              "partner": {"added": [...], "removed": [...]}
            }

            Listing the person itself, or one id as both added and removed
            under the same kind, is rejected before anything is written.

    Returns:
        {"person_id": <id>, "added": <int>, "removed": <int>}
    """
    start_time = time.time()
    log_mcp_tool("update_relatives", "called", {
        "person_id": person_id,
        "kinds": sorted(change or {}),
    })

    try:
        await authorize(session_token, Permission.EDIT)
        parsed = parse_relatives_change(change, person_id)
        counts = await persondb.write(lambda act: act.apply_relatives_change(person_id, parsed))
    except FamtreeError as e:
        return tool_error("update_relatives", e, start_time)

    log_mcp_tool("update_relatives", "completed", {
        "person_id": person_id,
        **counts,
    }, duration=time.time() - start_time)

    return {"person_id": person_id, **counts}
