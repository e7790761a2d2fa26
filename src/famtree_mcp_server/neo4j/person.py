"""
Neo4j helpers for person-level queries.

Graph layout handled here:

    (:Person)-[:PARENT]->(:Person)     parent to child
    (:Person)-[:PARTNER]-(:Person)     direction carries no meaning
    (:Person)-[:IN_PHOTO]->(:Photo)

``PersonReader`` holds the read queries and the two traversal algorithms,
``PersonWriter`` adds the writes. Both are bound to one managed
transaction; use ``PersonDB.read`` / ``PersonDB.write`` to get one.

Internal node identities (``element_id``) are only used to stitch
traversal results together and never leave this module.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Set, Tuple, Union

from ..errors import AmbiguousMatch, InvalidArgument, MissingId, MissingParticipant, NotFound, ValidationFailure
from ..models import Person, PersonData, PersonUpdate, Photo, PhotoItem
from ..payloads import RelativeKind, RelativesChange, validate_model
from ..relationships import (
    PERSON_REL_TYPES,
    PartnerRelationship,
    Relationship,
    RelType,
    relationship_from_edge,
    to_parent_relationship,
    to_partner_relationship,
)
from .actions import ActionsDB, ReadActions

logger = logging.getLogger(__name__)

MAX_RELATION_HOPS = 25
MAX_PERSON_PHOTOS = 25
DEFAULT_LIMIT = 250
ALL_PHOTOS = "all"


class RemovedPhoto(NamedTuple):
    id: str
    filename: str
    # True when no other person referenced the photo and its node was deleted.
    orphaned: bool


class DeletedPerson(NamedTuple):
    """Snapshot of a deleted person and the photo links removed with it."""

    person: Person
    photos: List[RemovedPhoto]


class DeletedPeople(NamedTuple):
    """Outcome of a bulk delete: how many people went and which files they leave behind."""

    count: int
    photos: List[RemovedPhoto]
    portraits: List[str]

    def orphaned_files(self) -> List[str]:
        """Media keys no remaining node refers to."""
        return [p.filename for p in self.photos if p.orphaned] + list(self.portraits)


def validate_relation_hops(hops: Any) -> int:
    if isinstance(hops, bool) or not isinstance(hops, int):
        raise InvalidArgument("relation hops must be an integer")
    if hops < 0 or hops > MAX_RELATION_HOPS:
        raise InvalidArgument(f"relation hops must be between 0 and {MAX_RELATION_HOPS}")
    return hops


def _validate_count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgument(f"{name} must be a non-negative integer")
    return value


def _require_id(value: Any, what: str = "person id") -> str:
    if not isinstance(value, str) or not value.strip():
        raise MissingId(f"missing {what}")
    return value


def _node_properties(node: Any) -> Dict[str, Any]:
    return dict(node.items())


def collect_closure(rows: Iterable[Tuple[Any, Optional[Iterable[Any]]]]) -> Tuple[List[Person], List[Relationship]]:
    """Build deduplicated people and relationships from traversal rows.

    Each row is ``(person_node, edges_touching_that_node)``. An edge between
    two closure members shows up once per endpoint, so edges are emitted
    only the first time their identity is seen. Conversion happens after
    every row is read, because an edge may point at a node that only
    appears in a later row; edges leading outside the returned people are
    dropped by ``relationship_from_edge``.
    """
    identities: Dict[str, str] = {}
    people: List[Person] = []
    seen_edges: Set[str] = set()
    edges: List[Any] = []

    for node, rels in rows:
        if node.element_id not in identities:
            person = Person.model_validate(_node_properties(node))
            identities[node.element_id] = person.id
            people.append(person)
        for rel in rels or ():
            if rel is None or rel.element_id in seen_edges:
                continue
            seen_edges.add(rel.element_id)
            edges.append(rel)

    relationships: List[Relationship] = []
    for rel in edges:
        converted = relationship_from_edge(
            rel.type, rel.start_node.element_id, rel.end_node.element_id, identities
        )
        if converted is not None:
            relationships.append(converted)
    return people, relationships


class PersonReader(ReadActions):
    """Read-side person queries bound to one transaction."""

    async def count_all(self) -> int:
        records = await self._data("MATCH (p:Person) RETURN count(p) AS pcount")
        return int(records[0]["pcount"])

    async def find_by_id(self, id: str) -> Optional[Person]:
        """Point lookup; ``None`` when no person has ``id``."""
        _require_id(id)
        cypher = """
        MATCH (p:Person)
        WHERE p.id = $id
        RETURN p AS node
        LIMIT 1
        """
        records = await self._data(cypher, {"id": id})
        if not records:
            return None
        return Person.model_validate(records[0]["node"])

    async def find_by_name(self, name: str, exact: bool = False, limit: int = DEFAULT_LIMIT) -> List[Person]:
        """Case-insensitive name search.

        Args:
            name: Name text. Matched as a substring unless ``exact``.
            exact: Require case-insensitive equality instead of CONTAINS.
            limit: Maximum number of people to return.
        """
        name = (name or "").strip()
        if not name:
            raise InvalidArgument("name must be a non-empty string")
        _validate_count("limit", limit)

        operator = "=" if exact else "CONTAINS"
        cypher = f"""
        MATCH (p:Person)
        WHERE toLower(p.name) {operator} toLower($name)
        RETURN p AS node
        ORDER BY p.name, p.id
        LIMIT $limit
        """
        records = await self._data(cypher, {"name": name, "limit": limit})
        return [Person.model_validate(r["node"]) for r in records]

    async def get_page(self, limit: int, skip: int = 0) -> List[Person]:
        """People ordered by name, ties broken by id."""
        _validate_count("limit", limit)
        _validate_count("skip", skip)
        cypher = """
        MATCH (p:Person)
        RETURN p AS node
        ORDER BY p.name, p.id
        SKIP $skip
        LIMIT $limit
        """
        records = await self._data(cypher, {"skip": skip, "limit": limit})
        return [Person.model_validate(r["node"]) for r in records]

    async def find_main_partner(self, person_id: str) -> Optional[Person]:
        """Return one partner of ``person_id``.

        There should be at most one; if several exist the first by name
        (then id) is returned.
        """
        _require_id(person_id)
        cypher = """
        MATCH (:Person {id: $pid})-[:PARTNER]-(o:Person)
        RETURN DISTINCT o AS node
        ORDER BY node.name, node.id
        LIMIT 1
        """
        records = await self._data(cypher, {"pid": person_id})
        if not records:
            return None
        return Person.model_validate(records[0]["node"])

    async def find_person_with_relations(
        self, person_id: str, relation_hops: int
    ) -> Tuple[List[Person], List[Relationship]]:
        """Person plus everyone within ``relation_hops`` edges, and their relationships.

        With ``relation_hops == 0`` only the person itself is returned.
        """
        _require_id(person_id)
        return await self.find_family([person_id], relation_hops)

    async def find_family(
        self, focus_ids: Sequence[str], relation_hops: int
    ) -> Tuple[List[Person], List[Relationship]]:
        """Closure of several people at once (e.g. both partners of a couple).

        Walks person-to-person edges in either direction up to
        ``relation_hops`` times from any focus person, then returns every
        relationship touching a closure member whose other end is also in
        the closure. Focus people are always included, even isolated ones.
        """
        hops = validate_relation_hops(relation_hops)
        if isinstance(focus_ids, str) or not focus_ids:
            raise InvalidArgument("focus ids must be a non-empty list")
        ids = list(dict.fromkeys(_require_id(i) for i in focus_ids))

        # hops is a validated int and PERSON_REL_TYPES a fixed literal, the
        # only values formatted into the query text.
        cypher = f"""
        MATCH (origin:Person)
        WHERE origin.id IN $ids
        MATCH (origin)-[:{PERSON_REL_TYPES}*0..{hops}]-(t:Person)
        WITH DISTINCT t
        OPTIONAL MATCH (t)-[r:{PERSON_REL_TYPES}]-(:Person)
        RETURN t AS person, collect(r) AS rels
        ORDER BY person.name, person.id
        """
        records, _ = await self._records(cypher, {"ids": ids})
        people, relationships = collect_closure((r["person"], r["rels"]) for r in records)
        logger.debug(
            "Family closure of %s within %d hops: %d people, %d relationships",
            ids,
            hops,
            len(people),
            len(relationships),
        )
        return people, relationships

    async def get_person_photos(self, person_id: str, limit: int = MAX_PERSON_PHOTOS) -> List[Photo]:
        """Photos of a person, oldest first, at most ``MAX_PERSON_PHOTOS``."""
        _require_id(person_id)
        limit = min(_validate_count("limit", limit), MAX_PERSON_PHOTOS)
        cypher = """
        MATCH (:Person {id: $pid})-[:IN_PHOTO]->(ph:Photo)
        RETURN DISTINCT ph AS node
        ORDER BY node.created, node.id
        LIMIT $limit
        """
        records = await self._data(cypher, {"pid": person_id, "limit": limit})
        return [Photo.model_validate(r["node"]) for r in records]


class PersonWriter(PersonReader):
    """Write-side person queries bound to one transaction.

    Raising from any method aborts the surrounding transaction, so a
    failed multiplicity check never leaves a partial write behind.
    """

    async def add_person(self, data: Union[PersonData, Mapping[str, Any]]) -> Person:
        """Create a person; the server assigns ``id``."""
        if isinstance(data, Person) or (isinstance(data, Mapping) and "id" in data):
            raise InvalidArgument("person id is assigned by the server")
        if isinstance(data, Mapping):
            data = validate_model(PersonData, data)

        cypher = """
        CREATE (p:Person $props)
        SET p.id = randomUUID()
        RETURN p AS node
        """
        records = await self._data(cypher, {"props": data.graph_properties()})
        person = Person.model_validate(records[0]["node"])
        logger.info("Added person %s", person.id)
        return person

    async def update_person(
        self, update: Union[PersonUpdate, Mapping[str, Any]], partial: bool = True
    ) -> Person:
        """Update a person.

        With ``partial`` only fields present in ``update`` change and fields
        set to ``None`` are removed. Without it the node's properties are
        replaced wholesale by ``update`` (anything absent is dropped).
        """
        if isinstance(update, Mapping):
            if not update.get("id"):
                raise MissingId("person update needs an id")
            update = validate_model(PersonUpdate, update)
        if not update.id:
            raise MissingId("person update needs an id")

        changes = update.graph_changes()
        if partial:
            cypher = """
            MATCH (p:Person {id: $id})
            SET p += $changes
            RETURN p AS node
            """
            params = {"id": update.id, "changes": changes}
        else:
            props = {k: v for k, v in changes.items() if v is not None}
            if "name" not in props:
                raise ValidationFailure("replacing a person requires a name")
            props["id"] = update.id
            cypher = """
            MATCH (p:Person {id: $id})
            SET p = $props
            RETURN p AS node
            """
            params = {"id": update.id, "props": props}

        records = await self._data(cypher, params)
        if not records:
            raise NotFound(f"person {update.id} not found")
        if len(records) > 1:
            raise AmbiguousMatch(f"{len(records)} people share id {update.id}")
        return Person.model_validate(records[0]["node"])

    async def delete_person(self, person_id: str) -> Optional[DeletedPerson]:
        """Delete a person with all of its edges.

        Photos only this person was in are deleted too. Returns the
        pre-deletion snapshot, or ``None`` if nobody has ``person_id``.
        """
        _require_id(person_id)
        photos = await self.delete_photos(person_id, ALL_PHOTOS)
        cypher = """
        MATCH (p:Person {id: $id})
        WITH p, properties(p) AS snapshot
        DETACH DELETE p
        RETURN snapshot
        """
        records = await self._data(cypher, {"id": person_id})
        if not records:
            return None
        if len(records) > 1:
            raise AmbiguousMatch(f"{len(records)} people share id {person_id}")
        logger.info("Deleted person %s (%d photo links removed)", person_id, len(photos))
        return DeletedPerson(Person.model_validate(records[0]["snapshot"]), photos)

    async def delete_people_by_name(self, names: Sequence[str]) -> DeletedPeople:
        """Delete every person whose name is in ``names``.

        Photos are unlinked first and photo nodes nobody else is in are
        deleted, all in one statement as in ``delete_photos``. The result
        lists the photos and portraits whose files callers may remove.
        """
        cypher = """
        MATCH (p:Person)
        WHERE p.name IN $names
        OPTIONAL MATCH (p)-[e:IN_PHOTO]->(ph:Photo)
        WITH collect(DISTINCT p) AS people, collect(e) AS links, collect(DISTINCT ph) AS photos
        FOREACH (e IN links | DELETE e)
        WITH people, photos, [p IN people WHERE p.portrait IS NOT NULL | p.portrait] AS portraits
        FOREACH (p IN people | DETACH DELETE p)
        WITH size(people) AS removed, portraits, photos
        UNWIND CASE WHEN photos = [] THEN [null] ELSE photos END AS ph
        OPTIONAL MATCH (ph)<-[rest:IN_PHOTO]-()
        WITH removed, portraits, ph, count(rest) AS refs
        WITH removed, portraits, ph, CASE WHEN ph IS NULL THEN null
            ELSE {id: ph.id, filename: ph.filename, orphaned: refs = 0} END AS info
        FOREACH (_ IN CASE WHEN info.orphaned THEN [1] ELSE [] END | DETACH DELETE ph)
        RETURN removed, portraits, collect(info) AS photos
        """
        records = await self._data(cypher, {"names": list(names)})
        if not records:
            return DeletedPeople(0, [], [])
        record = records[0]
        photos = [RemovedPhoto(p["id"], p["filename"], bool(p["orphaned"])) for p in record["photos"]]
        logger.info("Deleted %d people by name (%d photo links removed)", record["removed"], len(photos))
        return DeletedPeople(int(record["removed"]), photos, list(record["portraits"]))

    async def add_relation(
        self, from_id: str, to_id: str, rel_type: Union[RelType, str]
    ) -> Relationship:
        """Create a typed edge ``from_id -> to_id``.

        Re-adding an existing edge is a no-op. ``PARTNER`` goes through
        ``add_partner_relation`` so a pair never gets two partner edges.
        """
        rel_type = RelType.parse(rel_type)
        _require_id(from_id)
        _require_id(to_id)
        if from_id == to_id:
            raise InvalidArgument("a person cannot be related to itself")

        if rel_type is RelType.PARTNER:
            await self.add_partner_relation(from_id, to_id)
            return to_partner_relationship([from_id, to_id])
        if rel_type is not RelType.PARENT:
            raise InvalidArgument(f"{rel_type.value} relations cannot be created")

        cypher = """
        MATCH (f:Person {id: $fid}), (t:Person {id: $tid})
        MERGE (f)-[r:PARENT]->(t)
        RETURN elementId(f) AS f_el, elementId(t) AS t_el
        """
        records = await self._data(cypher, {"fid": from_id, "tid": to_id})
        self._check_single_pair(records, from_id, to_id)
        return to_parent_relationship(from_id, to_id)

    async def del_relation(
        self, from_id: str, to_id: str, rel_type: Optional[Union[RelType, str]] = None
    ) -> int:
        """Remove edges between two people; returns how many were removed.

        A directed type only matches ``from_id -> to_id``; undirected types
        match either direction. Without a type every person-to-person edge
        between the two is removed.
        """
        _require_id(from_id)
        _require_id(to_id)
        if rel_type is None:
            pattern = f"-[r:{PERSON_REL_TYPES}]-"
        else:
            parsed = RelType.parse(rel_type)
            pattern = f"-[r:{parsed.value}]->" if parsed.directed else f"-[r:{parsed.value}]-"

        cypher = f"""
        MATCH (f:Person {{id: $fid}}), (t:Person {{id: $tid}})
        OPTIONAL MATCH (f){pattern}(t)
        DELETE r
        RETURN elementId(f) AS f_el, elementId(t) AS t_el, count(r) AS removed
        """
        records = await self._data(cypher, {"fid": from_id, "tid": to_id})
        self._check_single_pair(records, from_id, to_id)
        return int(records[0]["removed"])

    async def add_partner_relation(self, a_id: str, b_id: str) -> Optional[PartnerRelationship]:
        """Create a partner edge unless the pair already has one.

        The existence check and the create are one ``MERGE`` statement, so
        concurrent writers cannot both create an edge. Returns the new
        relationship, or ``None`` when one already existed.
        """
        _require_id(a_id)
        _require_id(b_id)
        if a_id == b_id:
            raise InvalidArgument("a person cannot be its own partner")

        cypher = """
        MATCH (a:Person {id: $aid}), (b:Person {id: $bid})
        MERGE (a)-[r:PARTNER]-(b)
        RETURN elementId(a) AS f_el, elementId(b) AS t_el
        """
        records, summary = await self._records(cypher, {"aid": a_id, "bid": b_id})
        self._check_single_pair(
            [{"f_el": r["f_el"], "t_el": r["t_el"]} for r in records], a_id, b_id
        )
        if summary.counters.relationships_created == 0:
            logger.debug("Partner relation %s - %s already exists", a_id, b_id)
            return None
        return to_partner_relationship([a_id, b_id])

    async def del_partner_relation(self, a_id: str, b_id: str) -> int:
        """Remove the partner edge(s) between two people; returns the count.

        Both people must exist, as for ``del_relation``.
        """
        return await self.del_relation(a_id, b_id, RelType.PARTNER)

    async def apply_relatives_change(self, person_id: str, change: RelativesChange) -> Dict[str, int]:
        """Apply a parsed relatives change to ``person_id``.

        Removals run before additions. Returns counts of edges removed and
        of relations requested to be added.
        """
        _require_id(person_id)
        removed = 0
        added = 0
        for kind, kind_change in change.items():
            for rid in kind_change.removed:
                if kind is RelativeKind.PARENT:
                    removed += await self.del_relation(rid, person_id, RelType.PARENT)
                elif kind is RelativeKind.CHILD:
                    removed += await self.del_relation(person_id, rid, RelType.PARENT)
                elif kind is RelativeKind.PARTNER:
                    removed += await self.del_partner_relation(person_id, rid)
                else:
                    raise InvalidArgument(f"unsupported relative kind {kind}")
        for kind, kind_change in change.items():
            for rid in kind_change.added:
                if kind is RelativeKind.PARENT:
                    await self.add_relation(rid, person_id, RelType.PARENT)
                elif kind is RelativeKind.CHILD:
                    await self.add_relation(person_id, rid, RelType.PARENT)
                elif kind is RelativeKind.PARTNER:
                    await self.add_partner_relation(person_id, rid)
                else:
                    raise InvalidArgument(f"unsupported relative kind {kind}")
                added += 1
        logger.info("Relatives of %s changed: %d added, %d removed", person_id, added, removed)
        return {"added": added, "removed": removed}

    async def add_photos(self, person_id: str, items: Sequence[Union[PhotoItem, Mapping[str, Any]]]) -> List[Photo]:
        """Attach one new photo node per item to a person."""
        _require_id(person_id)
        photo_items = [
            item if isinstance(item, PhotoItem) else validate_model(PhotoItem, item) for item in items
        ]
        if not photo_items:
            return []

        cypher = """
        MATCH (p:Person {id: $pid})
        UNWIND $items AS item
        CREATE (p)-[:IN_PHOTO]->(ph:Photo {
            id: randomUUID(),
            hash: item.hash,
            filename: item.filename,
            created: timestamp()
        })
        RETURN ph AS node
        """
        params = {"pid": person_id, "items": [i.model_dump() for i in photo_items]}
        records = await self._data(cypher, params)
        if not records:
            raise MissingParticipant(f"person {person_id} not found")
        if len(records) > len(photo_items):
            raise AmbiguousMatch(f"several people share id {person_id}")
        return [Photo.model_validate(r["node"]) for r in records]

    async def delete_photos(self, person_id: str, photo_ids: Union[Sequence[str], str]) -> List[RemovedPhoto]:
        """Unlink photos from a person, deleting photo nodes nobody else is in.

        ``photo_ids`` is a list of photo ids or ``ALL_PHOTOS``. Unlinking,
        counting the remaining references and deleting happen in one
        statement, so a concurrent attach cannot slip in between.
        """
        _require_id(person_id)
        if photo_ids == ALL_PHOTOS:
            delete_all, ids = True, []
        elif isinstance(photo_ids, str) or not all(isinstance(i, str) for i in photo_ids):
            raise InvalidArgument(f'photo ids must be a list of ids or "{ALL_PHOTOS}"')
        else:
            delete_all, ids = False, list(photo_ids)
            if not ids:
                return []

        cypher = """
        MATCH (:Person {id: $pid})-[e:IN_PHOTO]->(ph:Photo)
        WHERE $all OR ph.id IN $ids
        DELETE e
        WITH DISTINCT ph
        OPTIONAL MATCH (ph)<-[rest:IN_PHOTO]-()
        WITH ph, count(rest) AS refs
        WITH ph, ph.id AS id, ph.filename AS filename, refs = 0 AS orphaned
        FOREACH (_ IN CASE WHEN orphaned THEN [1] ELSE [] END | DETACH DELETE ph)
        RETURN id, filename, orphaned
        """
        records = await self._data(cypher, {"pid": person_id, "all": delete_all, "ids": ids})
        return [RemovedPhoto(r["id"], r["filename"], bool(r["orphaned"])) for r in records]

    @staticmethod
    def _check_single_pair(records: List[Dict[str, Any]], from_id: str, to_id: str) -> None:
        """Both ids must resolve to exactly one person each."""
        if not records:
            raise MissingParticipant(f"person {from_id} or {to_id} not found")
        pairs = {(r["f_el"], r["t_el"]) for r in records}
        if len(pairs) > 1:
            raise AmbiguousMatch(f"several people share id {from_id} or {to_id}")


class PersonDB(ActionsDB[PersonReader, PersonWriter]):
    """Runs person reader/writer callbacks in transactions of a shared client."""

    reader_cls = PersonReader
    writer_cls = PersonWriter
