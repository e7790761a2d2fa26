"""Relationship vocabulary and conversions between graph edges and domain objects.

Relationships are not entities of their own: they are typed edges between
two ``Person`` nodes.

- ``PARENT`` is directed, from parent to child.
- ``PARTNER`` is undirected; the stored direction carries no meaning.
- ``SIBLING`` is part of the vocabulary but nothing derives from it.

On the wire a relationship looks like::

    {"relType": "parent", "participants": {"parent": [pid], "child": [cid]}}
    {"relType": "partner", "participants": {"partner": [aid, bid]}}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from .errors import InvalidArgument

logger = logging.getLogger(__name__)


class RelType(str, Enum):
    """Closed set of edge types between people.

    Only members of this enum are ever formatted into query text.
    """

    PARENT = "PARENT"
    PARTNER = "PARTNER"
    SIBLING = "SIBLING"

    @property
    def directed(self) -> bool:
        return self is RelType.PARENT

    @classmethod
    def parse(cls, value: Union[str, "RelType"]) -> "RelType":
        if isinstance(value, RelType):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidArgument(f'unknown relation type "{value}"') from None


# Cypher pattern fragment matching every person-to-person relation type.
PERSON_REL_TYPES = "|".join(t.value for t in RelType)


@dataclass(frozen=True)
class ParentRelationship:
    parent: str
    child: str
    kind: Literal["parent"] = "parent"

    @property
    def participants(self) -> Dict[str, List[str]]:
        return {"parent": [self.parent], "child": [self.child]}


@dataclass(frozen=True)
class PartnerRelationship:
    partners: Tuple[str, ...]
    kind: Literal["partner"] = "partner"

    @property
    def participants(self) -> Dict[str, List[str]]:
        return {"partner": list(self.partners)}


Relationship = Union[ParentRelationship, PartnerRelationship]


def to_parent_relationship(parent_id: str, child_id: str) -> ParentRelationship:
    return ParentRelationship(parent=parent_id, child=child_id)


def to_partner_relationship(ids: Sequence[str]) -> PartnerRelationship:
    return PartnerRelationship(partners=tuple(ids))


def relationship_from_edge(
    edge_type: str,
    start_identity: str,
    end_identity: str,
    identities: Mapping[str, str],
) -> Optional[Relationship]:
    """Classify a raw edge into a domain relationship.

    ``identities`` maps the database's internal node identity to a person
    id. Edges with an endpoint outside that map lead out of the queried
    node set and yield ``None``; so do edge types nothing derives from.
    """
    start_id = identities.get(start_identity)
    end_id = identities.get(end_identity)
    if start_id is None or end_id is None:
        return None

    if edge_type == RelType.PARENT.value:
        return to_parent_relationship(start_id, end_id)
    if edge_type == RelType.PARTNER.value:
        return to_partner_relationship([start_id, end_id])

    logger.debug("Ignoring %s edge between %s and %s", edge_type, start_id, end_id)
    return None


def relationship_to_wire(rel: Relationship) -> Dict[str, Any]:
    if isinstance(rel, (ParentRelationship, PartnerRelationship)):
        return {"relType": rel.kind, "participants": rel.participants}
    raise TypeError(f"unsupported relationship {rel!r}")


def relationship_from_wire(data: Mapping[str, Any]) -> Relationship:
    """Parse the wire form produced by ``relationship_to_wire``."""
    rel_type = data.get("relType")
    participants = data.get("participants")
    if not isinstance(participants, Mapping):
        raise InvalidArgument("relationship participants must be a mapping")

    if rel_type == "parent":
        parents = participants.get("parent") or []
        children = participants.get("child") or []
        if len(parents) != 1 or len(children) != 1:
            raise InvalidArgument("parent relationship needs exactly one parent and one child")
        return to_parent_relationship(str(parents[0]), str(children[0]))
    if rel_type == "partner":
        partners = participants.get("partner") or []
        if len(partners) < 2:
            raise InvalidArgument("partner relationship needs at least two partners")
        return to_partner_relationship([str(p) for p in partners])
    raise InvalidArgument(f'unknown relation type "{rel_type}"')
