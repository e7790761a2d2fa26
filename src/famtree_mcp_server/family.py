"""Family view derived from a fetched ``(people, relationships)`` closure.

The view is centred on one or two focus people (a person, or a couple):
their parents, their partners, and their children split into children
shared by every focus person and children of only one of them.

Everything here is a pure function of its inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from .errors import InvalidArgument
from .models import Person
from .relationships import ParentRelationship, PartnerRelationship, Relationship, relationship_to_wire


def _append_unique(target: Dict[str, List[str]], key: str, value: str) -> None:
    values = target.setdefault(key, [])
    if value not in values:
        values.append(value)


def _check_focus(focus_ids: Sequence[str]) -> Tuple[str, ...]:
    focus = tuple(dict.fromkeys(focus_ids))
    if not 1 <= len(focus) <= 2:
        raise InvalidArgument("a family view needs one or two focus people")
    return focus


def parents_by_child(relationships: Iterable[Relationship]) -> Dict[str, List[str]]:
    """Map every child id to its parent ids, in relationship order."""
    parents: Dict[str, List[str]] = {}
    for rel in relationships:
        if isinstance(rel, ParentRelationship):
            _append_unique(parents, rel.child, rel.parent)
        elif not isinstance(rel, PartnerRelationship):
            raise TypeError(f"unsupported relationship {rel!r}")
    return parents


def parents_of(relationships: Iterable[Relationship], focus_ids: Sequence[str]) -> Dict[str, List[str]]:
    """Parents of each focus person (every focus id gets an entry)."""
    by_child = parents_by_child(relationships)
    return {fid: list(by_child.get(fid, [])) for fid in focus_ids}


def children_of(relationships: Iterable[Relationship], focus_ids: Sequence[str]) -> Dict[str, List[str]]:
    """Map each child of any focus person to its focus parents."""
    focus = set(focus_ids)
    children: Dict[str, List[str]] = {}
    for child, parents in parents_by_child(relationships).items():
        focus_parents = [p for p in parents if p in focus]
        if focus_parents:
            children[child] = focus_parents
    return children


def partners_of(relationships: Iterable[Relationship], focus_ids: Sequence[str]) -> Dict[str, List[str]]:
    """Partners of each focus person, leaving out the focus people themselves."""
    focus = set(focus_ids)
    partners: Dict[str, List[str]] = {fid: [] for fid in focus_ids}
    for rel in relationships:
        if isinstance(rel, PartnerRelationship):
            for pid in rel.partners:
                if pid not in focus:
                    continue
                for other in rel.partners:
                    if other != pid and other not in focus:
                        _append_unique(partners, pid, other)
        elif not isinstance(rel, ParentRelationship):
            raise TypeError(f"unsupported relationship {rel!r}")
    return partners


def classify_children(
    relationships: Iterable[Relationship], focus_ids: Sequence[str]
) -> Tuple[List[str], Dict[str, List[str]]]:
    """Split children into shared ones and per-focus-person ones.

    A child is shared when every focus person is among its parents. Any
    other child is listed under each focus person that is its parent. With
    a single focus person all of its children are shared.
    """
    focus = _check_focus(focus_ids)
    shared: List[str] = []
    individual: Dict[str, List[str]] = {fid: [] for fid in focus}
    for child, focus_parents in children_of(relationships, focus).items():
        if set(focus_parents) == set(focus):
            shared.append(child)
        else:
            for parent in focus_parents:
                individual[parent].append(child)
    return shared, individual


@dataclass(frozen=True)
class FamilyView:
    focus_ids: Tuple[str, ...]
    people: Dict[str, Person]
    relationships: List[Relationship]
    parents_of: Dict[str, List[str]]
    partners_of: Dict[str, List[str]]
    shared_children: List[str]
    individual_children: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "focusIds": list(self.focus_ids),
            "people": [p.model_dump(mode="json", by_alias=True, exclude_none=True) for p in self.people.values()],
            "relationships": [relationship_to_wire(r) for r in self.relationships],
            "parentsOf": self.parents_of,
            "partnersOf": self.partners_of,
            "sharedChildren": self.shared_children,
            "individualChildren": self.individual_children,
        }


def derive_family(
    people: Sequence[Person], relationships: Sequence[Relationship], focus_ids: Sequence[str]
) -> FamilyView:
    """Build the family view of ``focus_ids`` from an already fetched closure."""
    focus = _check_focus(focus_ids)
    shared, individual = classify_children(relationships, focus)
    return FamilyView(
        focus_ids=focus,
        people={p.id: p for p in people},
        relationships=list(relationships),
        parents_of=parents_of(relationships, focus),
        partners_of=partners_of(relationships, focus),
        shared_children=shared,
        individual_children=individual,
    )
