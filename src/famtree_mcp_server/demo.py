"""Demo family of Greek gods used to populate an empty database."""

from __future__ import annotations

import logging
from typing import Dict, List, NamedTuple, Tuple

from .models import PersonData
from .neo4j import PersonWriter
from .relationships import RelType

logger = logging.getLogger(__name__)

# (name, gender, parents, partners); parents and partners refer to earlier entries.
GODS: List[Tuple[str, str, Tuple[str, ...], Tuple[str, ...]]] = [
    ("Cronus", "male", (), ()),
    ("Rhea", "female", (), ("Cronus",)),
    ("Hades", "male", ("Cronus", "Rhea"), ()),
    ("Hera", "female", ("Rhea", "Cronus"), ()),
    ("Poseidon", "male", ("Rhea", "Cronus"), ()),
    ("Zeus", "male", ("Rhea", "Cronus"), ()),
    ("Persephone", "female", ("Zeus",), ()),
    ("Ares", "male", ("Hera", "Zeus"), ()),
    ("Aphrodite", "female", ("Zeus",), ("Ares",)),
    ("Eros", "male", ("Ares", "Aphrodite"), ()),
    ("Phobos", "male", ("Ares", "Aphrodite"), ()),
    ("Maia", "female", (), ()),
    ("Hermes", "male", ("Maia", "Zeus"), ()),
    ("Rhodos", "female", ("Poseidon", "Aphrodite"), ()),
    ("Hermaphroditus", "nb", ("Hermes", "Aphrodite"), ()),
    ("Helios", "male", (), ()),
    ("Ochimus", "male", ("Rhodos", "Helios"), ()),
]

GOD_NAMES: List[str] = [name for name, _, _, _ in GODS]


class SeedResult(NamedTuple):
    people_deleted: int
    people_added: int
    ids: Dict[str, str]
    # Media keys of the deleted people nothing refers to any more.
    orphaned_files: List[str]


async def seed_demo_family(act: PersonWriter) -> SeedResult:
    """Replace any previous demo people with a fresh copy of the gods.

    Runs on one write transaction, so the family appears all at once.
    """
    deleted = await act.delete_people_by_name(GOD_NAMES)
    count_before = await act.count_all()

    ids: Dict[str, str] = {}
    for name, gender, parents, partners in GODS:
        person = await act.add_person(PersonData(name=name, gender=gender))
        ids[name] = person.id
        for parent in parents:
            await act.add_relation(ids[parent], person.id, RelType.PARENT)
        for partner in partners:
            await act.add_partner_relation(person.id, ids[partner])

    added = await act.count_all() - count_before
    logger.info("Demo family recreated: %d people deleted, %d added", deleted.count, added)
    return SeedResult(deleted.count, added, ids, deleted.orphaned_files())
