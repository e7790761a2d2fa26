"""Tests for the write side of the person repository."""
from __future__ import annotations

import pytest

from conftest import APHRODITE, ARES, HERA, ZEUS, FakeResult, FakeTransaction
from famtree_mcp_server.errors import (
    AmbiguousMatch,
    InvalidArgument,
    MissingId,
    MissingParticipant,
    NotFound,
    ValidationFailure,
)
from famtree_mcp_server.models import PersonData, PhotoItem
from famtree_mcp_server.neo4j import ALL_PHOTOS, DeletedPeople, PersonWriter, RemovedPhoto
from famtree_mcp_server.payloads import RelativeKind, RelativesTypeChange
from famtree_mcp_server.relationships import ParentRelationship, PartnerRelationship, RelType

PAIR = [{"f_el": "el:1", "t_el": "el:2"}]


class TestAddPerson:
    @pytest.mark.asyncio
    async def test_server_assigns_id(self):
        tx = FakeTransaction([{"node": {"id": ZEUS, "name": "Zeus", "gender": "male"}}])

        person = await PersonWriter(tx).add_person({"name": "Zeus", "gender": "male"})

        assert person.id == ZEUS
        assert tx.calls[0].params == {"props": {"name": "Zeus", "gender": "male"}}
        assert "randomUUID()" in tx.calls[0].cypher

    @pytest.mark.asyncio
    async def test_rejects_caller_supplied_id(self):
        tx = FakeTransaction()

        with pytest.raises(InvalidArgument):
            await PersonWriter(tx).add_person({"id": ZEUS, "name": "Zeus"})
        assert tx.calls == []

    @pytest.mark.asyncio
    async def test_invalid_payload(self):
        with pytest.raises(ValidationFailure):
            await PersonWriter(FakeTransaction()).add_person({"name": ""})

    @pytest.mark.asyncio
    async def test_accepts_model(self):
        tx = FakeTransaction([{"node": {"id": HERA, "name": "Hera"}}])

        person = await PersonWriter(tx).add_person(PersonData(name="Hera"))

        assert person.name == "Hera"


class TestUpdatePerson:
    @pytest.mark.asyncio
    async def test_partial_update_sends_only_given_fields(self):
        tx = FakeTransaction([{"node": {"id": ZEUS, "name": "Zeus"}}])

        person = await PersonWriter(tx).update_person({"id": ZEUS, "bio": None})

        assert person.bio is None
        assert tx.calls[0].params == {"id": ZEUS, "changes": {"bio": None}}
        assert "SET p += $changes" in tx.calls[0].cypher

    @pytest.mark.asyncio
    async def test_id_only_update_changes_nothing(self):
        tx = FakeTransaction(
            [{"node": {"id": ZEUS, "name": "Zeus", "bio": "King"}}],
            [{"node": {"id": ZEUS, "name": "Zeus", "bio": "King"}}],
        )
        writer = PersonWriter(tx)

        first = await writer.update_person({"id": ZEUS})
        second = await writer.update_person({"id": ZEUS})

        assert first == second
        assert [c.params["changes"] for c in tx.calls] == [{}, {}]

    @pytest.mark.asyncio
    async def test_full_replace_keeps_id_and_drops_nulls(self):
        tx = FakeTransaction([{"node": {"id": ZEUS, "name": "Zeus"}}])

        await PersonWriter(tx).update_person({"id": ZEUS, "name": "Zeus", "bio": None}, partial=False)

        assert tx.calls[0].params == {"id": ZEUS, "props": {"name": "Zeus", "id": ZEUS}}
        assert "SET p = $props" in tx.calls[0].cypher

    @pytest.mark.asyncio
    async def test_full_replace_needs_a_name(self):
        with pytest.raises(ValidationFailure):
            await PersonWriter(FakeTransaction()).update_person({"id": ZEUS, "bio": "x"}, partial=False)

    @pytest.mark.asyncio
    async def test_missing_id(self):
        tx = FakeTransaction()

        with pytest.raises(MissingId):
            await PersonWriter(tx).update_person({"bio": "x"})
        assert tx.calls == []

    @pytest.mark.asyncio
    async def test_unknown_person(self):
        with pytest.raises(NotFound):
            await PersonWriter(FakeTransaction([])).update_person({"id": ZEUS, "bio": "x"})

    @pytest.mark.asyncio
    async def test_duplicate_rows_are_ambiguous(self):
        node = {"node": {"id": ZEUS, "name": "Zeus"}}

        with pytest.raises(AmbiguousMatch):
            await PersonWriter(FakeTransaction([node, node])).update_person({"id": ZEUS, "bio": "x"})


class TestRelations:
    @pytest.mark.asyncio
    async def test_add_parent_relation(self):
        tx = FakeTransaction(PAIR)

        rel = await PersonWriter(tx).add_relation(ZEUS, ARES, "parent")

        assert rel == ParentRelationship(parent=ZEUS, child=ARES)
        assert "MERGE (f)-[r:PARENT]->(t)" in tx.calls[0].cypher
        assert tx.calls[0].params == {"fid": ZEUS, "tid": ARES}

    @pytest.mark.asyncio
    async def test_self_relation_rejected(self):
        tx = FakeTransaction()

        with pytest.raises(InvalidArgument):
            await PersonWriter(tx).add_relation(ZEUS, ZEUS, RelType.PARENT)
        assert tx.calls == []

    @pytest.mark.asyncio
    async def test_sibling_relations_cannot_be_created(self):
        with pytest.raises(InvalidArgument):
            await PersonWriter(FakeTransaction()).add_relation(ZEUS, HERA, RelType.SIBLING)

    @pytest.mark.asyncio
    async def test_missing_participant(self):
        with pytest.raises(MissingParticipant):
            await PersonWriter(FakeTransaction([])).add_relation(ZEUS, ARES, RelType.PARENT)

    @pytest.mark.asyncio
    async def test_duplicate_people_are_ambiguous(self):
        rows = [{"f_el": "el:1", "t_el": "el:2"}, {"f_el": "el:9", "t_el": "el:2"}]

        with pytest.raises(AmbiguousMatch):
            await PersonWriter(FakeTransaction(rows)).add_relation(ZEUS, ARES, RelType.PARENT)

    @pytest.mark.asyncio
    async def test_partner_relation_created_once(self):
        tx = FakeTransaction(
            FakeResult(PAIR, relationships_created=1),
            FakeResult(PAIR, relationships_created=0),
        )
        writer = PersonWriter(tx)

        first = await writer.add_partner_relation(ZEUS, HERA)
        second = await writer.add_partner_relation(ZEUS, HERA)

        assert first == PartnerRelationship(partners=(ZEUS, HERA))
        assert second is None
        assert all("MERGE (a)-[r:PARTNER]-(b)" in c.cypher for c in tx.calls)

    @pytest.mark.asyncio
    async def test_add_relation_routes_partner_through_merge(self):
        tx = FakeTransaction(FakeResult(PAIR, relationships_created=0))

        rel = await PersonWriter(tx).add_relation(ZEUS, HERA, "PARTNER")

        assert rel == PartnerRelationship(partners=(ZEUS, HERA))
        assert "MERGE (a)-[r:PARTNER]-(b)" in tx.calls[0].cypher

    @pytest.mark.asyncio
    async def test_del_relation_directed_and_untyped(self):
        tx = FakeTransaction([{**PAIR[0], "removed": 1}], [{**PAIR[0], "removed": 2}])
        writer = PersonWriter(tx)

        assert await writer.del_relation(ZEUS, ARES, RelType.PARENT) == 1
        assert await writer.del_relation(ZEUS, HERA) == 2
        assert "(f)-[r:PARENT]->(t)" in tx.calls[0].cypher
        assert "(f)-[r:PARENT|PARTNER|SIBLING]-(t)" in tx.calls[1].cypher

    @pytest.mark.asyncio
    async def test_del_partner_relation(self):
        tx = FakeTransaction([{**PAIR[0], "removed": 1}])

        assert await PersonWriter(tx).del_partner_relation(ZEUS, HERA) == 1
        assert "(f)-[r:PARTNER]-(t)" in tx.calls[0].cypher

    @pytest.mark.asyncio
    async def test_del_partner_relation_with_unknown_person(self):
        with pytest.raises(MissingParticipant):
            await PersonWriter(FakeTransaction([])).del_partner_relation(ZEUS, "6f1b5c2e-0d51-4c39-9f0e-1a1f2d3b4fff")


class TestApplyRelativesChange:
    @pytest.mark.asyncio
    async def test_removals_run_before_additions(self):
        tx = FakeTransaction([{**PAIR[0], "removed": 1}], PAIR)
        change = {
            RelativeKind.PARENT: RelativesTypeChange(added=[ZEUS], removed=[]),
            RelativeKind.CHILD: RelativesTypeChange(added=[], removed=[APHRODITE]),
        }

        counts = await PersonWriter(tx).apply_relatives_change(ARES, change)

        assert counts == {"added": 1, "removed": 1}
        assert "DELETE r" in tx.calls[0].cypher
        assert tx.calls[0].params == {"fid": ARES, "tid": APHRODITE}
        assert "MERGE" in tx.calls[1].cypher
        assert tx.calls[1].params == {"fid": ZEUS, "tid": ARES}


class TestPhotos:
    @pytest.mark.asyncio
    async def test_add_photos(self):
        tx = FakeTransaction([{"node": {"id": "ph1", "hash": "abc", "filename": "f1", "created": 1700000000000}}])

        photos = await PersonWriter(tx).add_photos(ZEUS, [PhotoItem(hash="abc", filename="f1")])

        assert [p.id for p in photos] == ["ph1"]
        assert tx.calls[0].params == {"pid": ZEUS, "items": [{"hash": "abc", "filename": "f1"}]}

    @pytest.mark.asyncio
    async def test_add_photos_to_unknown_person(self):
        with pytest.raises(MissingParticipant):
            await PersonWriter(FakeTransaction([])).add_photos(ZEUS, [{"hash": "abc", "filename": "f1"}])

    @pytest.mark.asyncio
    async def test_delete_photos_reports_orphans(self):
        tx = FakeTransaction([
            {"id": "ph1", "filename": "f1", "orphaned": True},
            {"id": "ph2", "filename": "f2", "orphaned": False},
        ])

        removed = await PersonWriter(tx).delete_photos(ZEUS, ["ph1", "ph2"])

        assert removed == [RemovedPhoto("ph1", "f1", True), RemovedPhoto("ph2", "f2", False)]
        assert tx.calls[0].params == {"pid": ZEUS, "all": False, "ids": ["ph1", "ph2"]}
        # Unlink, count and delete are one statement.
        assert len(tx.calls) == 1
        assert "count(rest)" in tx.calls[0].cypher

    @pytest.mark.asyncio
    async def test_delete_all_photos(self):
        tx = FakeTransaction([])

        await PersonWriter(tx).delete_photos(ZEUS, ALL_PHOTOS)

        assert tx.calls[0].params == {"pid": ZEUS, "all": True, "ids": []}

    @pytest.mark.asyncio
    async def test_delete_photos_validates_ids(self):
        tx = FakeTransaction()
        writer = PersonWriter(tx)

        with pytest.raises(InvalidArgument):
            await writer.delete_photos(ZEUS, "ph1")
        assert await writer.delete_photos(ZEUS, []) == []
        assert tx.calls == []


class TestDeletePerson:
    @pytest.mark.asyncio
    async def test_removes_photos_then_person(self):
        tx = FakeTransaction(
            [{"id": "ph1", "filename": "f1", "orphaned": True}],
            [{"snapshot": {"id": ZEUS, "name": "Zeus", "portrait": "p.jpg"}}],
        )

        deleted = await PersonWriter(tx).delete_person(ZEUS)

        assert deleted.person.portrait == "p.jpg"
        assert deleted.photos == [RemovedPhoto("ph1", "f1", True)]
        assert tx.calls[0].params["all"] is True
        assert "DETACH DELETE p" in tx.calls[1].cypher

    @pytest.mark.asyncio
    async def test_unknown_person_returns_none(self):
        assert await PersonWriter(FakeTransaction([], [])).delete_person(ZEUS) is None


class TestDeletePeopleByName:
    @pytest.mark.asyncio
    async def test_reports_orphaned_photos_and_portraits(self):
        tx = FakeTransaction([{
            "removed": 2,
            "portraits": ["zeus.jpg"],
            "photos": [
                {"id": "ph1", "filename": "f1", "orphaned": True},
                {"id": "ph2", "filename": "f2", "orphaned": False},
            ],
        }])

        deleted = await PersonWriter(tx).delete_people_by_name(["Zeus", "Hera"])

        assert deleted.count == 2
        assert deleted.photos == [RemovedPhoto("ph1", "f1", True), RemovedPhoto("ph2", "f2", False)]
        assert deleted.orphaned_files() == ["f1", "zeus.jpg"]
        assert tx.calls[0].params == {"names": ["Zeus", "Hera"]}

    @pytest.mark.asyncio
    async def test_photos_are_unlinked_and_counted_in_one_statement(self):
        tx = FakeTransaction([{"removed": 0, "portraits": [], "photos": []}])

        deleted = await PersonWriter(tx).delete_people_by_name(["Nobody"])

        assert deleted == DeletedPeople(0, [], [])
        assert len(tx.calls) == 1
        cypher = tx.calls[0].cypher
        assert "IN_PHOTO]->(ph:Photo)" in cypher
        assert "count(rest)" in cypher
        assert "DETACH DELETE ph" in cypher
