"""Tests for the MCP tool layer: permission gating, error mapping, file cleanup."""
from __future__ import annotations

import base64
from types import SimpleNamespace

import pytest

from conftest import ARES, HERA, ZEUS
from famtree_mcp_server.errors import MissingParticipant, NotFound
from famtree_mcp_server.media import MediaStore
from famtree_mcp_server.models import Person, Photo, User
from famtree_mcp_server.neo4j import DeletedPerson, RemovedPhoto
from famtree_mcp_server.relationships import ParentRelationship, PartnerRelationship
from famtree_mcp_server.tools import person as person_tools
from famtree_mcp_server.tools import photos as photo_tools
from famtree_mcp_server.tools import relatives as relatives_tools
from famtree_mcp_server.tools import users as user_tools
from famtree_mcp_server.tools import utils as tool_utils


class FakeDB:
    """``ActionsDB`` stand-in handing the same actions object to every callback."""

    def __init__(self, actions):
        self.actions = actions
        self.reads = 0
        self.writes = 0

    async def read(self, fn):
        self.reads += 1
        return await fn(self.actions)

    async def write(self, fn):
        self.writes += 1
        return await fn(self.actions)


class FakeUserActions:
    def __init__(self, users):
        self.users = users

    async def get_session_user(self, session_id):
        return self.users.get(session_id)


class FakePersonActions:
    def __init__(self, people=(), relationships=(), partner=None):
        self.people = {p.id: p for p in people}
        self.relationships = list(relationships)
        self.partner = partner
        self.calls = []

    async def find_by_id(self, id):
        self.calls.append(("find_by_id", id))
        return self.people.get(id)

    async def find_by_name(self, name, exact=False, limit=250):
        self.calls.append(("find_by_name", name, exact, limit))
        return [p for p in self.people.values() if name.lower() in p.name.lower()]

    async def find_main_partner(self, person_id):
        return self.partner

    async def find_family(self, focus_ids, hops):
        self.calls.append(("find_family", list(focus_ids), hops))
        return list(self.people.values()), self.relationships

    async def find_person_with_relations(self, person_id, hops):
        return await self.find_family([person_id], hops)

    async def apply_relatives_change(self, person_id, change):
        self.calls.append(("apply_relatives_change", person_id))
        return {"added": 1, "removed": 0}

    async def delete_person(self, person_id):
        person = self.people.pop(person_id, None)
        if person is None:
            return None
        return DeletedPerson(person, [RemovedPhoto("ph1", "orphan-file", True), RemovedPhoto("ph2", "shared-file", False)])

    async def delete_photos(self, person_id, photo_ids):
        return [RemovedPhoto("ph1", "orphan-file", True), RemovedPhoto("ph2", "shared-file", False)]

    async def add_photos(self, person_id, items):
        if person_id not in self.people:
            raise MissingParticipant(f"person {person_id} not found")
        return [Photo(id="ph9", hash=i.hash, filename=i.filename, created=0) for i in items]


VIEWER = User(id="u1", username="viewer", passwordHash="x", permissions=["view"])
EDITOR = User(id="u2", username="editor", passwordHash="x", permissions=["view", "edit"])
ADMIN = User(id="u3", username="root", passwordHash="x", permissions=["admin"])


@pytest.fixture
def sessions(monkeypatch):
    db = FakeDB(FakeUserActions({"viewer-token": VIEWER, "editor-token": EDITOR, "admin-token": ADMIN}))
    monkeypatch.setattr(tool_utils, "userdb", db)
    return db


@pytest.fixture
def gods(monkeypatch):
    actions = FakePersonActions(
        people=[Person(id=ZEUS, name="Zeus"), Person(id=HERA, name="Hera"), Person(id=ARES, name="Ares")],
        relationships=[
            ParentRelationship(parent=ZEUS, child=ARES),
            ParentRelationship(parent=HERA, child=ARES),
            PartnerRelationship(partners=(ZEUS, HERA)),
        ],
        partner=Person(id=HERA, name="Hera"),
    )
    db = FakeDB(actions)
    for module in (person_tools, photo_tools, relatives_tools):
        monkeypatch.setattr(module, "persondb", db)
    return db


@pytest.fixture
def media(monkeypatch, tmp_path):
    store = MediaStore(tmp_path, ["image/png"])
    monkeypatch.setattr(person_tools, "media_store", store)
    monkeypatch.setattr(photo_tools, "media_store", store)
    return store


class TestPermissionGating:
    @pytest.mark.asyncio
    async def test_missing_session_is_rejected_before_lookup(self, sessions, gods):
        result = await person_tools.get_person("", ZEUS)

        assert result == {"error": {"code": "unauthenticated", "message": "authentication required"}}
        assert gods.reads == 0

    @pytest.mark.asyncio
    async def test_denied_looks_the_same_for_existing_and_missing_people(self, sessions, gods):
        existing = await person_tools.delete_person("viewer-token", ZEUS)
        missing = await person_tools.delete_person("viewer-token", "no-such-person")

        assert existing == missing
        assert existing["error"]["code"] == "permission_denied"
        assert gods.writes == 0

    @pytest.mark.asyncio
    async def test_unknown_session(self, sessions, gods):
        result = await person_tools.query_person("stolen-token", name="zeus")
        assert result["error"]["code"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_configured_admin(self, sessions, monkeypatch):
        monkeypatch.setattr(tool_utils, "config", SimpleNamespace(admin_usernames=["viewer"]))
        user = await tool_utils.authorize("viewer-token", "admin")
        assert user is VIEWER


class TestPersonTools:
    @pytest.mark.asyncio
    async def test_query_person_by_name(self, sessions, gods):
        result = await person_tools.query_person("viewer-token", name="her")

        assert result["count"] == 1
        assert result["results"] == [{"id": HERA, "name": "Hera"}]

    @pytest.mark.asyncio
    async def test_query_person_needs_id_or_name(self, sessions, gods):
        result = await person_tools.query_person("viewer-token")
        assert result["error"]["code"] == "invalid_argument"

    @pytest.mark.asyncio
    async def test_get_missing_person(self, sessions, gods):
        result = await person_tools.get_person("viewer-token", "no-such-person")
        assert result["error"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_add_person_rejects_id_before_writing(self, sessions, gods):
        result = await person_tools.add_person("editor-token", {"id": ZEUS, "name": "Zeus"})

        assert result["error"]["code"] == "invalid_payload"
        assert gods.writes == 0

    @pytest.mark.asyncio
    async def test_delete_person_removes_orphaned_files(self, sessions, gods, media):
        await media.save("orphan-file", b"a")
        await media.save("shared-file", b"b")

        result = await person_tools.delete_person("editor-token", ZEUS)

        assert result["person"]["name"] == "Zeus"
        assert result["photos_removed"] == 2
        assert result["files_removed"] == 1
        assert not (media.root / "orphan-file").exists()
        assert (media.root / "shared-file").exists()

    @pytest.mark.asyncio
    async def test_delete_unknown_person(self, sessions, gods, media):
        result = await person_tools.delete_person("editor-token", "no-such-person")
        assert result["error"]["code"] == "not_found"


class TestRelativesTools:
    @pytest.mark.asyncio
    async def test_family_of_a_couple(self, sessions, gods):
        result = await relatives_tools.get_family("viewer-token", ZEUS, hops=1)

        assert result["focusIds"] == [ZEUS, HERA]
        assert result["sharedChildren"] == [ARES]
        assert ("find_family", [ZEUS, HERA], 1) in gods.actions.calls

    @pytest.mark.asyncio
    async def test_family_of_a_missing_person(self, sessions, gods):
        result = await relatives_tools.get_family("viewer-token", "no-such-person")
        assert result["error"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_relations(self, sessions, gods):
        result = await relatives_tools.get_person_relations("viewer-token", ZEUS, hops=1)

        assert result["count"] == 3
        assert {"relType": "partner", "participants": {"partner": [ZEUS, HERA]}} in result["relationships"]

    @pytest.mark.asyncio
    async def test_self_relation_rejected_before_writing(self, sessions, gods):
        result = await relatives_tools.update_relatives(
            "editor-token", ARES, {"parent": {"added": [ARES], "removed": []}}
        )

        assert result["error"]["code"] == "circular_relation"
        assert gods.writes == 0

    @pytest.mark.asyncio
    async def test_update_relatives(self, sessions, gods):
        result = await relatives_tools.update_relatives(
            "editor-token", ARES, {"parent": {"added": [ZEUS], "removed": []}}
        )

        assert result == {"person_id": ARES, "added": 1, "removed": 0}


class TestPhotoTools:
    @pytest.mark.asyncio
    async def test_upload_photo(self, sessions, gods, media):
        content = base64.b64encode(b"png bytes").decode()

        result = await photo_tools.upload_photo("editor-token", ZEUS, content, "image/png")

        filename = result["photo"]["filename"]
        assert filename.startswith(f"{ZEUS}|")
        assert await media.read(filename) == b"png bytes"

    @pytest.mark.asyncio
    async def test_upload_for_unknown_person_leaves_no_file(self, sessions, gods, media):
        content = base64.b64encode(b"png bytes").decode()

        result = await photo_tools.upload_photo("editor-token", "nobody", content, "image/png")

        assert result["error"]["code"] == "missing_participant"
        assert list(media.root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_upload_rejects_mime_type(self, sessions, gods, media):
        result = await photo_tools.upload_photo("editor-token", ZEUS, "eA==", "application/pdf")
        assert result["error"]["code"] == "invalid_argument"

    @pytest.mark.asyncio
    async def test_delete_photos_only_removes_orphaned_files(self, sessions, gods, media):
        await media.save("orphan-file", b"a")
        await media.save("shared-file", b"b")

        result = await photo_tools.delete_photos("editor-token", ZEUS, "all")

        assert result["count"] == 2
        assert result["files_removed"] == 1
        assert (media.root / "shared-file").exists()


class TestUserTools:
    @pytest.mark.asyncio
    async def test_editor_cannot_manage_users(self, sessions):
        result = await user_tools.delete_user("editor-token", "u1")
        assert result["error"]["code"] == "permission_denied"

    @pytest.mark.asyncio
    async def test_unknown_permission(self, sessions):
        result = await user_tools.update_user_permissions("admin-token", "u1", add=["superuser"])
        assert result["error"]["code"] == "invalid_argument"

    @pytest.mark.asyncio
    async def test_delete_missing_user(self, sessions, monkeypatch):
        async def delete_user(user_id):
            return False

        monkeypatch.setattr(user_tools, "userdb", FakeDB(SimpleNamespace(delete_user=delete_user)))

        result = await user_tools.delete_user("admin-token", "u1")

        assert result["error"] == NotFound("user u1 not found").to_dict()
