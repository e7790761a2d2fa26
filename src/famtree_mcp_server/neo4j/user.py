"""Neo4j helpers for the identity subgraph (``User`` and ``DatabaseSession`` nodes).

Sessions are issued and refreshed by the auth provider; this module only
resolves a session id to its user and cleans sessions up with their user.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from ..errors import InvalidArgument, NotFound, UsernameTaken
from ..models import DatabaseSession, Permission, User, UserOptions
from .actions import ActionsDB, ReadActions

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _user_from_node(node: Dict[str, Any]) -> User:
    return User.model_validate(node)


class UserReader(ReadActions):
    async def count_users(self) -> int:
        records = await self._data("MATCH (u:User) RETURN count(u) AS uc")
        return int(records[0]["uc"])

    async def get_user_by_id(self, id: str) -> Optional[User]:
        records = await self._data("MATCH (u:User) WHERE u.id = $id RETURN u AS node LIMIT 1", {"id": id})
        return _user_from_node(records[0]["node"]) if records else None

    async def get_user_by_username(self, username: str) -> Optional[User]:
        """Case-insensitive username lookup."""
        cypher = """
        MATCH (u:User)
        WHERE toLower(u.username) = $username
        RETURN u AS node
        LIMIT 1
        """
        records = await self._data(cypher, {"username": username.strip().lower()})
        return _user_from_node(records[0]["node"]) if records else None

    async def search_users(self, name: str, limit: int = 50) -> List[User]:
        name = (name or "").strip().lower()
        if not name:
            raise InvalidArgument("username query must be a non-empty string")
        cypher = """
        MATCH (u:User)
        WHERE toLower(u.username) CONTAINS $name
        RETURN u AS node
        ORDER BY u.username
        LIMIT $limit
        """
        records = await self._data(cypher, {"name": name, "limit": limit})
        return [_user_from_node(r["node"]) for r in records]

    async def get_session_user(self, session_id: str, now_ms: Optional[int] = None) -> Optional[User]:
        """User owning a live session, or ``None`` for unknown/expired sessions."""
        if not session_id:
            return None
        cypher = """
        MATCH (s:DatabaseSession)
        WHERE s.id = $sid
        OPTIONAL MATCH (u:User)
        WHERE u.id = s.userId
        RETURN s AS session, u AS user
        LIMIT 1
        """
        records = await self._data(cypher, {"sid": session_id})
        if not records or records[0]["user"] is None:
            return None
        session = DatabaseSession.model_validate(records[0]["session"])
        if session.is_expired(_now_ms() if now_ms is None else now_ms):
            return None
        return _user_from_node(records[0]["user"])


class UserWriter(UserReader):
    async def add_user(
        self,
        username: str,
        password_hash: str,
        permissions: Iterable[Permission] = (),
        options: Optional[UserOptions] = None,
    ) -> User:
        """Create a user unless the username (case-insensitively) is taken.

        The uniqueness check is part of the creating statement.
        """
        username = username.strip()
        props = {
            "username": username,
            "passwordHash": password_hash,
            "permissions": sorted({Permission(p).value for p in permissions}),
            "options": json.dumps((options or UserOptions()).model_dump(exclude_none=True)),
            "creationTime": _now_ms(),
        }
        cypher = """
        OPTIONAL MATCH (existing:User)
        WHERE toLower(existing.username) = toLower($username)
        WITH count(existing) AS taken
        WHERE taken = 0
        CREATE (u:User $props)
        SET u.id = randomUUID()
        RETURN u AS node
        """
        records = await self._data(cypher, {"username": username, "props": props})
        if not records:
            raise UsernameTaken("username is already in use")
        user = _user_from_node(records[0]["node"])
        logger.info("Added user %s (%s)", user.id, user.username)
        return user

    async def update_permissions(
        self,
        user_id: str,
        add: Iterable[Permission] = (),
        remove: Iterable[Permission] = (),
    ) -> User:
        add_values = {Permission(p).value for p in add}
        remove_values = {Permission(p).value for p in remove}
        if add_values & remove_values:
            raise InvalidArgument("a permission cannot be both added and removed")
        cypher = """
        MATCH (u:User {id: $id})
        SET u.permissions = [p IN coalesce(u.permissions, []) WHERE NOT p IN $remove]
            + [p IN $add WHERE NOT p IN coalesce(u.permissions, [])]
        RETURN u AS node
        """
        params = {"id": user_id, "add": sorted(add_values), "remove": sorted(remove_values)}
        records = await self._data(cypher, params)
        if not records:
            raise NotFound(f"user {user_id} not found")
        return _user_from_node(records[0]["node"])

    async def delete_user(self, user_id: str) -> bool:
        """Delete a user together with its sessions."""
        cypher = """
        MATCH (u:User {id: $id})
        OPTIONAL MATCH (s:DatabaseSession)
        WHERE s.userId = u.id
        WITH u, collect(s) AS sessions
        FOREACH (s IN sessions | DELETE s)
        DETACH DELETE u
        RETURN count(*) AS removed
        """
        records = await self._data(cypher, {"id": user_id})
        return bool(records and records[0]["removed"])


class UserDB(ActionsDB[UserReader, UserWriter]):
    reader_cls = UserReader
    writer_cls = UserWriter
