"""MCP tools for user administration (all need the "admin" permission)."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from ..errors import FamtreeError, InvalidArgument, NotFound
from ..mcp_instance import config, tool, userdb
from ..models import Permission
from .utils import authorize, log_mcp_tool, tool_error, user_dict


def _parse_permissions(values: Optional[List[str]], what: str) -> List[Permission]:
    try:
        return [Permission(v) for v in values or []]
    except ValueError:
        raise InvalidArgument(f"{what} contains an unknown permission") from None


@tool()
async def search_users(session_token: str, name: str, limit: int = 50) -> Dict[str, Any]:
    """Find users whose username contains `name` (case-insensitive).

    Returns:
        {"count": <int>, "results": [{"id", "username", "permissions", ...}, ...]}
    """
    start_time = time.time()
    log_mcp_tool("search_users", "called", {"name": name, "limit": limit})

    try:
        await authorize(session_token, Permission.ADMIN)
        users = await userdb.read(lambda act: act.search_users(name, limit=limit))
    except FamtreeError as e:
        return tool_error("search_users", e, start_time)

    log_mcp_tool("search_users", "completed", {
        "name": name,
        "result_count": len(users),
    }, duration=time.time() - start_time)

    return {
        "count": len(users),
        "results": [user_dict(u, config.admin_usernames) for u in users],
    }


@tool()
async def update_user_permissions(
    session_token: str,
    user_id: str,
    add: Optional[List[str]] = None,
    remove: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Grant and revoke permissions of a user.

    Args:
        session_token: Session of the calling user (needs "admin").
        user_id: User to change.
        add: Permissions to grant ("view", "edit", "admin").
        remove: Permissions to revoke.

    Returns:
        {"user": {"id", "username", "permissions", ...}}
    """
    start_time = time.time()
    log_mcp_tool("update_user_permissions", "called", {
        "user_id": user_id,
        "add": add,
        "remove": remove,
    })

    try:
        await authorize(session_token, Permission.ADMIN)
        to_add = _parse_permissions(add, "add")
        to_remove = _parse_permissions(remove, "remove")
        user = await userdb.write(lambda act: act.update_permissions(user_id, to_add, to_remove))
    except FamtreeError as e:
        return tool_error("update_user_permissions", e, start_time)

    log_mcp_tool("update_user_permissions", "completed", {
        "user_id": user_id,
        "permissions": [p.value for p in user.permissions],
    }, duration=time.time() - start_time)

    return {"user": user_dict(user, config.admin_usernames)}


@tool()
async def delete_user(session_token: str, user_id: str) -> Dict[str, Any]:
    """Delete a user and its sessions.

    Returns:
        {"result": "deleted"}
    """
    start_time = time.time()
    log_mcp_tool("delete_user", "called", {"user_id": user_id})

    try:
        await authorize(session_token, Permission.ADMIN)
        deleted = await userdb.write(lambda act: act.delete_user(user_id))
        if not deleted:
            raise NotFound(f"user {user_id} not found")
    except FamtreeError as e:
        return tool_error("delete_user", e, start_time)

    log_mcp_tool("delete_user", "completed", {"user_id": user_id}, duration=time.time() - start_time)
    return {"result": "deleted"}
