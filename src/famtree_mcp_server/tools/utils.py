"""Utility functions for MCP tools."""
from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Any, Dict, Iterable, Optional

from pydantic import BaseModel

from ..errors import FamtreeError, InvalidArgument
from ..mcp_instance import config, userdb
from ..models import Permission, User
from ..permissions import require_permission

mcp_tools_logger = logging.getLogger('famtree.mcp.tools')


def log_mcp_tool(function_name: str, phase: str, extra: Dict[str, Any], duration: Optional[float] = None) -> None:
    """Helper function to log MCP tool calls and completions.

    Args:
        function_name: Name of the MCP tool function.
        phase: "called", "completed" or "failed".
        extra: Dictionary of additional data to log.
        duration: Optional duration in seconds (for "completed"/"failed").
    """
    if duration is not None:
        extra["duration_seconds"] = duration
    mcp_tools_logger.info(
        f"{function_name} {phase}",
        extra=extra
    )


def tool_error(function_name: str, error: FamtreeError, start_time: float) -> Dict[str, Any]:
    """Log a failed tool call and build its structured error result."""
    log_mcp_tool(function_name, "failed", {
        "error_code": error.code,
    }, duration=time.time() - start_time)
    return {"error": error.to_dict()}


def dump(model: BaseModel) -> Dict[str, Any]:
    """JSON-ready dict of a model using graph (camelCase) field names."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def user_dict(user: User, admins: Iterable[str] = ()) -> Dict[str, Any]:
    """Public user fields; configured admins are reported with ``admin``."""
    data = user.public_dict()
    if user.username.lower() in {a.lower() for a in admins} and Permission.ADMIN.value not in data["permissions"]:
        data["permissions"].append(Permission.ADMIN.value)
    return data


def decode_base64(content: str) -> bytes:
    if not isinstance(content, str) or not content.strip():
        raise InvalidArgument("file content is required")
    try:
        return base64.b64decode(content.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidArgument("file content must be base64 encoded") from None


async def authorize(session_token: Optional[str], permission: Permission) -> User:
    """Resolve ``session_token`` to its user and check ``permission``.

    Runs before any lookup of the requested data, so a caller without
    access never learns whether a record exists.
    """
    user = None
    if session_token:
        user = await userdb.read(lambda act: act.get_session_user(session_token))
    return require_permission(user, permission, config.admin_usernames)
