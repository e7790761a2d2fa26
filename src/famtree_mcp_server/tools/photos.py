"""MCP tools for person photos and portraits.

File bytes go to the media store; the graph keeps only file keys. File
cleanup after a graph change is best-effort: the graph is authoritative
and a leftover file is only logged.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Union

from ..errors import FamtreeError, NotFound
from ..mcp_instance import media_store, persondb, tool
from ..media import content_hash, new_photo_key
from ..models import Permission, PersonUpdate, PhotoItem
from .utils import authorize, decode_base64, dump, log_mcp_tool, tool_error


@tool()
async def get_person_photos(session_token: str, person_id: str) -> Dict[str, Any]:
    """Photos a person is in, oldest first.

    Returns:
        {"count": <int>, "results": [{"id", "hash", "filename", "created"}, ...]}
    """
    start_time = time.time()
    log_mcp_tool("get_person_photos", "called", {"person_id": person_id})

    try:
        await authorize(session_token, Permission.VIEW)
        photos = await persondb.read(lambda act: act.get_person_photos(person_id))
    except FamtreeError as e:
        return tool_error("get_person_photos", e, start_time)

    log_mcp_tool("get_person_photos", "completed", {
        "person_id": person_id,
        "result_count": len(photos),
    }, duration=time.time() - start_time)

    return {
        "count": len(photos),
        "results": [dump(p) for p in photos],
    }


@tool()
async def upload_photo(
    session_token: str,
    person_id: str,
    content_base64: str,
    mime_type: str,
) -> Dict[str, Any]:
    """Store an image and attach it to a person as a new photo.

    Args:
        session_token: Session of the calling user (needs "edit").
        person_id: Person in the photo.
        content_base64: Image bytes, base64 encoded.
        mime_type: MIME type of the image; must be an allowed image type.

    Returns:
        {"photo": {"id", "hash", "filename", "created"}}
    """
    start_time = time.time()
    log_mcp_tool("upload_photo", "called", {"person_id": person_id, "mime_type": mime_type})

    try:
        await authorize(session_token, Permission.EDIT)
        media_store.check_mime_type(mime_type)
        data = decode_base64(content_base64)
        key = new_photo_key(person_id)
        await media_store.save(key, data)
        item = PhotoItem(hash=content_hash(data), filename=key)
        try:
            photos = await persondb.write(lambda act: act.add_photos(person_id, [item]))
        except Exception:
            await media_store.delete(key)
            raise
    except FamtreeError as e:
        return tool_error("upload_photo", e, start_time)

    log_mcp_tool("upload_photo", "completed", {
        "person_id": person_id,
        "photo_id": photos[0].id,
        "size_bytes": len(data),
    }, duration=time.time() - start_time)

    return {"photo": dump(photos[0])}


@tool()
async def delete_photos(
    session_token: str,
    person_id: str,
    photo_ids: Union[List[str], str],
) -> Dict[str, Any]:
    """Remove photos from a person.

    A photo other people are still in only loses this person; a photo
    nobody is in any more is deleted together with its file.

    Args:
        session_token: Session of the calling user (needs "edit").
        person_id: Person to remove the photos from.
        photo_ids: Photo ids, or "all" for every photo of the person.

    Returns:
        {"count": <int>, "results": [{"id", "filename", "orphaned"}, ...],
         "files_removed": <int>}
    """
    start_time = time.time()
    log_mcp_tool("delete_photos", "called", {
        "person_id": person_id,
        "photo_ids": photo_ids,
    })

    try:
        await authorize(session_token, Permission.EDIT)
        removed = await persondb.write(lambda act: act.delete_photos(person_id, photo_ids))
    except FamtreeError as e:
        return tool_error("delete_photos", e, start_time)

    files_removed = await media_store.delete_all(p.filename for p in removed if p.orphaned)

    log_mcp_tool("delete_photos", "completed", {
        "person_id": person_id,
        "result_count": len(removed),
        "files_removed": files_removed,
    }, duration=time.time() - start_time)

    return {
        "count": len(removed),
        "results": [p._asdict() for p in removed],
        "files_removed": files_removed,
    }


@tool()
async def set_portrait(
    session_token: str,
    person_id: str,
    content_base64: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> Dict[str, Any]:
    """Replace (or, without content, remove) the portrait of a person.

    The previous portrait file is deleted afterwards on a best-effort basis.

    Args:
        session_token: Session of the calling user (needs "edit").
        person_id: Person whose portrait changes.
        content_base64: New image bytes, base64 encoded. Omit to remove.
        mime_type: MIME type of the new image.

    Returns:
        {"person": <Person>, "old_portrait_removed": <bool>}
    """
    start_time = time.time()
    log_mcp_tool("set_portrait", "called", {
        "person_id": person_id,
        "mime_type": mime_type,
        "remove": content_base64 is None,
    })

    key: Optional[str] = None

    async def replace(act):
        current = await act.find_by_id(person_id)
        if current is None:
            raise NotFound(f"person {person_id} not found")
        updated = await act.update_person(PersonUpdate(id=person_id, portrait=key))
        return current.portrait, updated

    try:
        await authorize(session_token, Permission.EDIT)
        if content_base64 is not None:
            media_store.check_mime_type(mime_type)
            data = decode_base64(content_base64)
            key = new_photo_key(person_id)
            await media_store.save(key, data)
        try:
            old_key, person = await persondb.write(replace)
        except Exception:
            if key is not None:
                await media_store.delete(key)
            raise
    except FamtreeError as e:
        return tool_error("set_portrait", e, start_time)

    old_removed = bool(old_key) and await media_store.delete(old_key)

    log_mcp_tool("set_portrait", "completed", {
        "person_id": person_id,
        "old_portrait_removed": old_removed,
    }, duration=time.time() - start_time)

    return {"person": dump(person), "old_portrait_removed": old_removed}
