"""
Uploaded file access. Storage itself is out of scope here; these routes only
decide who may fetch or remove a file already present in ``upload_dir``.
"""
import logging
import os
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from app.config import get_settings
from app.errors import NotFoundError, ValidationError
from app.models.common import envelope
from app.services.access_control import Action, Actor, FileResource, require
from app.services.auth_service import get_current_actor
from app.services.guards import audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["Uploads"])
settings = get_settings()


def resolve_upload_path(filename: str) -> str:
    """Map a bare file name to its path under ``upload_dir``."""
    if not filename or filename != os.path.basename(filename) or filename.startswith("."):
        raise ValidationError("Invalid file name")

    upload_dir = os.path.abspath(settings.upload_dir)
    path = os.path.abspath(os.path.join(upload_dir, filename))
    if os.path.dirname(path) != upload_dir:
        raise ValidationError("Invalid file name")
    if not os.path.isfile(path):
        raise NotFoundError("File not found")
    return path


@router.get("/file/{filename}", dependencies=[Depends(audit("view_file"))])
def get_file(filename: str, actor: Actor = Depends(get_current_actor)):
    require(actor, Action.READ, FileResource(filename))
    return FileResponse(resolve_upload_path(filename))


@router.delete("/file/{filename}", dependencies=[Depends(audit("delete_file"))])
def delete_file(filename: str, actor: Actor = Depends(get_current_actor)):
    """Remove an uploaded file (doctor or admin)."""
    require(actor, Action.DELETE, FileResource(filename), "Not authorized to delete files")
    path = resolve_upload_path(filename)
    os.remove(path)
    logger.info(f"File {filename} deleted by {actor.id}")
    return envelope("File deleted successfully")
