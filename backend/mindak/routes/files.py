"""
Serves stored answer-option images under settings.files_url_prefix.
"""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from mindak.config import settings
from mindak.exceptions import NotFoundError
from mindak.schemas.common import ErrorResponse
from mindak.services.file_service import file_service

router = APIRouter(prefix=settings.files_url_prefix.rstrip("/"), tags=["Files"])


@router.get(
    "/{file_path:path}",
    responses={
        200: {"description": "Image file"},
        400: {"description": "Path outside the storage root", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
    summary="Serve an answer-option image",
)
async def serve_file(file_path: str) -> FileResponse:
    full_path = file_service.resolve(file_path)
    if not full_path.is_file():
        raise NotFoundError(resource="file", resource_id=file_path)
    # Stored names are UUIDs: content never changes under a given URL
    return FileResponse(
        path=str(full_path),
        headers={"Cache-Control": "public, max-age=86400"},
    )
