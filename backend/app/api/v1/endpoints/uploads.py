"""
Upload API endpoints - multipart intake, file info and deletion
"""
from typing import Dict, List, Optional, Collection, Any

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException

from app.core.config import settings
from app.core.container import get_asset_service
from app.core.exceptions import (
    FileTooLargeError,
    InvalidAssetPathError,
    NoFileUploadedError,
    TooManyFilesError,
)
from app.core.logging_config import logger
from app.services.asset_service import AssetCategory, AssetService, IncomingFile, UploadedAsset

router = APIRouter(prefix="/uploads", tags=["uploads"])

RECORDING_CATEGORIES = (AssetCategory.VIDEO, AssetCategory.AUDIO)


def _request_origin(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _payload(service: AssetService, asset: UploadedAsset, request: Request) -> Dict[str, Any]:
    return asset.to_dict(url=service.resolve_url(asset.relative_path, _request_origin(request)))


def _relative_path(directory: str, filename: str) -> str:
    if AssetCategory.from_directory(directory) is None:
        raise InvalidAssetPathError(f"{directory}/{filename}")
    return f"{directory}/{filename}"


def _check_content_length(request: Request, service: AssetService, field_limits: Dict[str, int]) -> None:
    """Refuse a body that cannot fit the allowed files before reading any of it"""
    declared = request.headers.get("content-length", "")
    if not declared.isdigit():
        return
    max_parts = min(sum(field_limits.values()), service.max_file_count)
    ceiling = service.max_file_size * max_parts + settings.MULTIPART_OVERHEAD
    if int(declared) > ceiling:
        logger.warning(f"[Uploads] Refused {request.url.path}: declared {declared} bytes (ceiling {ceiling})")
        raise FileTooLargeError(service.max_file_size)


async def _store_fields(
    request: Request,
    service: AssetService,
    field_limits: Dict[str, int],
    allowed_categories: Optional[Collection[AssetCategory]] = None,
) -> Dict[str, List[UploadedAsset]]:
    """Parse the multipart body and hand every file part to the intake pipeline"""
    _check_content_length(request, service, field_limits)

    # One part over the limit is parsed so the service reports the count
    try:
        form = await request.form(max_files=service.max_file_count + 1)
    except HTTPException as e:
        if "Too many files" in str(e.detail):
            raise TooManyFilesError(service.max_file_count + 2, service.max_file_count) from e
        raise

    try:
        files = [
            IncomingFile.from_upload(value, field_name=key)
            for key, value in form.multi_items()
            if isinstance(value, UploadFile)
        ]
        if not files:
            raise NoFileUploadedError()
        return await service.accept_fields(files, field_limits, allowed_categories=allowed_categories)
    finally:
        await form.close()


@router.post("/single")
async def upload_single(request: Request, service: AssetService = Depends(get_asset_service)):
    """Upload one file in the 'file' field"""
    grouped = await _store_fields(request, service, {"file": 1})
    asset = grouped["file"][0]
    return {
        "success": True,
        "message": "File uploaded successfully",
        "data": _payload(service, asset, request),
    }


@router.post("/multiple")
async def upload_multiple(request: Request, service: AssetService = Depends(get_asset_service)):
    """Upload up to MAX_FILE_COUNT files in the 'files' field"""
    grouped = await _store_fields(request, service, {"files": service.max_file_count})
    files = [_payload(service, asset, request) for asset in grouped["files"]]
    return {
        "success": True,
        "message": f"{len(files)} file(s) uploaded successfully",
        "data": {"files": files, "count": len(files)},
    }


@router.post("/profile-image")
async def upload_profile_image(request: Request, service: AssetService = Depends(get_asset_service)):
    """Upload a profile picture; only images are admitted"""
    grouped = await _store_fields(request, service, {"file": 1}, allowed_categories=(AssetCategory.IMAGE,))
    return {
        "success": True,
        "message": "Profile image uploaded successfully",
        "data": _payload(service, grouped["file"][0], request),
    }


@router.post("/course-materials")
async def upload_course_materials(request: Request, service: AssetService = Depends(get_asset_service)):
    grouped = await _store_fields(request, service, {"files": service.max_file_count})
    files = [_payload(service, asset, request) for asset in grouped["files"]]
    return {
        "success": True,
        "message": f"{len(files)} course material(s) uploaded successfully",
        "data": {"files": files, "count": len(files)},
    }


@router.post("/class-recording")
async def upload_class_recording(request: Request, service: AssetService = Depends(get_asset_service)):
    """Upload a class recording; only video and audio are admitted"""
    grouped = await _store_fields(request, service, {"file": 1}, allowed_categories=RECORDING_CATEGORIES)
    return {
        "success": True,
        "message": "Class recording uploaded successfully",
        "data": _payload(service, grouped["file"][0], request),
    }


@router.post("/fields")
async def upload_fields(request: Request, service: AssetService = Depends(get_asset_service)):
    """Upload profileImage / courseMaterials / classRecording in one request"""
    grouped = await _store_fields(request, service, service.field_limits)

    data: Dict[str, Any] = {}
    for field_name, assets in grouped.items():
        payloads = [_payload(service, asset, request) for asset in assets]
        data[field_name] = payloads if field_name == "courseMaterials" else payloads[0]

    return {"success": True, "message": "Files uploaded successfully", "data": data}


@router.get("/{directory}/{filename}")
async def get_file_info(directory: str, filename: str, request: Request,
                        service: AssetService = Depends(get_asset_service)):
    info = await service.file_info(_relative_path(directory, filename), _request_origin(request))
    return {"success": True, "data": info}


@router.delete("/{directory}/{filename}")
async def delete_file(directory: str, filename: str,
                      service: AssetService = Depends(get_asset_service)):
    deleted = await service.delete_asset(_relative_path(directory, filename))
    return {
        "success": True,
        "message": "File deleted successfully" if deleted else "File not found, nothing to delete",
        "data": {"deleted": deleted},
    }
