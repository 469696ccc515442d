from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool

from chatline.config import Settings
from chatline.services.upload_service import UploadService
from chatline.utils.dependencies import get_app_settings, get_current_user


router = APIRouter(prefix="/uploads", tags=["uploads"])


def get_upload_service(settings: Settings = Depends(get_app_settings)) -> UploadService:
    return UploadService(settings.media_dir, settings.max_upload_bytes)


@router.post("")
async def upload_file(file: UploadFile = File(...), current_user: dict = Depends(get_current_user), service: UploadService = Depends(get_upload_service)):
    return await run_in_threadpool(service.save, file.file, file.filename or "file", file.content_type or "")
