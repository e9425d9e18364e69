import os

from fastapi import HTTPException, Request, UploadFile

from pipeline.image_utils import sniff_mime_type
from pipeline.io_types import ImageInput


MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", "20"))


def max_upload_bytes() -> int:
    return MAX_UPLOAD_MB * 1024 * 1024


async def enforce_max_upload_size(request: Request) -> None:
    # Requests without a Content-Length are not checked here
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_upload_bytes():
        raise HTTPException(status_code=413, detail=f"Upload exceeds {MAX_UPLOAD_MB} MB")


async def read_image_upload(upload: UploadFile) -> ImageInput:
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail=f"Empty upload: {upload.filename or 'image'}")
    mime = upload.content_type or ""
    if not mime.startswith("image/"):
        # Browsers sometimes send application/octet-stream; trust the bytes instead
        mime = sniff_mime_type(data) or ""
    if not mime.startswith("image/"):
        raise HTTPException(status_code=415, detail=f"Not an image: {upload.filename or 'upload'}")
    return ImageInput(data=data, mime_type=mime)
