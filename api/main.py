import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from api.storage import NotAnImage, cache_upload, file_url
from transcode.config import LOCAL_CACHE_DIR
from transcode.errors import InvalidSignature
from transcode.job_schema import Record
from transcode.runtime import PHOTO, build_service
from transcode.service import TranscodeService

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Transloadit Attachment Demo")

# Cached uploads must be reachable over HTTP so Transloadit can import them.
# check_dir=False prevents crashes if the directory is missing.
app.mount("/uploads", StaticFiles(directory=str(LOCAL_CACHE_DIR), check_dir=False), name="uploads")
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def get_service() -> TranscodeService:
    return build_service()


def photo_view(record: Record, service: TranscodeService) -> Dict[str, Any]:
    image = record.attachments.get("image")
    processed = isinstance(image, dict) and "original" in image
    return {
        "id": record.id,
        "title": record.data.get("title") or "",
        "processed": processed,
        "url": file_url(image.get("small") if processed else image, service.storages),
        "original_url": file_url(image.get("original") if processed else image, service.storages),
    }


# ---------- API endpoints ----------

@app.post("/photos")
async def create_photo(
    file: UploadFile = File(...),
    title: str = Form(""),
    service: TranscodeService = Depends(get_service),
):
    content = await file.read()
    try:
        cached = cache_upload(service.storages["cache"], content, file.filename, file.content_type)
    except NotAnImage as e:
        raise HTTPException(status_code=400, detail=str(e))

    record = service.records.create(PHOTO, data={"title": title}, attachments={"image": cached.to_data()})
    service.tasks.enqueue("process", {
        "record_class": PHOTO,
        "record_id": record.id,
        "field": "image",
        "processor": "thumbnails",
    })
    return RedirectResponse(url="/", status_code=303)


@app.get("/photos/{photo_id}")
def read_photo(photo_id: str, service: TranscodeService = Depends(get_service)):
    record = service.records.load(PHOTO, photo_id)
    if not record:
        raise HTTPException(status_code=404, detail="Photo not found")
    return record


# Transloadit posts here when an assembly finishes. It only needs an
# acknowledgement; errors are logged, never returned, so it doesn't retry.
@app.post("/webhooks/transloadit")
def transloadit_webhook(
    transloadit: Optional[str] = Form(None),
    signature: Optional[str] = Form(None),
    service: TranscodeService = Depends(get_service),
):
    try:
        service.receive_webhook({"transloadit": transloadit, "signature": signature})
    except InvalidSignature as e:
        logger.warning("rejected Transloadit webhook, possible forgery: %s", e)
    except Exception:
        logger.exception("failed to save Transloadit webhook")
    return Response(content="", status_code=200)


# ---------- Web UI endpoints ----------

@app.get("/", response_class=HTMLResponse)
def home(request: Request, service: TranscodeService = Depends(get_service)):
    photos = [photo_view(record, service) for record in service.records.all(PHOTO)]
    return templates.TemplateResponse(request, "index.html", {"photos": photos})
