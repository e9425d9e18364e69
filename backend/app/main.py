import json
import logging
import os
import queue
import threading
from typing import Iterator, Literal, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from prometheus_client import make_asgi_app as make_prom_app

from pipeline.errors import MissingApiKeyError
from pipeline.io_types import ImageInput, ItemType, ModelMode, TryOnResult
from pipeline.pipeline import TryOnPipeline, effective_item_type
from .auth import user_api_key
from .config import settings
from .logging_config import setup_logging
from .models import AnalyzeResponse, AttemptModel, ConfigResponse, RefineRequest, RefineResponse, TryOnResponse
from .pipeline_runner import get_pipeline, run_analysis, run_refine, run_try_on
from .validators import enforce_max_upload_size, read_image_upload

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MODE = settings.get_str("default_mode", "pro").lower()
WEB_DIR = os.environ.get(
    "WEB_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "..", "frontend", "web")
)

app = FastAPI(title="NanoFit API", version="0.1.0")

origins = os.environ.get("CORS_ORIGINS", "*")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount("/metrics", make_prom_app())
if os.path.isdir(WEB_DIR):
    app.mount("/web", StaticFiles(directory=WEB_DIR, html=True), name="web")


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, MissingApiKeyError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    msg = str(e) or "Generation failed."
    if "403" in msg:
        return HTTPException(status_code=403, detail="Permission denied. API Key invalid or expired.")
    return HTTPException(status_code=502, detail=msg)


def _tryon_response(result: TryOnResult, status_log: list[str]) -> TryOnResponse:
    return TryOnResponse(
        image=result.image,
        item_type=result.item_type,
        item_description=result.item_description,
        review_passed=result.review_passed,
        attempts=[AttemptModel(model=a.model, prompt=a.prompt, error=a.error) for a in result.attempts],
        status_log=status_log,
    )


def _tryon_events(
    pipe: TryOnPipeline,
    person: ImageInput,
    item: ImageInput,
    item_type: ItemType,
    mode: ModelMode,
    api_key: Optional[str],
) -> Iterator[str]:
    """
    NDJSON lines for a streamed try-on: one {"status": ...} per pipeline step as it starts,
    then either {"result": <TryOnResponse>} or {"error": ..., "status_code": ...}.
    """
    events: "queue.Queue[Optional[dict]]" = queue.Queue()

    def work() -> None:
        try:
            result, status_log = run_try_on(
                pipe, person, item, item_type, mode, api_key, on_status=lambda s: events.put({"status": s})
            )
            events.put({"result": _tryon_response(result, status_log).model_dump()})
        except Exception as e:
            logger.exception("Generation error")
            err = _http_error(e)
            events.put({"error": err.detail, "status_code": err.status_code})
        finally:
            events.put(None)

    threading.Thread(target=work, name="tryon-stream", daemon=True).start()
    while True:
        event = events.get()
        if event is None:
            return
        yield json.dumps(event) + "\n"


@app.on_event("startup")
def _startup():
    setup_logging()
    logger.info("NanoFit API starting (backend=%s, default_mode=%s)", settings.get("backend", "gemini"), DEFAULT_MODE)


@app.get("/")
def index():
    return RedirectResponse(url="/web/", status_code=307)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/v1/config", response_model=ConfigResponse)
def get_config(pipe: TryOnPipeline = Depends(get_pipeline)):
    cfg = pipe.cfg
    return ConfigResponse(
        backend=cfg["backend"],
        default_mode=DEFAULT_MODE if DEFAULT_MODE in ("pro", "flash") else "pro",
        server_key=bool(settings.get("gemini.api_key") or settings.get("api_key")),
        models={
            "analysis": cfg["analysis_models"],
            "text": cfg["text_model"],
            "image": cfg["image_models"],
            "image_fallback": cfg["image_fallback_model"],
        },
    )


@app.post("/v1/analyze", response_model=AnalyzeResponse)
async def analyze_item(
    item: UploadFile = File(...),
    mode: Literal["pro", "flash"] = Form(DEFAULT_MODE),
    api_key: Optional[str] = Depends(user_api_key),
    pipe: TryOnPipeline = Depends(get_pipeline),
    _lim=Depends(enforce_max_upload_size),
):
    item_img = await read_image_upload(item)
    try:
        item_type = await run_in_threadpool(run_analysis, pipe, item_img, mode, api_key)
    except Exception as e:
        logger.warning("Item analysis failed: %s", e)
        raise _http_error(e)
    return AnalyzeResponse(item_type=item_type)


@app.post("/v1/tryon", response_model=TryOnResponse)
async def create_try_on(
    person: UploadFile = File(...),
    item: UploadFile = File(...),
    mode: Literal["pro", "flash"] = Form(DEFAULT_MODE),
    item_type: Optional[Literal["clothing", "accessory"]] = Form(None),
    detected_type: Optional[Literal["clothing", "accessory"]] = Form(None),
    api_key: Optional[str] = Depends(user_api_key),
    pipe: TryOnPipeline = Depends(get_pipeline),
    _lim=Depends(enforce_max_upload_size),
):
    person_img = await read_image_upload(person)
    item_img = await read_image_upload(item)
    final_type = effective_item_type(detected_type, item_type)
    try:
        result, status_log = await run_in_threadpool(run_try_on, pipe, person_img, item_img, final_type, mode, api_key)
    except Exception as e:
        logger.exception("Generation error")
        raise _http_error(e)
    return _tryon_response(result, status_log)


@app.post("/v1/tryon/stream")
async def stream_try_on(
    person: UploadFile = File(...),
    item: UploadFile = File(...),
    mode: Literal["pro", "flash"] = Form(DEFAULT_MODE),
    item_type: Optional[Literal["clothing", "accessory"]] = Form(None),
    detected_type: Optional[Literal["clothing", "accessory"]] = Form(None),
    api_key: Optional[str] = Depends(user_api_key),
    pipe: TryOnPipeline = Depends(get_pipeline),
    _lim=Depends(enforce_max_upload_size),
):
    person_img = await read_image_upload(person)
    item_img = await read_image_upload(item)
    final_type = effective_item_type(detected_type, item_type)
    events = _tryon_events(pipe, person_img, item_img, final_type, mode, api_key)
    return StreamingResponse(events, media_type="application/x-ndjson")


@app.post("/v1/refine", response_model=RefineResponse)
async def refine_image(
    body: RefineRequest,
    api_key: Optional[str] = Depends(user_api_key),
    pipe: TryOnPipeline = Depends(get_pipeline),
    _lim=Depends(enforce_max_upload_size),
):
    try:
        image, status_log = await run_in_threadpool(run_refine, pipe, body.image, body.instruction, body.mode, api_key)
    except Exception as e:
        logger.exception("Refinement error")
        raise _http_error(e)
    return RefineResponse(image=image, status_log=status_log)
