from typing import Callable, Optional

from pipeline.io_types import ImageInput, ItemType, ModelMode, ServiceOptions, TryOnResult
from pipeline.pipeline import TryOnPipeline
from backend.app.config import settings
from .metrics import tryons_completed, tryons_failed, tryons_requested

# One pipeline per process; it holds configuration only, never request state
_PIPELINE: Optional[TryOnPipeline] = None


def get_pipeline() -> TryOnPipeline:
    global _PIPELINE
    if _PIPELINE is None:
        _PIPELINE = TryOnPipeline.from_settings(settings)
    return _PIPELINE


def run_analysis(pipe: TryOnPipeline, item: ImageInput, mode: ModelMode, api_key: Optional[str]) -> ItemType:
    return pipe.analyze_item(item, ServiceOptions(model_mode=mode, custom_api_key=api_key))


def run_try_on(
    pipe: TryOnPipeline,
    person: ImageInput,
    item: ImageInput,
    item_type: ItemType,
    mode: ModelMode,
    api_key: Optional[str],
    on_status: Optional[Callable[[str], None]] = None,
) -> tuple[TryOnResult, list[str]]:
    status_log: list[str] = []

    def record(status: str) -> None:
        status_log.append(status)
        if on_status:
            on_status(status)

    options = ServiceOptions(model_mode=mode, custom_api_key=api_key, on_status_update=record)
    tryons_requested.inc()
    try:
        result = pipe.generate_try_on(person, item, item_type, options)
    except Exception:
        tryons_failed.inc()
        raise
    tryons_completed.inc()
    return result, status_log


def run_refine(
    pipe: TryOnPipeline,
    image: str,
    instruction: str,
    mode: ModelMode,
    api_key: Optional[str],
) -> tuple[str, list[str]]:
    status_log: list[str] = []
    options = ServiceOptions(model_mode=mode, custom_api_key=api_key, on_status_update=status_log.append)
    refined = pipe.refine_image(image, instruction, options)
    return refined, status_log
