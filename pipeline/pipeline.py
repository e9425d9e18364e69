import logging
from typing import Optional

from backend.app.metrics import analyses, generation_attempts, refinements, review_rejections
from providers.base import ModelProvider, ProviderFactory
from providers.gemini import GeminiProvider
from providers.local_stub import LocalStubProvider

from .errors import GenerationError
from .image_utils import decode_data_url, get_mime_type
from .io_types import Attempt, ImageInput, ItemType, ModelMode, ServiceOptions, TryOnResult
from .prompts import (
    ANALYZE_ITEM_PROMPT,
    DESCRIBE_ITEM_PROMPT,
    DESCRIPTION_FALLBACK_EMPTY,
    DESCRIPTION_FALLBACK_ERROR,
    refine_prompt,
    relaxed_prompt,
    strict_prompt,
)
from .qa import validate_result


logger = logging.getLogger(__name__)

DEFAULT_CFG = {
    "backend": "gemini",
    "analysis_models": {"pro": "gemini-3-pro-preview", "flash": "gemini-2.5-flash"},
    "text_model": "gemini-2.5-flash",
    "image_models": {"pro": "gemini-3-pro-image-preview", "flash": "gemini-2.5-flash-image"},
    "image_fallback_model": "gemini-2.5-flash-image",
    "aspect_ratio": "3:4",
    "pro_image_size": "1K",
}


def parse_analysis_response(text: Optional[str]) -> ItemType:
    lower = (text or "").strip().lower()
    if "clothing" in lower:
        return "clothing"
    if "accessory" in lower:
        return "accessory"
    return "clothing"


def effective_item_type(detected: Optional[str], override: Optional[str] = None) -> ItemType:
    return override or detected or "clothing"  # type: ignore[return-value]


class TryOnPipeline:
    def __init__(self, cfg: Optional[dict] = None, provider_factory: Optional[ProviderFactory] = None):
        self.cfg = {**DEFAULT_CFG, **(cfg or {})}
        if provider_factory is None:
            provider_factory = LocalStubProvider if self.cfg["backend"] == "local" else GeminiProvider
        self.provider_factory = provider_factory

    @classmethod
    def from_settings(cls, settings, overrides: Optional[dict] = None, provider_factory: Optional[ProviderFactory] = None) -> "TryOnPipeline":
        # Settings is the backend.app.config.settings instance
        d = DEFAULT_CFG
        cfg = {
            "backend": settings.get_str("backend", d["backend"]).lower(),
            "analysis_models": {
                "pro": settings.get_str("models.analysis.pro", d["analysis_models"]["pro"]),
                "flash": settings.get_str("models.analysis.flash", d["analysis_models"]["flash"]),
            },
            "text_model": settings.get_str("models.text", d["text_model"]),
            "image_models": {
                "pro": settings.get_str("models.image.pro", d["image_models"]["pro"]),
                "flash": settings.get_str("models.image.flash", d["image_models"]["flash"]),
            },
            "image_fallback_model": settings.get_str("models.image_fallback", d["image_fallback_model"]),
            "aspect_ratio": settings.get_str("image.aspect_ratio", d["aspect_ratio"]),
            "pro_image_size": settings.get_str("image.pro_size", d["pro_image_size"]),
        }
        if overrides:
            cfg.update(overrides)
        return cls(cfg, provider_factory=provider_factory)

    # Model selection -----------------------------------------------------------

    def analysis_model(self, mode: ModelMode) -> str:
        return self.cfg["analysis_models"]["pro" if mode == "pro" else "flash"]

    def image_model(self, mode: ModelMode) -> str:
        return self.cfg["image_models"]["pro" if mode == "pro" else "flash"]

    def image_config(self, mode: ModelMode) -> dict:
        if mode == "pro":
            return {"aspect_ratio": self.cfg["aspect_ratio"], "image_size": self.cfg["pro_image_size"]}
        return {"aspect_ratio": self.cfg["aspect_ratio"]}

    def fallback_image_config(self) -> dict:
        return {"aspect_ratio": self.cfg["aspect_ratio"]}

    # Helpers --------------------------------------------------------------------

    def _provider(self, options: ServiceOptions) -> ModelProvider:
        return self.provider_factory(options.custom_api_key)

    @staticmethod
    def _status(options: ServiceOptions, status: str) -> None:
        if options.on_status_update:
            options.on_status_update(status)

    # Operations -----------------------------------------------------------------

    def analyze_item(self, item: ImageInput, options: ServiceOptions) -> ItemType:
        provider = self._provider(options)
        parts = [item, ANALYZE_ITEM_PROMPT]
        try:
            item_type = parse_analysis_response(provider.generate_text(self.analysis_model(options.model_mode), parts))
        except Exception as e:  # noqa: BLE001
            if options.model_mode != "pro":
                logger.warning("Item analysis failed, assuming clothing: %s", e)
                item_type = "clothing"
            else:
                logger.warning("Pro analysis failed, falling back to Flash: %s", e)
                try:
                    item_type = parse_analysis_response(provider.generate_text(self.analysis_model("flash"), parts))
                except Exception as e2:  # noqa: BLE001
                    logger.warning("Flash analysis failed, assuming clothing: %s", e2)
                    item_type = "clothing"
        analyses.labels(item_type=item_type).inc()
        return item_type

    def describe_item(self, item: ImageInput, options: ServiceOptions, provider: Optional[ModelProvider] = None) -> str:
        try:
            provider = provider or self._provider(options)
            text = provider.generate_text(self.cfg["text_model"], [item, DESCRIBE_ITEM_PROMPT])
            return (text or "").strip() or DESCRIPTION_FALLBACK_EMPTY
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to generate description, using fallback: %s", e)
            return DESCRIPTION_FALLBACK_ERROR

    def validate_result(self, image: str, options: ServiceOptions, provider: Optional[ModelProvider] = None) -> bool:
        try:
            provider = provider or self._provider(options)
        except Exception as e:  # noqa: BLE001
            logger.warning("Validation check failed, skipping: %s", e)
            return True
        return validate_result(provider, self.cfg["text_model"], image)

    def generate_try_on(
        self,
        person: ImageInput,
        item: ImageInput,
        item_type: ItemType,
        options: ServiceOptions,
    ) -> TryOnResult:
        provider = self._provider(options)

        # Step 1: describe the item for the relaxed prompt
        self._status(options, "Analyzing item details...")
        description = self.describe_item(item, options, provider=provider)
        logger.info("Generated item description: %s", description)

        # Step 2: strict and relaxed prompts over a primary/fallback model ladder
        self._status(options, "Synthesizing try-on...")
        strict = strict_prompt(item_type)
        relaxed = relaxed_prompt(item_type, description)
        mode = options.model_mode
        primary = self.image_model(mode)
        primary_cfg = self.image_config(mode)
        ladder = [
            (primary, "strict", strict, primary_cfg, None),
            (primary, "relaxed", relaxed, primary_cfg, "Refining result (Attempt 2)..."),
        ]
        if mode == "pro":
            ladder.append(
                (self.cfg["image_fallback_model"], "strict", strict, self.fallback_image_config(), "Switching to standard model...")
            )

        image: Optional[str] = None
        last_error: Optional[Exception] = None
        attempts: list[Attempt] = []
        for n, (model, kind, prompt, image_cfg, status) in enumerate(ladder, start=1):
            if status:
                self._status(options, status)
            try:
                image = provider.generate_image(model, [person, item, prompt], image_cfg)
            except Exception as e:  # noqa: BLE001
                logger.warning("Attempt %d (%s prompt on %s) failed: %s", n, kind, model, e)
                generation_attempts.labels(model=model, prompt=kind, outcome="error").inc()
                attempts.append(Attempt(model=model, prompt=kind, error=str(e) or type(e).__name__))
                last_error = e
                continue
            generation_attempts.labels(model=model, prompt=kind, outcome="ok").inc()
            attempts.append(Attempt(model=model, prompt=kind))
            if image:
                break

        if not image:
            raise GenerationError(last_error) from last_error

        # Step 3: advisory review of the output
        self._status(options, "Reviewing result quality...")
        passed = self.validate_result(image, options, provider=provider)
        if not passed:
            logger.warning("Internal review failed: image might not show a person.")
            review_rejections.inc()

        return TryOnResult(
            image=image,
            item_type=item_type,
            item_description=description,
            review_passed=passed,
            attempts=attempts,
        )

    def refine_image(self, image: str, instruction: str, options: ServiceOptions) -> str:
        if not instruction or not instruction.strip():
            raise ValueError("Refinement instruction must not be empty")
        provider = self._provider(options)
        self._status(options, "Applying changes...")

        parts = [
            ImageInput(data=decode_data_url(image), mime_type=get_mime_type(image)),
            refine_prompt(instruction.strip()),
        ]
        mode = options.model_mode
        model = self.image_model(mode)
        try:
            refined = provider.generate_image(model, parts, self.image_config(mode))
        except Exception as e:
            logger.error("Refinement failed on %s: %s", model, e)
            if mode != "pro":
                refinements.labels(outcome="error").inc()
                raise
            self._status(options, "Retrying with Flash...")
            try:
                refined = provider.generate_image(self.cfg["image_fallback_model"], parts, self.fallback_image_config())
            except Exception:
                refinements.labels(outcome="error").inc()
                raise
        refinements.labels(outcome="ok").inc()
        return refined
