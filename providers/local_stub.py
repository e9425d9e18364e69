from __future__ import annotations

import io
from typing import Optional, Sequence

from PIL import Image

from pipeline.image_utils import file_to_data_url
from pipeline.io_types import ImageInput
from pipeline.prompts import ANALYZE_ITEM_PROMPT, REVIEW_PROMPT

from .base import Part


class LocalStubProvider:
    """Offline stand-in for the hosted model: no key, no network, deterministic answers."""

    description = "a plain garment rendered by the local stub"

    def __init__(self, api_key: Optional[str] = None) -> None:
        # accepted for factory parity; unused
        self.api_key = api_key

    def generate_text(self, model: str, parts: Sequence[Part]) -> Optional[str]:
        prompt = next((p for p in reversed(parts) if isinstance(p, str)), "")
        if prompt == ANALYZE_ITEM_PROMPT:
            return "clothing"
        if prompt == REVIEW_PROMPT:
            return "YES"
        return self.description

    def generate_image(self, model: str, parts: Sequence[Part], image_config: Optional[dict] = None) -> str:
        images = [p for p in parts if isinstance(p, ImageInput)]
        if not images:
            raise ValueError("local stub needs at least one input image")
        base = Image.open(io.BytesIO(images[0].data)).convert("RGB")
        out = base.copy()
        if len(images) > 1:
            # Simple centre overlay of the item on the person
            item = Image.open(io.BytesIO(images[-1].data)).convert("RGBA")
            w, h = out.size
            item.thumbnail((max(1, w // 2), max(1, h // 2)))
            gw, gh = item.size
            out.paste(item, ((w - gw) // 2, (h - gh) // 2), item)
        buf = io.BytesIO()
        out.save(buf, format="PNG")
        return file_to_data_url(buf.getvalue(), "image/png")
