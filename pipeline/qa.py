from __future__ import annotations

import logging
from typing import Optional

from providers.base import ModelProvider

from .image_utils import decode_data_url
from .io_types import ImageInput
from .prompts import REVIEW_PROMPT


logger = logging.getLogger(__name__)


def parse_review_answer(text: Optional[str]) -> bool:
    # A missing answer counts as a pass
    if text is None:
        return True
    return "YES" in text.strip().upper()


def validate_result(provider: ModelProvider, model: str, image_data_url: str) -> bool:
    """Ask a text model whether the generated image shows a person wearing clothing.

    The review is advisory: any failure to get an answer is treated as a pass.
    """
    try:
        # Generated images are always reviewed as PNG, whatever the data URL says
        image = ImageInput(data=decode_data_url(image_data_url), mime_type="image/png")
        text = provider.generate_text(model, [image, REVIEW_PROMPT])
        return parse_review_answer(text)
    except Exception as e:  # noqa: BLE001
        logger.warning("Validation check failed, skipping: %s", e)
        return True
