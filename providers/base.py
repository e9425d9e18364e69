from __future__ import annotations

from typing import Optional, Protocol, Sequence, Union

from pipeline.io_types import ImageInput


# A request is an ordered list of images and prompt text
Part = Union[ImageInput, str]


class ModelProvider(Protocol):
    def generate_text(self, model: str, parts: Sequence[Part]) -> Optional[str]: ...

    def generate_image(self, model: str, parts: Sequence[Part], image_config: Optional[dict] = None) -> str: ...


class ProviderFactory(Protocol):
    def __call__(self, api_key: Optional[str] = None) -> ModelProvider: ...
