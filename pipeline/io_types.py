from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Literal, Optional

from .image_utils import decode_data_url, file_to_data_url, get_mime_type


ItemType = Literal["clothing", "accessory"]
ModelMode = Literal["pro", "flash"]


@dataclass
class ImageInput:
    data: bytes
    mime_type: str = "image/png"

    @classmethod
    def from_data_url(cls, data_url: str) -> "ImageInput":
        return cls(data=decode_data_url(data_url), mime_type=get_mime_type(data_url))

    def to_data_url(self) -> str:
        return file_to_data_url(self.data, self.mime_type)


@dataclass
class ServiceOptions:
    model_mode: ModelMode = "pro"
    custom_api_key: Optional[str] = None
    on_status_update: Optional[Callable[[str], None]] = None


@dataclass
class Attempt:
    model: str
    prompt: str
    error: Optional[str] = None


@dataclass
class TryOnResult:
    image: str
    item_type: ItemType
    item_description: str
    review_passed: bool = True
    attempts: list[Attempt] = field(default_factory=list)

    def image_bytes(self) -> bytes:
        return decode_data_url(self.image)
