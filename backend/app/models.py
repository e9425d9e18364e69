from typing import Literal

from pydantic import BaseModel, Field


class AnalyzeResponse(BaseModel):
    item_type: Literal["clothing", "accessory"]


class AttemptModel(BaseModel):
    model: str
    prompt: str
    error: str | None = None


class TryOnResponse(BaseModel):
    image: str = Field(..., description="Generated try-on image as a data URL.")
    item_type: Literal["clothing", "accessory"]
    item_description: str
    review_passed: bool
    attempts: list[AttemptModel] = []
    status_log: list[str] = []


class RefineRequest(BaseModel):
    image: str = Field(..., description="Current image as a data URL.")
    instruction: str = Field(..., min_length=1)
    mode: Literal["pro", "flash"] = "pro"


class RefineResponse(BaseModel):
    image: str
    status_log: list[str] = []


class ConfigResponse(BaseModel):
    backend: str
    default_mode: Literal["pro", "flash"]
    server_key: bool
    models: dict
