import base64
import mimetypes
import os
from typing import Optional

import requests


KEY_HEADER = "X-Gemini-Api-Key"


class NanofitError(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def _file_part(path: str):
    mime = mimetypes.guess_type(path)[0] or "image/png"
    return (os.path.basename(path), open(path, "rb"), mime)


class NanofitClient:
    def __init__(self, base_url: str = "http://127.0.0.1:8000", api_key: Optional[str] = None, mode: str = "pro") -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.mode = mode

    def _headers(self) -> dict:
        return {KEY_HEADER: self.api_key} if self.api_key else {}

    @staticmethod
    def _check(r: requests.Response) -> dict:
        if r.status_code >= 400:
            try:
                detail = r.json().get("detail", r.text)
            except ValueError:
                detail = r.text
            raise NanofitError(r.status_code, str(detail))
        return r.json()

    def health(self) -> dict:
        return self._check(requests.get(f"{self.base_url}/health", timeout=10))

    def analyze(self, item_path: str) -> str:
        files = {"item": _file_part(item_path)}
        try:
            r = requests.post(
                f"{self.base_url}/v1/analyze",
                files=files,
                data={"mode": self.mode},
                headers=self._headers(),
                timeout=60,
            )
        finally:
            files["item"][1].close()
        return self._check(r)["item_type"]

    def try_on(
        self,
        person_path: str,
        item_path: str,
        item_type: Optional[str] = None,
        detected_type: Optional[str] = None,
    ) -> dict:
        files = {"person": _file_part(person_path), "item": _file_part(item_path)}
        data = {"mode": self.mode}
        if item_type:
            data["item_type"] = item_type
        if detected_type:
            data["detected_type"] = detected_type
        try:
            r = requests.post(
                f"{self.base_url}/v1/tryon",
                files=files,
                data=data,
                headers=self._headers(),
                timeout=300,
            )
        finally:
            for part in files.values():
                part[1].close()
        return self._check(r)

    def refine(self, image: str, instruction: str) -> dict:
        r = requests.post(
            f"{self.base_url}/v1/refine",
            json={"image": image, "instruction": instruction, "mode": self.mode},
            headers=self._headers(),
            timeout=300,
        )
        return self._check(r)


class TryOnSession:
    """
    Client-side studio state: the two inputs, the item type, the current render and its undo history.
    The server keeps none of this.
    """

    def __init__(self, client: NanofitClient) -> None:
        self.client = client
        self.person_path: Optional[str] = None
        self.item_path: Optional[str] = None
        self.detected_type: Optional[str] = None
        self.type_override: Optional[str] = None
        self.image: Optional[str] = None
        self.history: list[str] = []
        self.last_status: list[str] = []

    def set_person(self, path: Optional[str]) -> None:
        self.person_path = path

    def set_item(self, path: Optional[str]) -> None:
        # A new item needs a fresh classification; the override survives until then
        self.item_path = path
        self.detected_type = None

    def analyze(self) -> Optional[str]:
        if not self.item_path or self.detected_type:
            return self.detected_type
        try:
            self.detected_type = self.client.analyze(self.item_path)
        except (NanofitError, requests.RequestException):
            self.detected_type = "clothing"
        self.type_override = self.detected_type
        return self.detected_type

    def generate(self) -> str:
        if not self.person_path or not self.item_path:
            raise ValueError("Both a person image and an item image are required")
        self.history = []
        res = self.client.try_on(
            self.person_path,
            self.item_path,
            item_type=self.type_override,
            detected_type=self.detected_type,
        )
        self.image = res["image"]
        self.last_status = res.get("status_log", [])
        return self.image

    def refine(self, instruction: str) -> str:
        if not self.image:
            raise ValueError("Nothing to refine yet")
        self.history.append(self.image)
        try:
            res = self.client.refine(self.image, instruction)
        except Exception:
            self.history.pop()
            raise
        self.image = res["image"]
        self.last_status = res.get("status_log", [])
        return self.image

    @property
    def can_undo(self) -> bool:
        return bool(self.history)

    def undo(self) -> Optional[str]:
        if not self.history:
            return self.image
        self.image = self.history.pop()
        return self.image

    def reset(self) -> None:
        self.person_path = None
        self.item_path = None
        self.image = None
        self.history = []
        self.last_status = []

    def save(self, out_path: str) -> str:
        if not self.image:
            raise ValueError("No image to save")
        payload = self.image.split(",", 1)[1] if "," in self.image else self.image
        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
        with open(out_path, "wb") as f:
            f.write(base64.b64decode(payload))
        return out_path
