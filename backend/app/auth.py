from __future__ import annotations

import re
from typing import Optional

from fastapi import HTTPException, Request


KEY_HEADER = "x-gemini-api-key"

# Google API keys: "AIza" followed by 35 URL-safe characters
_KEY_RE = re.compile(r"AIza[0-9A-Za-z\-_]{35}")


def is_valid_key(key: Optional[str]) -> bool:
    return bool(key) and bool(_KEY_RE.fullmatch(key or ""))


async def user_api_key(request: Request) -> Optional[str]:
    """The caller's own model key, if any. Without one the server key is used."""
    key = (request.headers.get(KEY_HEADER) or "").strip()
    if not key:
        return None
    if not is_valid_key(key):
        raise HTTPException(status_code=400, detail="Invalid API key format")
    return key
