import os
from typing import Any, Optional

import yaml


DEFAULT_CONFIG_PATH = "configs/nanofit.yaml"


class Settings:
    """
    YAML defaults under environment overrides.
    Keys are dot paths: ``models.image.pro`` is read from env ``MODELS_IMAGE_PRO`` first.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or os.environ.get("NANOFIT_CONFIG", DEFAULT_CONFIG_PATH)
        self._cfg = self._load(self.path)

    @staticmethod
    def _load(path: str) -> dict[str, Any]:
        if not os.path.exists(path):
            return {}
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def env_name(key: str) -> str:
        return key.upper().replace(".", "_")

    def get(self, key: str, default: Any = None) -> Any:
        env = os.environ.get(self.env_name(key))
        if env is not None:
            return env
        node: Any = self._cfg
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def get_str(self, key: str, default: str) -> str:
        return str(self.get(key, default))

    def get_int(self, key: str, default: int) -> int:
        return int(self.get(key, default))


settings = Settings()
