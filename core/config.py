"""
core/config.py — YAML 配置加载

• cfg.get("payverse.secret_key") 按点号路径读取
• 值中的 ${ENV} / ${ENV:-default} 在读取时展开
• reload() / save_config() 供管理接口和测试使用

配置文件路径默认 ./config.yaml，可通过 CONFIG_PATH 覆盖；文件不存在时以空配置启动。
"""
import copy
import os
import re
from typing import Any, Dict, Optional

import yaml

VERSION = "1.0.0"
API_BASE = "/api/v1"

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class Config:
    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path if config_path is not None else os.getenv("CONFIG_PATH", "config.yaml")
        self.config: Dict[str, Any] = {}
        self.reload()

    def reload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.config_path and os.path.exists(self.config_path):
            with open(self.config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
            if isinstance(loaded, dict):
                data = loaded
        self.config = data
        return self.config

    def save_config(self) -> None:
        if not self.config_path:
            return
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.config, f, allow_unicode=True, sort_keys=False)

    def replace_env_vars(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self.replace_env_vars(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.replace_env_vars(v) for v in value]
        if not isinstance(value, str):
            return value

        def _sub(match) -> str:
            name, default = match.group(1), match.group(2)
            return os.getenv(name, default if default is not None else "")

        return _ENV_PATTERN.sub(_sub, value)

    def get(self, key: str, default: Any = None) -> Any:
        current: Any = self.config
        for part in [x for x in str(key or "").split(".") if x]:
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        if current is None:
            return default
        return self.replace_env_vars(copy.deepcopy(current))


def env_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "y", "on")


cfg = Config()
