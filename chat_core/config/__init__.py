"""配置加载（pydantic-settings + config.yaml）。"""

from chat_core.config.settings import PLACEHOLDER_API_KEY, Settings, settings

__all__ = ["PLACEHOLDER_API_KEY", "Settings", "settings"]
