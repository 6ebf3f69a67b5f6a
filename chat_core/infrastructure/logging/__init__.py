"""JSON 行日志（观测输出）。"""

from chat_core.infrastructure.logging.logger import JsonFormatter, logger, setup_logger

__all__ = ["JsonFormatter", "logger", "setup_logger"]
