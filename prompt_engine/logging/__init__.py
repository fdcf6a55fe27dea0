"""Logging infrastructure for the prompt engine.

Example:
    >>> from prompt_engine.logging import get_engine_logger
    >>> logger = get_engine_logger(__name__)
    >>> logger.info("Compilation started")

Note:
    Engine modules never call ``logging.getLogger`` directly; they use
    get_engine_logger() so configuration is applied consistently.
"""

from .logging_config import LoggingConfig, get_engine_logger, setup_logging

__all__ = [
    "LoggingConfig",
    "get_engine_logger",
    "setup_logging",
]
