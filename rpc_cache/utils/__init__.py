"""Logging helpers."""

from rpc_cache.utils.logger import get_logger, log_readthrough, setup_logging

__all__ = ["get_logger", "log_readthrough", "setup_logging"]
