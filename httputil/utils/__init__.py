"""Utility modules for logging and PEM parsing."""

from .logger import HealthCheckLogContext, get_logger, setup_logging
from .pem import PEMBlock, iter_pem_blocks

__all__ = ["HealthCheckLogContext", "PEMBlock", "get_logger", "iter_pem_blocks", "setup_logging"]
