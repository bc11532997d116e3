"""Helpers for building HTTP requests, running health checks and configuring mutual TLS clients."""

from .context import RequestContext
from .errors import (
    ContextCancelledError,
    DeadlineExceededError,
    EnvVariableNotDefinedError,
    HealthCheckError,
    HTTPUtilError,
    ResponseCloseError,
    UnhealthyStatusError,
    caused_by,
)
from .health import health_check
from .request_builder import ContextRequest, get, post, put
from .tls import TLSAdapter, TLSClientConfig, mount_tls, new_tls_config, new_tls_config_from_env

__version__ = "0.1.0"

__all__ = [
    "ContextCancelledError",
    "ContextRequest",
    "DeadlineExceededError",
    "EnvVariableNotDefinedError",
    "HTTPUtilError",
    "HealthCheckError",
    "RequestContext",
    "ResponseCloseError",
    "TLSAdapter",
    "TLSClientConfig",
    "UnhealthyStatusError",
    "caused_by",
    "get",
    "health_check",
    "mount_tls",
    "new_tls_config",
    "new_tls_config_from_env",
    "post",
    "put",
]
