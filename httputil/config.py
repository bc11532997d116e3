"""Environment-sourced configuration.

Values are read from the environment at call time; nothing is cached.
"""

import os
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

from .errors import env_variable_not_defined

CLIENT_CERT_FILE_ENV_KEY = "CLIENT_CERT_PATH"
CLIENT_KEY_FILE_ENV_KEY = "CLIENT_KEY_PATH"
CA_CERT_FILE_ENV_KEY = "CA_CERT_PATH"

LOG_LEVEL_ENV_KEY = "HTTPUTIL_LOG_LEVEL"
JSON_LOGS_ENV_KEY = "HTTPUTIL_JSON_LOGS"


class TLSPaths(BaseModel):
    """File paths needed to build a mutual TLS client configuration."""

    model_config = ConfigDict(frozen=True)

    client_cert_file: str = Field(min_length=1, description="PEM client certificate")
    client_key_file: str = Field(min_length=1, description="PEM client private key")
    ca_cert_file: str = Field(min_length=1, description="PEM CA certificate bundle")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "TLSPaths":
        """Read the path triple from the environment.

        Variables are checked in order (client cert, client key, CA cert) and
        the first one that is unset or empty is reported.

        Raises:
            EnvVariableNotDefinedError: If a variable is unset or empty
        """
        if environ is None:
            environ = os.environ

        values = {}
        for field, key in (
            ("client_cert_file", CLIENT_CERT_FILE_ENV_KEY),
            ("client_key_file", CLIENT_KEY_FILE_ENV_KEY),
            ("ca_cert_file", CA_CERT_FILE_ENV_KEY),
        ):
            value = environ.get(key, "")
            if not value:
                raise env_variable_not_defined(key)
            values[field] = value

        return cls(**values)


class LoggingSettings(BaseModel):
    """Logging options for setup_logging."""

    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Use JSON log format")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LoggingSettings":
        if environ is None:
            environ = os.environ

        settings = cls()
        if environ.get(LOG_LEVEL_ENV_KEY):
            settings.log_level = environ[LOG_LEVEL_ENV_KEY].upper()
        if environ.get(JSON_LOGS_ENV_KEY):
            settings.json_logs = environ[JSON_LOGS_ENV_KEY].lower() in ("1", "true", "yes")
        return settings
