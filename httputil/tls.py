"""Mutual TLS client configuration.

Builds a client ssl.SSLContext from a certificate/key pair and a CA bundle,
either from explicit paths or from the CLIENT_CERT_PATH, CLIENT_KEY_PATH and
CA_CERT_PATH environment variables, and mounts it on requests sessions.
"""

import os
import ssl
from dataclasses import dataclass
from typing import Any, Mapping

import requests
from requests.adapters import HTTPAdapter

from .config import TLSPaths
from .utils.logger import get_logger
from .utils.pem import iter_pem_blocks

logger = get_logger(__name__)

MINIMUM_TLS_VERSION = ssl.TLSVersion.TLSv1_2


@dataclass(frozen=True)
class ClientCertificate:
    cert_file: str
    key_file: str


@dataclass(frozen=True)
class TLSClientConfig:
    """A ready-to-use mutual TLS client configuration.

    Attributes:
        minimum_version: Lowest protocol version the context negotiates
        certificates: Client certificates presented to servers
        root_cas: DER encoded CA certificates in the trust pool
        ssl_context: Client context carrying all of the above
    """

    minimum_version: ssl.TLSVersion
    certificates: tuple[ClientCertificate, ...]
    root_cas: tuple[bytes, ...]
    ssl_context: ssl.SSLContext


def _append_certs_from_pem(ctx: ssl.SSLContext, pem_data: bytes) -> list[bytes]:
    """Add every parseable CERTIFICATE block to the context's trust pool.

    Other blocks and certificates that fail to parse are skipped.

    Returns:
        DER encodings of the certificates that were added
    """
    added = []
    for block in iter_pem_blocks(pem_data):
        if block.label != "CERTIFICATE":
            logger.debug("pem_block_skipped", label=block.label)
            continue
        try:
            ctx.load_verify_locations(cadata=block.der)
        except (ssl.SSLError, ValueError) as e:
            logger.debug("pem_certificate_skipped", error=str(e))
            continue
        added.append(block.der)
    return added


def new_tls_config(client_cert_file: str, client_key_file: str, ca_cert_file: str) -> TLSClientConfig:
    """Build a mutual TLS client configuration from explicit file paths.

    Args:
        client_cert_file: PEM client certificate
        client_key_file: PEM client private key
        ca_cert_file: PEM bundle of trusted CA certificates

    Returns:
        Configuration enforcing TLS 1.2 or newer

    Raises:
        OSError: If a file is missing or unreadable
        ssl.SSLError: If the client certificate or key is malformed
    """
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.minimum_version = MINIMUM_TLS_VERSION

    ctx.load_cert_chain(client_cert_file, client_key_file)

    ca_cert_path = os.path.normpath(ca_cert_file)
    with open(ca_cert_path, "rb") as f:
        ca_cert = f.read()

    root_cas = _append_certs_from_pem(ctx, ca_cert)
    logger.debug(
        "tls_config_built",
        client_cert_file=client_cert_file,
        ca_cert_file=ca_cert_path,
        root_cas=len(root_cas),
    )

    return TLSClientConfig(
        minimum_version=MINIMUM_TLS_VERSION,
        certificates=(ClientCertificate(client_cert_file, client_key_file),),
        root_cas=tuple(root_cas),
        ssl_context=ctx,
    )


def new_tls_config_from_env(environ: Mapping[str, str] | None = None) -> TLSClientConfig:
    """Build a mutual TLS client configuration from environment variables.

    No file is read until CLIENT_CERT_PATH, CLIENT_KEY_PATH and CA_CERT_PATH
    are all set.

    Raises:
        EnvVariableNotDefinedError: If a variable is unset or empty
        OSError: If a file is missing or unreadable
        ssl.SSLError: If the client certificate or key is malformed
    """
    paths = TLSPaths.from_env(environ)
    return new_tls_config(paths.client_cert_file, paths.client_key_file, paths.ca_cert_file)


class TLSAdapter(HTTPAdapter):
    """HTTP adapter that connects with a TLSClientConfig's SSL context.

    The client certificate and the trust pool both come from the context;
    the default CA bundle used by requests is not loaded. Server certificates
    are always verified: passing verify=False or a separate cert to a
    request raises ValueError, and a CA bundle path given as verify (for
    example through REQUESTS_CA_BUNDLE) is ignored.
    """

    def __init__(self, tls_config: TLSClientConfig, **kwargs: Any):
        self.tls_config = tls_config
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        """Initialize the connection pool with the configured SSL context."""
        kwargs["ssl_context"] = self.tls_config.ssl_context
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, proxy: str, **proxy_kwargs: Any) -> Any:
        proxy_kwargs["ssl_context"] = self.tls_config.ssl_context
        return super().proxy_manager_for(proxy, **proxy_kwargs)

    def build_connection_pool_key_attributes(
        self, request: requests.PreparedRequest, verify: Any, cert: Any = None
    ) -> tuple[dict, dict]:
        host_params, pool_kwargs = super().build_connection_pool_key_attributes(request, verify, cert)
        # Keep requests from loading extra CAs or key pairs into the shared context.
        for key in ("ca_certs", "ca_cert_dir", "cert_file", "key_file"):
            pool_kwargs.pop(key, None)
        pool_kwargs["cert_reqs"] = "CERT_REQUIRED"
        return host_params, pool_kwargs

    def cert_verify(self, conn: Any, url: str, verify: Any, cert: Any) -> None:
        if verify is False:
            raise ValueError("TLSAdapter always verifies server certificates; verify=False is not supported")
        if cert is not None:
            raise ValueError("TLSAdapter presents the client certificate from its TLSClientConfig; cert is not supported")
        if url.lower().startswith("https"):
            conn.cert_reqs = "CERT_REQUIRED"


def mount_tls(
    session: requests.Session,
    tls_config: TLSClientConfig,
    prefix: str = "https://",
) -> TLSAdapter:
    """Mount a TLSAdapter for tls_config on session and return it."""
    adapter = TLSAdapter(tls_config)
    session.mount(prefix, adapter)
    return adapter
