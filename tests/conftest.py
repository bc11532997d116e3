"""Shared fixtures: local HTTP(S) servers and throwaway certificates."""

import datetime
import ipaddress
import ssl
import threading
import time
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID


class ReceivedRequests(list):
    """(method, path) pairs of received requests, plus client certificates seen over TLS."""

    def __init__(self):
        super().__init__()
        self.peer_certs: list = []


def _handler(seen: "ReceivedRequests", status: int, delay: float, body: bytes, trickle: float) -> type:
    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            seen.append((self.command, self.path))
            if isinstance(self.connection, ssl.SSLSocket):
                seen.peer_certs.append(self.connection.getpeercert())
            if delay:
                time.sleep(delay)
            self.send_response(status)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if not trickle:
                self.wfile.write(body)
                return
            self.wfile.flush()
            for i in range(len(body)):
                time.sleep(trickle)
                self.wfile.write(body[i : i + 1])
                self.wfile.flush()

        def log_message(self, format, *args):
            pass

    return Handler


@pytest.fixture
def http_server():
    """Start local HTTP servers answering GET with a fixed status.

    Returns a factory taking (status, delay, body, trickle, ssl_context) and
    returning (base_url, seen) where seen is a ReceivedRequests. With
    trickle set, the body is sent one byte at a time with that many seconds
    between bytes. With ssl_context set, the server speaks HTTPS.
    """
    servers = []

    def start(
        status: int = 200,
        delay: float = 0.0,
        body: bytes = b"ok",
        trickle: float = 0.0,
        ssl_context: ssl.SSLContext | None = None,
    ):
        seen = ReceivedRequests()
        server = ThreadingHTTPServer(("127.0.0.1", 0), _handler(seen, status, delay, body, trickle))
        server.daemon_threads = True
        scheme = "http"
        if ssl_context is not None:
            server.socket = ssl_context.wrap_socket(server.socket, server_side=True)
            scheme = "https"
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)

        host, port = server.server_address[:2]
        return f"{scheme}://{host}:{port}", seen

    yield start

    for server in servers:
        server.shutdown()
        server.server_close()


@dataclass
class TLSFiles:
    client_cert: Path
    client_key: Path
    ca_cert: Path
    ca_pem: bytes
    server_cert: Path
    server_key: Path
    rogue_server_cert: Path
    rogue_server_key: Path


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _certificate(
    subject: str,
    public_key,
    issuer: str,
    issuer_key,
    is_ca: bool,
    ip_address: str | None = None,
) -> x509.Certificate:
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(subject))
        .issuer_name(_name(issuer))
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
    )
    if ip_address is not None:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.IPAddress(ipaddress.ip_address(ip_address))]),
            critical=False,
        )
    return builder.sign(issuer_key, hashes.SHA256())


def _write_pair(cert: x509.Certificate, key, cert_path: Path, key_path: Path) -> None:
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )


@pytest.fixture
def tls_files(tmp_path):
    """Write a CA, a client and a server certificate signed by it, and a server certificate from another CA."""
    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_cert = _certificate("Test CA", ca_key.public_key(), "Test CA", ca_key, is_ca=True)

    client_key = ec.generate_private_key(ec.SECP256R1())
    client_cert = _certificate("test-client", client_key.public_key(), "Test CA", ca_key, is_ca=False)

    server_key = ec.generate_private_key(ec.SECP256R1())
    server_cert = _certificate(
        "127.0.0.1", server_key.public_key(), "Test CA", ca_key, is_ca=False, ip_address="127.0.0.1"
    )

    rogue_ca_key = ec.generate_private_key(ec.SECP256R1())
    rogue_server_key = ec.generate_private_key(ec.SECP256R1())
    rogue_server_cert = _certificate(
        "127.0.0.1", rogue_server_key.public_key(), "Rogue CA", rogue_ca_key, is_ca=False, ip_address="127.0.0.1"
    )

    ca_pem = ca_cert.public_bytes(serialization.Encoding.PEM)

    files = TLSFiles(
        client_cert=tmp_path / "client.crt",
        client_key=tmp_path / "client.key",
        ca_cert=tmp_path / "ca.crt",
        ca_pem=ca_pem,
        server_cert=tmp_path / "server.crt",
        server_key=tmp_path / "server.key",
        rogue_server_cert=tmp_path / "rogue.crt",
        rogue_server_key=tmp_path / "rogue.key",
    )
    _write_pair(client_cert, client_key, files.client_cert, files.client_key)
    _write_pair(server_cert, server_key, files.server_cert, files.server_key)
    _write_pair(rogue_server_cert, rogue_server_key, files.rogue_server_cert, files.rogue_server_key)
    files.ca_cert.write_bytes(ca_pem)
    return files


@pytest.fixture
def server_ssl_context(tls_files):
    """Build server contexts that require client certificates issued by the test CA.

    Returns a factory taking the server certificate and key paths.
    """

    def build(cert_file: Path, key_file: Path) -> ssl.SSLContext:
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ctx.load_cert_chain(str(cert_file), str(key_file))
        ctx.verify_mode = ssl.CERT_REQUIRED
        ctx.load_verify_locations(cafile=str(tls_files.ca_cert))
        return ctx

    return build


@pytest.fixture
def tls_env(tls_files):
    """Environment mapping pointing at the tls_files fixture."""
    return {
        "CLIENT_CERT_PATH": str(tls_files.client_cert),
        "CLIENT_KEY_PATH": str(tls_files.client_key),
        "CA_CERT_PATH": str(tls_files.ca_cert),
    }
