"""
pytest configuration and fixtures.
"""

import datetime
import http.client
import ipaddress
import socket
import ssl
from dataclasses import dataclass
from typing import Dict, Generator, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from fixtureserver import FixtureServer, ServerConfig, create_app
from fixtureserver.core import TLSIdentity


PFX_PASSPHRASE = "secret"


# =============================================================================
# TLS MATERIAL
# =============================================================================

@dataclass
class TLSMaterial:
    """A throwaway CA and a server certificate it signed."""

    ca_key: ec.EllipticCurvePrivateKey
    ca_cert: x509.Certificate
    key: ec.EllipticCurvePrivateKey
    cert: x509.Certificate

    @property
    def ca_pem(self) -> bytes:
        return self.ca_cert.public_bytes(serialization.Encoding.PEM)

    def pfx(self, passphrase: str = "") -> bytes:
        if passphrase:
            encryption = serialization.BestAvailableEncryption(passphrase.encode())
        else:
            encryption = serialization.NoEncryption()
        return pkcs12.serialize_key_and_certificates(
            name=b"fixture",
            key=self.key,
            cert=self.cert,
            cas=[self.ca_cert],
            encryption_algorithm=encryption,
        )


def _generate_tls_material() -> TLSMaterial:
    now = datetime.datetime.now(datetime.timezone.utc)
    not_before = now - datetime.timedelta(minutes=5)
    not_after = now + datetime.timedelta(days=1)

    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "fixtureserver test CA")])
    ca_cert = (x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=True,
                crl_sign=True, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False)
        .sign(ca_key, hashes.SHA256()))

    key = ec.generate_private_key(ec.SECP256R1())
    cert = (x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")]))
        .issuer_name(ca_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
                x509.IPAddress(ipaddress.ip_address("::1")),
            ]),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256()))

    return TLSMaterial(ca_key=ca_key, ca_cert=ca_cert, key=key, cert=cert)


@pytest.fixture(scope="session")
def tls_material() -> TLSMaterial:
    """CA + server certificate, generated once per test session."""
    return _generate_tls_material()


@pytest.fixture(scope="session")
def pfx_bytes(tls_material: TLSMaterial) -> bytes:
    """Unencrypted PKCS#12 keystore (the "" passphrase case)."""
    return tls_material.pfx()


@pytest.fixture(scope="session")
def pfx_bytes_with_passphrase(tls_material: TLSMaterial) -> bytes:
    """PKCS#12 keystore protected by PFX_PASSPHRASE."""
    return tls_material.pfx(PFX_PASSPHRASE)


@pytest.fixture(scope="session")
def pfx_path(tmp_path_factory, pfx_bytes: bytes) -> Path:
    """https.pfx on disk."""
    path = tmp_path_factory.mktemp("tls") / "https.pfx"
    path.write_bytes(pfx_bytes)
    return path


@pytest.fixture(scope="session")
def ca_file(tmp_path_factory, tls_material: TLSMaterial) -> Path:
    path = tmp_path_factory.mktemp("ca") / "ca.pem"
    path.write_bytes(tls_material.ca_pem)
    return path


@pytest.fixture(scope="session")
def identity(pfx_bytes: bytes) -> TLSIdentity:
    return TLSIdentity.from_pkcs12(pfx_bytes)


@pytest.fixture(scope="session")
def client_ssl_context(ca_file: Path) -> ssl.SSLContext:
    """Client context that trusts the test CA."""
    return ssl.create_default_context(cafile=str(ca_file))


# =============================================================================
# RAW REQUESTS
# =============================================================================

@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /basic_get?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: */*\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a plain-text body."""
    body = b"hello fixture"
    return (
        b"POST /basic_post HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"Content-Type: text/plain\r\n"
        b"Content-Length: %d\r\n"
        b"X-Test: one\r\n"
        b"Connection: close\r\n"
        b"\r\n"
    ) % len(body) + body


# =============================================================================
# RUNNING SERVER
# =============================================================================

@pytest.fixture
def config() -> ServerConfig:
    """Test configuration: loopback only, OS-assigned ports."""
    return ServerConfig(
        host="127.0.0.1",
        http_port=0,
        https_port=0,
        min_workers=2,
        max_workers=64,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


@pytest.fixture
def server(config: ServerConfig, identity: TLSIdentity) -> Generator[FixtureServer, None, None]:
    """A started fixture server."""
    srv = create_app(config, identity=identity)
    srv.start()

    yield srv

    srv.close()


@dataclass
class Reply:
    status: int
    headers: Dict[str, str]
    body: bytes


class FixtureClient:
    """http.client helper for both listeners of a running server."""

    def __init__(self, server: FixtureServer, ssl_context: ssl.SSLContext):
        self.server = server
        self.ssl_context = ssl_context

    def connection(self, scheme: str = "http", timeout: float = 5.0) -> http.client.HTTPConnection:
        if scheme == "https":
            return http.client.HTTPSConnection(
                "127.0.0.1", self.server.https_port,
                timeout=timeout, context=self.ssl_context,
            )
        return http.client.HTTPConnection("127.0.0.1", self.server.http_port, timeout=timeout)

    def request(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        scheme: str = "http",
    ) -> Reply:
        conn = self.connection(scheme)
        try:
            conn.request(method, path, body=body, headers=headers or {})
            response = conn.getresponse()
            return Reply(
                status=response.status,
                headers={k.lower(): v for k, v in response.getheaders()},
                body=response.read(),
            )
        finally:
            conn.close()

    def port(self, scheme: str) -> int:
        return self.server.https_port if scheme == "https" else self.server.http_port

    def raw_socket(self, scheme: str = "http", timeout: float = 5.0) -> socket.socket:
        """A connected socket (TLS-wrapped for https) for hand-written requests."""
        sock = socket.create_connection(("127.0.0.1", self.port(scheme)), timeout=timeout)
        if scheme == "https":
            sock = self.ssl_context.wrap_socket(sock, server_hostname="localhost")
        return sock


@pytest.fixture
def client(server: FixtureServer, client_ssl_context: ssl.SSLContext) -> FixtureClient:
    return FixtureClient(server, client_ssl_context)


@pytest.fixture(params=["http", "https"])
def scheme(request) -> str:
    """Run a test once per listener."""
    return request.param


def read_response(sock: socket.socket) -> Tuple[bytes, bytes]:
    """Read one Content-Length framed response from a raw socket."""
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = sock.recv(4096)
        if not chunk:
            raise ConnectionError(f"Connection closed mid-head: {data!r}")
        data += chunk

    head, _, body = data.partition(b"\r\n\r\n")
    length = 0
    for line in head.split(b"\r\n")[1:]:
        name, _, value = line.partition(b":")
        if name.strip().lower() == b"content-length":
            length = int(value.strip())

    while len(body) < length:
        chunk = sock.recv(4096)
        if not chunk:
            break
        body += chunk

    return head, body


def free_port() -> int:
    """A port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
