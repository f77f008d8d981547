"""
=============================================================================
TLS IDENTITY
=============================================================================

The TLS listener presents a certificate loaded from a PKCS#12 keystore
(https.pfx, passphrase "" by default).

=============================================================================
FROM KEYSTORE TO SSLContext
=============================================================================

    https.pfx
        │
        │  cryptography: pkcs12.load_key_and_certificates()
        ▼
    TLSIdentity(private_key, certificate, chain)
        │
        │  PEM to a private temp dir, key encrypted with a one-time password
        ▼
    ssl.SSLContext(PROTOCOL_TLS_SERVER).load_cert_chain(...)

Python's ssl module cannot read PKCS#12 directly; it only loads PEM files.
The temp directory is removed as soon as load_cert_chain() returns.

=============================================================================
EMPTY PASSPHRASES
=============================================================================

Tools disagree about what "no passphrase" means in a keystore: some
encrypt with the empty string, some do not encrypt at all. For an empty
passphrase both readings are tried:

    passphrase=""     → try None, then b""
    passphrase="pw"   → try b"pw"

A keystore that none of the candidates opens is a TLSIdentityError.

=============================================================================
"""

import logging
import os
import secrets
import ssl
import tempfile
from dataclasses import dataclass, field
from typing import Any, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from ..exceptions import TLSIdentityError


logger = logging.getLogger(__name__)


def _passphrase_candidates(passphrase: str) -> List[Optional[bytes]]:
    if passphrase:
        return [passphrase.encode("utf-8")]
    return [None, b""]


@dataclass(frozen=True)
class TLSIdentity:
    """
    A private key with its certificate chain.

    Attributes:
        private_key: The server's private key (any type cryptography supports).
        certificate: The leaf certificate presented to clients.
        chain: Additional (intermediate) certificates, leaf excluded.
    """

    private_key: Any
    certificate: x509.Certificate
    chain: List[x509.Certificate] = field(default_factory=list)

    @classmethod
    def from_pkcs12(cls, data: bytes, passphrase: str = "") -> "TLSIdentity":
        """
        Parse PKCS#12 bytes.

        Raises:
            TLSIdentityError: Malformed data, wrong passphrase, or a
                              keystore without a key or certificate.
        """
        last_error: Optional[Exception] = None

        for candidate in _passphrase_candidates(passphrase):
            try:
                key, cert, additional = pkcs12.load_key_and_certificates(data, candidate)
            except (ValueError, TypeError) as e:
                last_error = e
                continue

            if key is None or cert is None:
                raise TLSIdentityError("PKCS#12 keystore has no private key or certificate")

            return cls(private_key=key, certificate=cert, chain=list(additional or []))

        raise TLSIdentityError(
            f"Could not open PKCS#12 keystore (wrong passphrase or malformed data): {last_error}"
        ) from last_error

    @classmethod
    def load(cls, path: str, passphrase: str = "") -> "TLSIdentity":
        """
        Read and parse a PKCS#12 keystore file.

        Raises:
            TLSIdentityError: The file cannot be read or parsed.
        """
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise TLSIdentityError(f"Cannot read TLS keystore {path}: {e}", path=path) from e

        try:
            identity = cls.from_pkcs12(data, passphrase)
        except TLSIdentityError as e:
            raise TLSIdentityError(f"{path}: {e}", path=path) from e

        logger.debug(f"Loaded TLS identity from {path}: {identity.subject}")
        return identity

    @property
    def subject(self) -> str:
        return self.certificate.subject.rfc4514_string()

    def certificate_pem(self) -> bytes:
        """Leaf certificate followed by the chain, PEM-encoded."""
        certs = [self.certificate, *self.chain]
        return b"".join(c.public_bytes(serialization.Encoding.PEM) for c in certs)

    def ssl_context(self) -> ssl.SSLContext:
        """
        Build a server-side SSLContext presenting this identity.

        Protocol versions and ciphers are the interpreter's defaults; ALPN
        offers http/1.1 only.
        """
        password = secrets.token_hex(16).encode("ascii")
        key_pem = self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(password),
        )

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)

        with tempfile.TemporaryDirectory(prefix="fixtureserver-tls-") as tmp:
            cert_file = os.path.join(tmp, "cert.pem")
            key_file = os.path.join(tmp, "key.pem")

            with open(cert_file, "wb") as f:
                f.write(self.certificate_pem())
            with open(key_file, "wb") as f:
                f.write(key_pem)

            try:
                context.load_cert_chain(cert_file, key_file, password=password)
            except ssl.SSLError as e:
                raise TLSIdentityError(f"TLS identity rejected by ssl: {e}") from e

        context.set_alpn_protocols(["http/1.1"])
        return context
