"""CMS (PKCS#7) signing of the WSAA login ticket request."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs7

from src.exceptions import (
    CertificateMissingException,
    ConfigurationException,
    SigningFailureException,
)

logger = logging.getLogger(__name__)


class CmsSigner(Protocol):
    async def sign(self, data: bytes) -> bytes:
        """Return a DER-encoded, non-detached CMS SignedData over ``data``."""
        ...


class CryptographyCmsSigner:
    """Signs in-process with the ``cryptography`` PKCS#7 builder (SHA-256)."""

    def __init__(self, cert_path: Path, key_path: Path, chain_path: Path | None = None) -> None:
        try:
            self._certificate = x509.load_pem_x509_certificate(cert_path.read_bytes())
            self._private_key = serialization.load_pem_private_key(
                key_path.read_bytes(), password=None
            )
            self._chain = (
                x509.load_pem_x509_certificates(chain_path.read_bytes()) if chain_path else []
            )
        except (ValueError, TypeError) as exc:
            raise SigningFailureException(f"Cannot load signing material: {exc}") from exc

    async def sign(self, data: bytes) -> bytes:
        builder = (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(data)
            .add_signer(self._certificate, self._private_key, hashes.SHA256())
        )
        for certificate in self._chain:
            builder = builder.add_certificate(certificate)
        try:
            return builder.sign(serialization.Encoding.DER, [])
        except (ValueError, TypeError) as exc:
            raise SigningFailureException(f"CMS signing failed: {exc}") from exc


class OpenSSLCmsSigner:
    """Shells out to ``openssl smime -sign`` for hosts that keep keys in OpenSSL engines."""

    def __init__(
        self,
        cert_path: Path,
        key_path: Path,
        chain_path: Path | None = None,
        openssl_path: str = "openssl",
    ) -> None:
        self.cert_path = cert_path
        self.key_path = key_path
        self.chain_path = chain_path
        self.openssl_path = openssl_path

    def _command(self) -> list[str]:
        command = [
            self.openssl_path, "smime", "-sign",
            "-signer", str(self.cert_path),
            "-inkey", str(self.key_path),
        ]
        if self.chain_path is not None:
            command += ["-certfile", str(self.chain_path)]
        return command + ["-outform", "DER", "-nodetach"]

    async def sign(self, data: bytes) -> bytes:
        try:
            process = await asyncio.create_subprocess_exec(
                *self._command(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ConfigurationException(
                f"OpenSSL binary not found: {self.openssl_path}"
            ) from exc

        stdout, stderr = await process.communicate(data)
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise SigningFailureException(f"openssl smime exited {process.returncode}: {message}")
        return stdout


def _require_file(path_value: str, label: str) -> Path:
    path = Path(path_value) if path_value else None
    if path is None or not path.is_file():
        raise CertificateMissingException(
            f"AFIP {label} not found: {path_value or '(not configured)'}",
            details=[{"file": label, "path": path_value}],
        )
    return path


def build_signer(
    cert_path: str,
    key_path: str,
    chain_path: str = "",
    backend: str = "cryptography",
    openssl_path: str = "openssl",
) -> CmsSigner:
    """Validate the credential files and return the configured signer backend."""
    cert = _require_file(cert_path, "certificate")
    key = _require_file(key_path, "private key")
    chain = _require_file(chain_path, "certificate chain") if chain_path else None

    if backend == "openssl":
        return OpenSSLCmsSigner(cert, key, chain, openssl_path=openssl_path)
    if backend == "cryptography":
        return CryptographyCmsSigner(cert, key, chain)
    raise ConfigurationException(f"Unknown AFIP signer backend: {backend}")
