"""
Client certificate import for tenant connections.

Uploaded certificates arrive as PKCS#12 (.pfx) bytes with a password. Before
a certificate can be stored on a tenant record or used for a connection test
it must have a legal file name, parse with the given password, carry the
private key matching its public key, and survive an export round trip.
"""

import logging
import re
import secrets
from pathlib import PureWindowsPath
from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    pkcs12,
)

from .exceptions import (
    CertificateParseError,
    ExportValidationError,
    InvalidFileNameError,
    NoPrivateKeyError,
)
from .models import ImportedCertificate

logger = logging.getLogger(__name__)

MAX_FILE_NAME_LENGTH = 128

_ILLEGAL_FILE_NAME_CHARS = re.compile(r'[~"#%&*:<>?/\\{|}]')
_RESERVED_FILE_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)

_PARSE_ERRORS = (ValueError, TypeError, UnsupportedAlgorithm)


def extract_file_name(declared_file_name: Optional[str]) -> str:
    """
    Strip any directory component from an uploaded file name.

    Browsers may send a full client-side path, with either separator.

    Raises:
        InvalidFileNameError: If the path is malformed or has no file name
    """
    if declared_file_name is None:
        raise InvalidFileNameError("Invalid file path. Error message: no file name given")
    if any(ord(char) < 32 for char in declared_file_name):
        raise InvalidFileNameError(
            "Invalid file path. Error message: path contains control characters",
            file_name=declared_file_name.encode("unicode_escape").decode("ascii"),
        )
    file_name = PureWindowsPath(declared_file_name).name
    if not file_name:
        raise InvalidFileNameError(
            "Invalid file path. Error message: path has no file name",
            file_name=declared_file_name,
        )
    return file_name


def is_legal_file_name(file_name: str) -> bool:
    """Check a bare file name against the naming rules of the configuration file store."""
    if not file_name or len(file_name) > MAX_FILE_NAME_LENGTH:
        return False
    if file_name != file_name.strip():
        return False
    if file_name.startswith(".") or file_name.endswith(".") or ".." in file_name:
        return False
    if _ILLEGAL_FILE_NAME_CHARS.search(file_name):
        return False
    stem = file_name.split(".", 1)[0].upper()
    return stem not in _RESERVED_FILE_NAMES


def verify_exportable(certificate: ImportedCertificate) -> None:
    """
    Export the certificate and its private key to PKCS#12 and read it back.

    A random single-use passphrase protects the throwaway export.

    Raises:
        ExportValidationError: If the export or the reload fails
    """
    passphrase = secrets.token_urlsafe(32).encode("ascii")
    try:
        exported = certificate.to_pkcs12(passphrase)
        private_key, reloaded, _ = pkcs12.load_key_and_certificates(exported, passphrase)
    except _PARSE_ERRORS as e:
        raise ExportValidationError(
            f"Invalid certificate. Error message: {e}",
            context={"thumbprint": certificate.thumbprint},
            cause=e,
        ) from e

    if private_key is None or reloaded != certificate.certificate:
        raise ExportValidationError(
            "Invalid certificate. Error message: exported container did not round-trip",
            context={"thumbprint": certificate.thumbprint},
        )


def _is_unprotected_without_key(raw_bytes: bytes) -> bool:
    # A container without a password can still be inspected when the operator typed one
    try:
        private_key, _, _ = pkcs12.load_key_and_certificates(raw_bytes, None)
    except _PARSE_ERRORS:
        return False
    return private_key is None


def _public_key_bytes(key) -> bytes:
    return key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)


def import_certificate(
    raw_bytes: Optional[bytes],
    declared_file_name: Optional[str],
    password: Optional[str],
) -> ImportedCertificate:
    """
    Import an uploaded PKCS#12 client certificate.

    Args:
        raw_bytes: Uploaded file content
        declared_file_name: File name (possibly with a path) sent by the client
        password: Password protecting the container, empty for none

    Returns:
        ImportedCertificate ready to be stored or used for a connection test

    Raises:
        InvalidFileNameError: If the file name is malformed or illegal
        CertificateParseError: If the bytes are not a readable PKCS#12 container
        NoPrivateKeyError: If the container has no usable private key
        ExportValidationError: If the private key cannot be exported
    """
    file_name = extract_file_name(declared_file_name)
    if not is_legal_file_name(file_name):
        raise InvalidFileNameError("The file name is not legal.", file_name=file_name)

    if not raw_bytes:
        raise CertificateParseError("No certificate was passed.")

    passphrase = password.encode("utf-8") if password else None
    try:
        private_key, certificate, additional = pkcs12.load_key_and_certificates(
            raw_bytes, passphrase
        )
    except _PARSE_ERRORS as e:
        if passphrase is not None and _is_unprotected_without_key(raw_bytes):
            raise NoPrivateKeyError(context={"file_name": file_name}) from e
        raise CertificateParseError(
            f"Invalid certificate. Error message: {e}",
            context={"file_name": file_name},
            cause=e,
        ) from e

    if private_key is None:
        raise NoPrivateKeyError(context={"file_name": file_name})
    if certificate is None:
        raise CertificateParseError(
            "Invalid certificate. Error message: container holds a private key but no certificate",
            context={"file_name": file_name},
        )
    if _public_key_bytes(private_key.public_key()) != _public_key_bytes(
        certificate.public_key()
    ):
        raise NoPrivateKeyError(
            "Certificate private key does not match the certificate's public key.",
            context={"file_name": file_name},
        )

    imported = ImportedCertificate(
        certificate=certificate,
        private_key=private_key,
        file_name=file_name,
        additional_certificates=tuple(additional),
    )
    verify_exportable(imported)

    logger.info(
        f"Imported certificate '{file_name}' (subject {imported.subject}, thumbprint {imported.thumbprint})"
    )
    return imported
