"""
Password-based authenticated encryption for sync payloads.

    plaintext -> gzip -> AES-256-GCM(key = PBKDF2-SHA256(password, salt))

Salt and IV are fresh per call and travel in the clear next to the
ciphertext. The three pieces pack into one base64 string so they can
ride inside a JSON payload or a QR code.

A wrong password and a tampered ciphertext both surface as
InvalidPassword. The caller cannot tell them apart, and neither can
anyone probing the decryptor.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import logging
import os
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import InvalidPassword, MalformedInput

logger = logging.getLogger("cjsync.crypto")

PBKDF2_ITERATIONS = 1_000_000
SALT_LENGTH = 32
IV_LENGTH = 12
KEY_LENGTH = 32


@dataclass(frozen=True)
class EncryptedEnvelope:
    """Everything needed to decrypt a payload except the password."""

    salt: bytes
    iv: bytes
    cipher_text: bytes


def derive_key(password: str, salt: bytes, iterations: Optional[int] = None) -> bytes:
    """Stretch a password into a 256-bit AES key with PBKDF2-HMAC-SHA256.

    Args:
        password: User password.
        salt: Random salt, SALT_LENGTH bytes.
        iterations: Work factor. Defaults to PBKDF2_ITERATIONS.

    Returns:
        bytes: 32-byte key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations or PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(data: str, password: str, iterations: Optional[int] = None) -> EncryptedEnvelope:
    """Compress and encrypt a string.

    Args:
        data: Plaintext, typically a JSON payload.
        password: User password.
        iterations: PBKDF2 work factor override.

    Returns:
        EncryptedEnvelope: Fresh salt, fresh IV, and the GCM ciphertext.
    """
    compressed = gzip.compress(data.encode("utf-8"))
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = derive_key(password, salt, iterations)
    cipher_text = AESGCM(key).encrypt(iv, compressed, None)
    return EncryptedEnvelope(salt=salt, iv=iv, cipher_text=cipher_text)


def decrypt(envelope: EncryptedEnvelope, password: str, iterations: Optional[int] = None) -> str:
    """Decrypt and decompress an envelope.

    Args:
        envelope: Output of encrypt() or unpack().
        password: User password.
        iterations: PBKDF2 work factor override; must match encryption.

    Returns:
        str: The original plaintext.

    Raises:
        InvalidPassword: Authentication failed (wrong password or tampering).
        MalformedInput: Authentication passed but the plaintext is not gzip text.
    """
    key = derive_key(password, envelope.salt, iterations)
    try:
        compressed = AESGCM(key).decrypt(envelope.iv, envelope.cipher_text, None)
    except InvalidTag:
        logger.debug("Authenticated decryption failed")
        raise InvalidPassword() from None

    try:
        return gzip.decompress(compressed).decode("utf-8")
    except (OSError, EOFError, UnicodeDecodeError) as exc:
        raise MalformedInput(f"Decrypted payload is not compressed text: {exc}") from exc


def pack(envelope: EncryptedEnvelope) -> str:
    """Pack an envelope as base64(salt || iv || cipher_text)."""
    merged = envelope.salt + envelope.iv + envelope.cipher_text
    return base64.b64encode(merged).decode("ascii")


def unpack(packed: str) -> EncryptedEnvelope:
    """Split a packed string back into salt, IV and ciphertext.

    Raises:
        MalformedInput: Not base64, or too short to hold salt and IV.
    """
    if not isinstance(packed, str):
        raise MalformedInput("Encrypted data must be a string")
    try:
        raw = base64.b64decode(packed, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedInput(f"Encrypted data is not base64: {exc}") from exc

    if len(raw) <= SALT_LENGTH + IV_LENGTH:
        raise MalformedInput("Invalid encrypted data length")

    return EncryptedEnvelope(
        salt=raw[:SALT_LENGTH],
        iv=raw[SALT_LENGTH:SALT_LENGTH + IV_LENGTH],
        cipher_text=raw[SALT_LENGTH + IV_LENGTH:],
    )


def encrypt_packed(data: str, password: str, iterations: Optional[int] = None) -> str:
    """encrypt() then pack()."""
    return pack(encrypt(data, password, iterations))


def decrypt_packed(packed: str, password: str, iterations: Optional[int] = None) -> str:
    """unpack() then decrypt()."""
    return decrypt(unpack(packed), password, iterations)
