"""Symmetric encryption for record payloads.

Triple DES in ECB mode with PKCS7 padding, keyed by the MD5 digest of a
caller-supplied secret. Output is base64 text. The scheme is deterministic
(no IV), so equal plaintexts produce equal ciphertexts. This keeps existing
save files readable, but it is weak: it hides content from casual editing and
is not meant as protection against a determined attacker.
"""

from __future__ import annotations

import base64
import binascii

from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, modes

from .errors import DecryptionError

BLOCK_SIZE_BITS = 64


def derive_key(secret: str) -> bytes:
    """Map a secret string to a 16 byte (two-key Triple DES) key.

    The cipher expands it to the equivalent 24 byte key before use.
    """
    if not isinstance(secret, str) or not secret:
        raise ValueError("secret must be a non-empty string")
    digest = hashes.Hash(hashes.MD5())
    digest.update(secret.encode("utf-8"))
    return digest.finalize()


def _cipher(secret: str) -> Cipher:
    key = derive_key(secret)
    # Spelled out as K1|K2|K1; cryptography deprecates passing the 16 byte form
    return Cipher(TripleDES(key + key[:8]), modes.ECB())


def encrypt(plaintext: str, secret: str) -> str:
    padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = _cipher(secret).encryptor()
    raw = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(raw).decode("ascii")


def decrypt(ciphertext: str, secret: str) -> str:
    """Reverse :func:`encrypt`. Raises DecryptionError on a wrong secret or corrupted input."""
    cipher = _cipher(secret)
    try:
        raw = base64.b64decode(ciphertext.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise DecryptionError("Ciphertext is not valid base64") from exc

    try:
        decryptor = cipher.decryptor()
        padded = decryptor.update(raw) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        data = unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        # bad block length or bad padding; usually the wrong secret
        raise DecryptionError("Could not decrypt payload (wrong secret or corrupted data)") from exc

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionError("Decrypted payload is not UTF-8 (wrong secret?)") from exc
