"""AES-CFB encryption for stored Jenkins API tokens.

WHY: Users' Jenkins API tokens sit in the key-value store between
commands. They must never be readable at rest, and a wrong or rotated key
must fail loudly instead of feeding garbage credentials to Jenkins.

HOW: Tokens are PKCS#7-padded to the AES block size and encrypted with AES
in CFB mode (128-bit segments) under the process-wide key. A fresh random
16-byte IV is prepended to the ciphertext and the whole thing is
URL-safe base64 encoded. Decryption reverses the steps and validates the
padding strictly.

RULES:
- Key must be 16, 24 or 32 bytes (AES-128/192/256)
- Output format: urlsafe_b64encode(iv || ciphertext), with "=" padding
- Format is byte-compatible with records written by the original plugin
- Any decode, length, padding, or UTF-8 failure raises DecryptError
- Never log plaintext or key material
"""

from __future__ import annotations

import base64
import binascii
import secrets

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from jenkins_slack.errors import DecryptError

BLOCK_SIZE = 16


def pad(data: bytes) -> bytes:
    """PKCS#7-pad data to a multiple of BLOCK_SIZE (1..BLOCK_SIZE bytes added)."""
    padding = BLOCK_SIZE - len(data) % BLOCK_SIZE
    return data + bytes([padding]) * padding


def unpad(data: bytes) -> bytes:
    """Strip PKCS#7 padding, raising DecryptError when it is inconsistent.

    RULES:
    - Empty input → DecryptError
    - Trailing byte 0, above BLOCK_SIZE, or above len(data) → DecryptError
    - Padding bytes that are not all equal → DecryptError
    """
    if not data:
        raise DecryptError("unpad error: empty message")

    padding = data[-1]
    if padding == 0 or padding > BLOCK_SIZE or padding > len(data):
        raise DecryptError(
            "unpad error. This could happen when incorrect encryption key is used"
        )
    if data[-padding:] != bytes([padding]) * padding:
        raise DecryptError(
            "unpad error. This could happen when incorrect encryption key is used"
        )
    return data[:-padding]


def encrypt(key: bytes, text: str) -> str:
    """Encrypt text with AES-CFB under key and return URL-safe base64.

    RULES:
    - A new random IV is generated for every call
    - Raises ValueError if the key length is not valid for AES
    """
    iv = secrets.token_bytes(BLOCK_SIZE)
    encryptor = Cipher(algorithms.AES(key), modes.CFB(iv)).encryptor()
    ciphertext = encryptor.update(pad(text.encode("utf-8"))) + encryptor.finalize()
    return base64.urlsafe_b64encode(iv + ciphertext).decode("ascii")


def decrypt(key: bytes, text: str) -> str:
    """Decrypt the output of encrypt() back to plaintext.

    WHY: CFB mode does not authenticate, so a wrong key "succeeds" at the
    cipher level. The strict padding check plus UTF-8 decoding is what
    turns a wrong key into an explicit DecryptError.

    RULES:
    - Invalid base64 → DecryptError
    - Decoded length not a multiple of BLOCK_SIZE, or shorter than IV plus
      one block → DecryptError
    - Padding or UTF-8 failure → DecryptError
    - Invalid key length → DecryptError
    """
    try:
        decoded = base64.urlsafe_b64decode(text.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise DecryptError("invalid ciphertext encoding: {}".format(exc))

    if len(decoded) % BLOCK_SIZE != 0:
        raise DecryptError("blocksize must be multiple of decoded message length")
    if len(decoded) < 2 * BLOCK_SIZE:
        raise DecryptError("ciphertext too short")

    iv, message = decoded[:BLOCK_SIZE], decoded[BLOCK_SIZE:]
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CFB(iv)).decryptor()
    except ValueError as exc:
        raise DecryptError("invalid encryption key: {}".format(exc))
    padded = decryptor.update(message) + decryptor.finalize()

    try:
        return unpad(padded).decode("utf-8")
    except UnicodeDecodeError:
        raise DecryptError(
            "decrypted token is not valid text; the encryption key is probably wrong"
        )
