"""AES-128-GCM encryption for Salesforce tokens carried in session cookies."""

import os
import base64

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import ENCRYPTION_KEY

_NONCE_SIZE = 12


def _get_key() -> bytes:
    return bytes.fromhex(ENCRYPTION_KEY)


def encrypt_token(plaintext: str) -> str:
    aesgcm = AESGCM(_get_key())
    nonce = os.urandom(_NONCE_SIZE)
    sealed = aesgcm.encrypt(nonce, plaintext.encode(), None)
    return base64.urlsafe_b64encode(nonce + sealed).decode()


def decrypt_token(ciphertext: str) -> str:
    """Raises ``cryptography.exceptions.InvalidTag`` on tampered input."""
    data = base64.urlsafe_b64decode(ciphertext)
    nonce, sealed = data[:_NONCE_SIZE], data[_NONCE_SIZE:]
    return AESGCM(_get_key()).decrypt(nonce, sealed, None).decode()
