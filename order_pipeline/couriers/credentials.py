"""
credentials.py — Provider Credential Encryption

Provider API keys and secrets may be stored encrypted. Encrypted values carry
the `enc:` prefix followed by base64(salt[16] | iv[12] | AES-GCM ciphertext+tag);
the AES key is derived from CREDENTIALS_ENCRYPTION_KEY with PBKDF2-SHA256.
Values without the prefix are plaintext and pass through unchanged.
"""

import base64
import logging
import os
from dataclasses import replace

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import CREDENTIALS_ENCRYPTION_KEY
from ..domain import Provider
from ..errors import CredentialError

log = logging.getLogger(__name__)

ENCRYPTION_PREFIX = "enc:"
KDF_ITERATIONS = 100000


def _derive_key(secret: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=KDF_ITERATIONS)
    return kdf.derive(secret.encode())


def encrypt_credential(plain_text: str, secret: str = None) -> str:
    secret = secret or CREDENTIALS_ENCRYPTION_KEY
    if not secret:
        raise CredentialError("CREDENTIALS_ENCRYPTION_KEY is not configured")
    salt, iv = os.urandom(16), os.urandom(12)
    ciphertext = AESGCM(_derive_key(secret, salt)).encrypt(iv, plain_text.encode(), None)
    return ENCRYPTION_PREFIX + base64.b64encode(salt + iv + ciphertext).decode()


def decrypt_credential(value: str, secret: str = None) -> str:
    """
    Decrypts an `enc:` value; returns plaintext values unchanged.

    Raises:
        CredentialError: No key configured, or the value does not decrypt with it.
    """
    if not value or not value.startswith(ENCRYPTION_PREFIX):
        return value or ""
    secret = secret or CREDENTIALS_ENCRYPTION_KEY
    if not secret:
        raise CredentialError("CREDENTIALS_ENCRYPTION_KEY is not configured")
    try:
        combined = base64.b64decode(value[len(ENCRYPTION_PREFIX):])
        salt, iv, ciphertext = combined[:16], combined[16:28], combined[28:]
        return AESGCM(_derive_key(secret, salt)).decrypt(iv, ciphertext, None).decode()
    except (InvalidTag, ValueError) as e:
        raise CredentialError("Provider credentials could not be decrypted") from e


def with_decrypted_credentials(provider: Provider, secret: str = None) -> Provider:
    return replace(
        provider,
        api_key=decrypt_credential(provider.api_key, secret),
        api_secret=decrypt_credential(provider.api_secret, secret),
    )
