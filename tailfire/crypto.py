"""
AES-256-GCM encryption for stored provider credentials.

The master key is 32 random bytes, taken from ``TAILFIRE_ENCRYPTION_KEY``
(base64) or from ``$TAILFIRE_WORKSPACE/.vault-key`` (chmod 600). Each payload
gets a unique 12-byte nonce.

The credential store only depends on the ``encrypt_object`` /
``decrypt_object`` pair, so any other encryption service with the same
two methods can be injected in place of ``EncryptionService``.
"""

from __future__ import annotations

import base64
import json
import os
import secrets
import stat
from pathlib import Path
from typing import Any, Protocol, TypedDict

BLOB_VERSION = 1

_cached_key: bytes | None = None


class EncryptedBlob(TypedDict):
    """Opaque JSON-serializable envelope persisted in ``encrypted_credentials``."""

    v: int
    nonce: str
    ciphertext: str


class Encryptor(Protocol):
    def encrypt_object(self, obj: Any) -> EncryptedBlob: ...

    def decrypt_object(self, blob: EncryptedBlob) -> Any: ...


def init_master_key(workspace: Path | str) -> Path:
    """Generate a new master key file. Returns the path. Idempotent — skips if exists."""
    key_path = Path(workspace) / ".vault-key"
    if key_path.exists():
        return key_path
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(secrets.token_bytes(32))
    key_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 600
    return key_path


def get_master_key(workspace: Path | str | None = None) -> bytes:
    """Load the master key from the environment or disk (cached after first read)."""
    global _cached_key
    if _cached_key is not None:
        return _cached_key

    env_key = os.environ.get("TAILFIRE_ENCRYPTION_KEY")
    if env_key:
        key = base64.b64decode(env_key)
    else:
        if workspace is None:
            workspace = os.environ.get("TAILFIRE_WORKSPACE", Path.home() / "tailfire")
        key_path = Path(workspace) / ".vault-key"
        if not key_path.exists():
            raise FileNotFoundError(
                f"Encryption master key not found at {key_path}. "
                "Set TAILFIRE_ENCRYPTION_KEY or run 'tailfire credentials init-key'."
            )
        key = key_path.read_bytes()
    if len(key) != 32:
        raise ValueError(f"Encryption master key must be 32 bytes, got {len(key)}")
    _cached_key = key
    return _cached_key


def reset_key_cache() -> None:
    """Clear the cached master key (for testing)."""
    global _cached_key
    _cached_key = None


def encrypt(plaintext: bytes, master_key: bytes) -> tuple[bytes, bytes]:
    """Encrypt with AES-256-GCM. Returns (nonce, ciphertext + 16-byte tag)."""
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    nonce = secrets.token_bytes(12)
    return nonce, AESGCM(master_key).encrypt(nonce, plaintext, None)


def decrypt(nonce: bytes, ciphertext: bytes, master_key: bytes) -> bytes:
    """Decrypt ciphertext + tag back to plaintext bytes."""
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    if len(nonce) != 12 or len(ciphertext) < 16:
        raise ValueError("Encrypted data too short")
    return AESGCM(master_key).decrypt(nonce, ciphertext, None)


class EncryptionService:
    """Encrypts JSON-like objects into ``EncryptedBlob`` envelopes."""

    def __init__(self, master_key: bytes | None = None):
        self._master_key = master_key

    @property
    def master_key(self) -> bytes:
        if self._master_key is None:
            self._master_key = get_master_key()
        return self._master_key

    def encrypt_object(self, obj: Any) -> EncryptedBlob:
        payload = json.dumps(obj, separators=(",", ":")).encode("utf-8")
        nonce, ciphertext = encrypt(payload, self.master_key)
        return {
            "v": BLOB_VERSION,
            "nonce": base64.b64encode(nonce).decode("ascii"),
            "ciphertext": base64.b64encode(ciphertext).decode("ascii"),
        }

    def decrypt_object(self, blob: EncryptedBlob) -> Any:
        if blob.get("v") != BLOB_VERSION:
            raise ValueError(f"Unsupported encrypted blob version: {blob.get('v')}")
        plaintext = decrypt(
            base64.b64decode(blob["nonce"]),
            base64.b64decode(blob["ciphertext"]),
            self.master_key,
        )
        return json.loads(plaintext.decode("utf-8"))
