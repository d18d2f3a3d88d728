import base64
import binascii
import fcntl
import os
import pathlib
import tempfile
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from credkeeper import DecryptError, FileLockedError, StorageError
from credkeeper._output import output

NONCE_SIZE = 12
TAG_SIZE = 16
SEPARATOR = b"--"


def _b64encode(data: bytes) -> bytes:
    return base64.b64encode(data)


def _b64decode(part: bytes) -> bytes:
    # Only accept the canonical encoding so every byte of a blob is covered
    # by the authentication tag.
    try:
        data = base64.b64decode(part, validate=True)
    except (binascii.Error, ValueError):
        raise DecryptError.from_context("invalid base64 encoding")
    if base64.b64encode(data) != part:
        raise DecryptError.from_context("non-canonical base64 encoding")
    return data


def encrypt(text: str, key: bytes) -> bytes:
    """Encrypt `text` with AES-GCM.

    The blob is `b64(ciphertext)--b64(nonce)--b64(tag)`. A fresh nonce is
    used for every call, so encrypting the same text twice gives different
    blobs.

    """
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(key).encrypt(nonce, text.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return SEPARATOR.join(
        [_b64encode(ciphertext), _b64encode(nonce), _b64encode(tag)]
    )


def decrypt(blob: bytes, key: bytes) -> str:
    """Decrypt a blob produced by `encrypt`.

    Raises `DecryptError` for a wrong key and for any modification of the
    blob. Never returns partial plaintext.

    """
    parts = blob.split(SEPARATOR)
    if len(parts) != 3:
        raise DecryptError.from_context("malformed ciphertext")
    ciphertext, nonce, tag = [_b64decode(part) for part in parts]
    if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
        raise DecryptError.from_context("malformed ciphertext")
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag:
        raise DecryptError.from_context("wrong key or corrupted ciphertext")
    except ValueError as e:
        raise DecryptError.from_context(str(e))
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError:
        raise DecryptError.from_context("plaintext is not valid UTF-8")


class EncryptedFile:
    """One ciphertext file, locked while in use.

    Use as a context manager: readers take a shared lock, writers an
    exclusive one. Locks are non-blocking; if another process holds a
    conflicting lock `FileLockedError` is raised.

    """

    def __init__(self, path: "pathlib.Path", writeable: bool = False):
        self.path = pathlib.Path(path)
        self.writeable = writeable
        self.fd = None
        self.is_new: Optional[bool] = None

    @property
    def locked(self) -> bool:
        return self.fd is not None

    def __enter__(self):
        self._lock()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self._unlock()

    def _lock(self):
        if self.locked:
            raise FileLockedError.from_context(self.path)
        self.is_new = False
        try:
            if self.writeable and not self.path.exists():
                self.is_new = True
                self.path.touch(mode=0o600)
            self.fd = open(self.path, "rb+" if self.writeable else "rb")
        except OSError as e:
            raise StorageError.from_context(self.path, e) from e
        output.annotate(f"Locking `{self.path}`", debug=True)
        try:
            fcntl.lockf(
                self.fd,
                fcntl.LOCK_NB  # non-blocking
                | (
                    fcntl.LOCK_EX  # exclusive
                    if self.writeable
                    else fcntl.LOCK_SH  # shared
                ),
            )
        except OSError:
            self._unlock()
            raise FileLockedError.from_context(self.path)

    def _unlock(self):
        if self.fd is not None:
            output.annotate(f"Unlocking `{self.path}`", debug=True)
            self.fd.close()
            self.fd = None
        if self.is_new:
            self.path.unlink()
            self.is_new = False

    def read(self, key: bytes) -> str:
        if not self.locked:
            raise RuntimeError("File not locked")
        try:
            blob = self.path.read_bytes()
        except OSError as e:
            raise StorageError.from_context(self.path, e) from e
        if not blob:
            return ""
        try:
            return decrypt(blob, key)
        except DecryptError as e:
            e.path = str(self.path)
            raise

    def write(self, text: str, key: bytes):
        """Encrypt and store `text`.

        The blob goes to a temporary file next to the target, which then
        replaces the target. Readers see either the old or the new content.

        """
        if not self.locked:
            raise RuntimeError("File not locked")
        if not self.writeable:
            raise RuntimeError("File not writeable")
        blob = encrypt(text, key)
        fd, tmp = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=".", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, str(self.path))
        except OSError as e:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise StorageError.from_context(self.path, e) from e
        self.is_new = False

    def delete(self):
        """Remove the file while holding the exclusive lock."""
        if not self.locked:
            raise RuntimeError("File not locked")
        if not self.writeable:
            raise RuntimeError("File not writeable")
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError.from_context(self.path, e) from e
        self.is_new = False
