import binascii
import os
from typing import TYPE_CHECKING

from credkeeper import InvalidKeyError, KeyNotFound, StorageError
from credkeeper._output import output

if TYPE_CHECKING:
    from .environments import EnvironmentRegistry

KEY_SIZE = 32  # bytes
VALID_KEY_SIZES = (16, 24, 32)


def parse_key(material: bytes, environment: str, source: str) -> bytes:
    """Turn key material into key bytes.

    Hex encoded material is preferred; anything else of a valid key size is
    used as the raw key.

    """
    try:
        key = binascii.unhexlify(material.strip())
    except (binascii.Error, ValueError):
        key = None
    if key is not None and len(key) in VALID_KEY_SIZES:
        return key
    if len(material) in VALID_KEY_SIZES:
        return material
    raise InvalidKeyError.from_context(environment, source)


class KeyStore:
    """Per-environment key material.

    Keys live in key files, hex-encoded (as `create_key` writes them) or as
    raw bytes. If the key file is missing the key is taken from an
    environment variable instead (see `EnvironmentRegistry.resolve_paths`).

    """

    def __init__(self, registry: "EnvironmentRegistry"):
        self.registry = registry

    def _read_file(self, path):
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return b""
        except OSError as e:
            raise StorageError.from_context(path, e) from e

    def key_exists(self, environment: str) -> bool:
        paths = self.registry.resolve_paths(environment)
        if self._read_file(paths.key).strip():
            return True
        return bool(os.environ.get(paths.env_var, "").strip())

    def load_key(self, environment: str) -> bytes:
        paths = self.registry.resolve_paths(environment)
        material = self._read_file(paths.key)
        if material.strip():
            return parse_key(material, environment, str(paths.key))
        material = os.environ.get(paths.env_var, "").strip()
        if material:
            output.annotate(
                f"Using ${paths.env_var} as key for {environment}.",
                debug=True,
            )
            return parse_key(
                os.fsencode(material), environment, f"${paths.env_var}"
            )
        raise KeyNotFound.from_context(environment, paths.key, paths.env_var)

    def create_key(self, environment: str) -> bytes:
        """Create a new random key file for `environment`.

        An existing key file is never replaced; its key is returned instead.
        Callers must check `key_exists` first if they care whether the
        returned key is a new one.

        """
        paths = self.registry.resolve_paths(environment)
        if self._read_file(paths.key).strip():
            return self.load_key(environment)
        key = os.urandom(KEY_SIZE)
        try:
            paths.key.parent.mkdir(parents=True, exist_ok=True)
            if paths.key.exists():
                # Left empty by someone else, take it over.
                paths.key.unlink()
            fd = os.open(
                str(paths.key), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600
            )
            with os.fdopen(fd, "w") as f:
                f.write(binascii.hexlify(key).decode("ascii"))
            os.chmod(str(paths.key), 0o600)
        except FileExistsError:
            # Lost a race against another writer; theirs wins.
            return self.load_key(environment)
        except OSError as e:
            raise StorageError.from_context(paths.key, e) from e
        output.annotate(f"Created key {paths.key}.", debug=True)
        return key

    def delete_key(self, environment: str) -> bool:
        paths = self.registry.resolve_paths(environment)
        try:
            paths.key.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError.from_context(paths.key, e) from e
        return True
