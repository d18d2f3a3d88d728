import datetime
import json
from typing import List, Optional

from credkeeper import ReportingException, StorageError, ValidationError
from credkeeper._output import output
from credkeeper.config import Config

from .document import Document, check_document, decode, encode
from .encryption import EncryptedFile
from .environments import EnvironmentRegistry, check_name


def timestamp(now: Optional[datetime.datetime] = None) -> str:
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="seconds")


class SecretsStore:
    """Read and write the secrets of all environments of one installation.

    The store keeps no state besides its configuration: every call reads
    (or writes) the files again and decrypted documents are only handed to
    the caller.

    Failures on the read path are reported and result in an empty
    document. Mutating operations report failures and return False.

    """

    def __init__(self, config: Config):
        self.config = config
        self.registry = EnvironmentRegistry(config)
        self.keys = self.registry.keys

    def _load(self, environment: str) -> Document:
        paths = self.registry.resolve_paths(environment)
        if not paths.ciphertext.exists():
            output.annotate(
                f"No secrets for environment {environment}.", debug=True
            )
            return {}
        if not self.keys.key_exists(environment):
            output.annotate(
                f"No key for environment {environment}.", debug=True
            )
            return {}
        key = self.keys.load_key(environment)
        with EncryptedFile(paths.ciphertext) as f:
            text = f.read(key)
        try:
            return decode(text)
        except ReportingException as e:
            e.environment = environment
            raise

    def load(self, environment: str) -> Document:
        """Decrypt the secrets of `environment`.

        Like `read`, but errors are raised instead of being turned into an
        empty document, so callers can tell a broken file from an empty one.

        """
        try:
            return self._load(environment)
        except ReportingException as e:
            if e.environment is None:
                e.environment = environment
            raise

    def read(self, environment: str) -> Document:
        try:
            return self._load(environment)
        except ReportingException as e:
            output.error(f"Could not read secrets for {environment}.")
            e.report()
            return {}

    def write(self, environment: str, document: Document) -> bool:
        try:
            paths = self.registry.resolve_paths(environment)
            document = check_document(document)
            text = encode(document)
            try:
                self.config.credentials_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError.from_context(
                    self.config.credentials_dir, e
                ) from e
            if not self.keys.key_exists(environment):
                if paths.ciphertext.exists():
                    output.error(
                        f"Cannot write secrets for {environment}: "
                        f"{paths.ciphertext} exists but its key is missing."
                    )
                    return False
                self.keys.create_key(environment)
            key = self.keys.load_key(environment)
            with EncryptedFile(paths.ciphertext, writeable=True) as f:
                f.write(text, key)
        except ReportingException as e:
            output.error(f"Could not write secrets for {environment}.")
            e.report()
            return False
        output.annotate(f"Wrote secrets for {environment}.", debug=True)
        return True

    def export_json(self, environment: str) -> bytes:
        try:
            name = check_name(environment)
        except ValidationError:
            # Reported by `read` below.
            name = environment
        data = {
            "environment": name,
            "timestamp": timestamp(),
            "secrets": self.read(environment),
        }
        return json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")

    def import_json(self, environment: str, data: bytes) -> bool:
        try:
            payload = json.loads(data)
        except (ValueError, UnicodeDecodeError) as e:
            output.error(f"Could not parse import data: {e}")
            return False
        if isinstance(payload, dict) and "secrets" in payload:
            payload = payload["secrets"]
        try:
            payload = check_document(payload)
        except ValidationError as e:
            output.error("Could not import secrets.")
            e.report()
            return False
        return self.write(environment, payload)

    # API for front-ends

    def list_environments(self) -> List[str]:
        return self.registry.list()

    def read_secrets(self, environment: str) -> Document:
        return self.read(environment)

    def write_secrets(self, environment: str, document: Document) -> bool:
        return self.write(environment, document)

    def add_environment(self, name: str) -> bool:
        return self.registry.add(name)

    def remove_environment(self, name: str) -> bool:
        return self.registry.remove(name)

    def export_secrets(self, environment: str) -> bytes:
        return self.export_json(environment)

    def import_secrets(self, environment: str, data: bytes) -> bool:
        return self.import_json(environment, data)
