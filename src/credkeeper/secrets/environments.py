import pathlib
import re
from typing import List, NamedTuple

from credkeeper import ReportingException, StorageError, ValidationError
from credkeeper._output import output
from credkeeper.config import Config

from .document import encode
from .encryption import EncryptedFile
from .keys import KeyStore

CIPHERTEXT_SUFFIX = ".yml.enc"
KEY_SUFFIX = ".key"

VALID_NAME = re.compile(r"^[a-z0-9_]+$")


class EnvironmentPaths(NamedTuple):
    ciphertext: pathlib.Path
    key: pathlib.Path
    env_var: str


def normalize_name(name) -> str:
    """Lowercase `name` and replace anything but [a-z0-9_] with `_`."""
    name = (name or "").strip()
    if not name:
        raise ValidationError.from_context("Environment name is blank")
    return re.sub(r"[^a-z0-9_]", "_", name.lower())


def check_name(name) -> str:
    """Lowercase `name` and make sure it is a valid environment name."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError.from_context("Environment name is blank")
    name = name.strip().lower()
    if not VALID_NAME.match(name):
        raise ValidationError.from_context(
            f"Invalid environment name `{name}`: "
            "only a-z, 0-9 and _ are allowed"
        )
    return name


class EnvironmentRegistry:
    """Knows which environments exist and where their files are."""

    def __init__(self, config: Config):
        self.config = config
        self.keys = KeyStore(self)

    def resolve_paths(self, environment: str) -> EnvironmentPaths:
        environment = check_name(environment)
        if environment == self.config.main_environment:
            return EnvironmentPaths(
                self.config.config_dir / f"credentials{CIPHERTEXT_SUFFIX}",
                self.config.config_dir / "master.key",
                self.config.master_key_env,
            )
        return EnvironmentPaths(
            self.config.credentials_dir / f"{environment}{CIPHERTEXT_SUFFIX}",
            self.config.credentials_dir / f"{environment}{KEY_SUFFIX}",
            f"{self.config.env_var_prefix}_{environment.upper()}_KEY",
        )

    def discover(self) -> List[str]:
        """Names of all ciphertext files in the credentials directory."""
        found = []
        for path in self.config.credentials_dir.glob(f"*{CIPHERTEXT_SUFFIX}"):
            if not path.is_file():
                continue
            name = path.name[: -len(CIPHERTEXT_SUFFIX)]
            if not VALID_NAME.match(name):
                output.annotate(f"Ignoring {path}.", debug=True)
                continue
            found.append(name)
        return found

    def list(self) -> List[str]:
        names = {self.config.main_environment}
        names.update(self.config.baseline_environments)
        names.update(self.discover())
        return sorted(names)

    def is_protected(self, environment: str) -> bool:
        return environment in self.config.protected_environments

    def add(self, name) -> bool:
        """Create a new environment with a fresh key and no secrets.

        Returns False for blank names and for environments that already
        have a key (as a file or in their variable) or a ciphertext file.

        """
        try:
            environment = normalize_name(name)
        except ValidationError as e:
            e.report()
            return False
        paths = self.resolve_paths(environment)
        try:
            exists = paths.ciphertext.exists() or self.keys.key_exists(
                environment
            )
        except ReportingException as e:
            e.report()
            return False
        if exists:
            output.annotate(
                f"Environment {environment} already exists.", debug=True
            )
            return False
        try:
            key = self.keys.create_key(environment)
            paths.ciphertext.parent.mkdir(parents=True, exist_ok=True)
            with EncryptedFile(paths.ciphertext, writeable=True) as f:
                f.write(encode({}), key)
        except OSError as e:
            StorageError.from_context(paths.ciphertext.parent, e).report()
            return False
        except ReportingException as e:
            e.report()
            return False
        output.annotate(f"Added environment {environment}.", debug=True)
        return True

    def remove(self, name) -> bool:
        """Delete an environment's ciphertext and key.

        Names are normalised like `add` does. Protected environments are
        refused. Missing files are fine, so removing twice succeeds twice.
        The ciphertext is deleted while holding its exclusive lock, so an
        environment that is being read or written can not be removed.

        """
        try:
            environment = normalize_name(name)
        except ValidationError as e:
            e.report()
            return False
        if self.is_protected(environment):
            output.annotate(
                f"Refusing to remove protected environment {environment}.",
                debug=True,
            )
            return False
        paths = self.resolve_paths(environment)
        try:
            if paths.ciphertext.exists():
                with EncryptedFile(paths.ciphertext, writeable=True) as f:
                    f.delete()
            self.keys.delete_key(environment)
        except ReportingException as e:
            e.report()
            return False
        output.annotate(f"Removed environment {environment}.", debug=True)
        return True
