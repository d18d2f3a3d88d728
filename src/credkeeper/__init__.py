import os.path
from typing import Optional

from ._output import output

with open(os.path.dirname(__file__) + "/version.txt") as f:
    __version__ = f.read().strip()


class ReportingException(Exception):
    """Exceptions that support user-readable reporting."""

    environment: Optional[str] = None

    def __str__(self):
        raise NotImplementedError()

    def report(self):
        raise NotImplementedError()


class FileLockedError(ReportingException):
    """A file is already locked and we do not want to block."""

    filename: str

    @classmethod
    def from_context(cls, filename):
        self = cls()
        self.filename = str(filename)
        return self

    def __str__(self):
        return "File already locked: {}".format(self.filename)

    def report(self):
        output.error(str(self))


class KeyNotFound(ReportingException):
    """Neither a key file nor the fallback variable provides a key."""

    key_path: str
    env_var: str

    @classmethod
    def from_context(cls, environment, key_path, env_var):
        self = cls()
        self.environment = environment
        self.key_path = str(key_path)
        self.env_var = env_var
        return self

    def __str__(self):
        return (
            f"No key for environment `{self.environment}`: "
            f"{self.key_path} is missing and ${self.env_var} is not set"
        )

    def report(self):
        output.error(f"No key for environment `{self.environment}`")
        output.tabular("key file", self.key_path, red=True)
        output.tabular("variable", self.env_var)


class ParseError(ReportingException):
    """The decrypted text is not a valid secrets document."""

    message: str

    @classmethod
    def from_context(cls, message, environment=None):
        self = cls()
        self.message = str(message)
        self.environment = environment
        return self

    def __str__(self):
        if self.environment:
            return (
                f"Malformed secrets for environment `{self.environment}`: "
                f"{self.message}"
            )
        return f"Malformed secrets: {self.message}"

    def report(self):
        output.error("Malformed secrets document")
        if self.environment:
            output.tabular("environment", self.environment, red=True)
        output.tabular("message", self.message, separator=":\n")


class DecryptError(ReportingException):
    """Authentication of an encrypted blob failed.

    Raised for a wrong key as well as for corrupted or tampered ciphertext.
    The cipher never hands out partial plaintext.

    """

    path: Optional[str] = None
    reason: str

    @classmethod
    def from_context(cls, reason, path=None, environment=None):
        self = cls()
        self.reason = reason
        self.path = str(path) if path is not None else None
        self.environment = environment
        return self

    def __str__(self):
        if self.path:
            return f"Could not decrypt {self.path}: {self.reason}"
        return f"Could not decrypt: {self.reason}"

    def report(self):
        output.error("Could not decrypt secrets")
        if self.environment:
            output.tabular("environment", self.environment, red=True)
        if self.path:
            output.tabular("file", self.path)
        output.tabular("reason", self.reason)


class StorageError(ReportingException):
    """Reading or writing a file failed."""

    path: str
    error: str

    @classmethod
    def from_context(cls, path, error):
        self = cls()
        self.path = str(path)
        self.error = (
            error.strerror if getattr(error, "strerror", None) else str(error)
        )
        return self

    def __str__(self):
        return f"Error while accessing {self.path}: {self.error}"

    def report(self):
        output.error("Error while accessing file")
        output.tabular("file", self.path, red=True)
        output.tabular("message", self.error)


class ValidationError(ReportingException):
    """Rejected input: bad environment names, blank input, bad values."""

    message: str

    @classmethod
    def from_context(cls, message):
        self = cls()
        self.message = message
        return self

    def __str__(self):
        return self.message

    def report(self):
        output.error(self.message)


class InvalidKeyError(ValidationError):
    """Key material is present but unusable."""

    @classmethod
    def from_context(cls, environment, source):
        self = cls()
        self.environment = environment
        self.message = (
            f"Invalid key for environment `{environment}` in {source}: "
            "expected 32, 48 or 64 hex characters or 16, 24 or 32 raw bytes"
        )
        return self


class UnknownEnvironmentError(ReportingException):
    """There is/are no environment(s) for this name(s)."""

    names: list

    @classmethod
    def from_context(cls, names):
        self = cls()
        self.names = list(names)
        return self

    def __str__(self):
        return f'Unknown environment(s): {", ".join(self.names)}'

    def report(self):
        output.error(str(self))
