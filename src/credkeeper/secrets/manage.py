import datetime
import pathlib
import sys

from credkeeper import ReportingException, UnknownEnvironmentError
from credkeeper._output import output
from credkeeper.config import Config

from . import SecretsStore
from .document import encode
from .environments import check_name, normalize_name

MASK = "\N{BULLET}" * 8


def mask_value(value):
    value = str(value)
    if len(value) > 20:
        return value[:6] + MASK
    return MASK


def mask(document):
    """Replace all scalar values of `document` for display."""
    if isinstance(document, dict):
        return {k: mask(v) for k, v in document.items()}
    if isinstance(document, list):
        return [mask(v) for v in document]
    return mask_value(document)


def ensure_allowed(config: Config, environment: str) -> str:
    environment = check_name(environment)
    if not config.is_allowed(environment):
        raise UnknownEnvironmentError.from_context([environment])
    return environment


def list_environments(config: Config, **kw):
    store = SecretsStore(config)
    for name in store.list_environments():
        if not config.is_allowed(name):
            continue
        paths = store.registry.resolve_paths(name)
        flags = []
        if name == config.main_environment:
            flags.append("main")
        if store.registry.is_protected(name):
            flags.append("protected")
        if store.keys.key_exists(name):
            flags.append("key")
        if paths.ciphertext.exists():
            flags.append("secrets")
        print(f"{name}\t{', '.join(flags)}".rstrip())
    return 0


def show(config: Config, environment: str, reveal=False, **kw):
    environment = ensure_allowed(config, environment)
    store = SecretsStore(config)
    document = store.load(environment)
    if not document:
        print(f"No secrets for {environment}.")
        return 0
    if not reveal:
        document = mask(document)
    sys.stdout.write(encode(document))
    sys.stdout.flush()
    return 0


def add(config: Config, name: str, **kw):
    store = SecretsStore(config)
    if not store.add_environment(name):
        output.error(f"Could not add environment `{name}` or it exists.")
        return 1
    print(f"Environment `{name}` added.")
    return 0


def remove(config: Config, name: str, yes=False, **kw):
    environment = ensure_allowed(config, normalize_name(name))
    store = SecretsStore(config)
    if store.registry.is_protected(environment):
        output.error(f"Cannot remove protected environment `{environment}`.")
        return 1
    if not yes:
        answer = input(
            f"Remove environment `{environment}` with its key and secrets? "
            "This can not be undone. [y/N] "
        )
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1
    if not store.remove_environment(environment):
        output.error(f"Could not remove environment `{environment}`.")
        return 1
    print(f"Environment `{environment}` removed.")
    return 0


def export_filename(environment, now=None):
    now = now or datetime.datetime.now()
    return f"{environment}_secrets_{now.strftime('%Y%m%d_%H%M%S')}.json"


def export(config: Config, environment: str, output_file=None, **kw):
    environment = ensure_allowed(config, environment)
    store = SecretsStore(config)
    data = store.export_secrets(environment)
    if output_file == "-":
        sys.stdout.buffer.write(data + b"\n")
        sys.stdout.flush()
        return 0
    path = pathlib.Path(output_file or export_filename(environment))
    with open(path, "wb") as f:
        f.write(data)
    path.chmod(0o600)
    print(f"Exported {environment} to {path}.")
    return 0


def import_(config: Config, environment: str, input_file: str, **kw):
    environment = ensure_allowed(config, environment)
    store = SecretsStore(config)
    if input_file == "-":
        data = sys.stdin.buffer.read()
    else:
        with open(input_file, "rb") as f:
            data = f.read()
    if not store.import_secrets(environment, data):
        output.error(
            "Failed to import secrets. Please check the file format."
        )
        return 1
    print(f"Imported secrets into {environment}.")
    return 0


def init(config: Config, **kw):
    """Write the settings file and create the credentials directory."""
    if config.config_file.exists():
        print(f"Keeping existing {config.config_file}.")
    else:
        config.write()
        print(f"Wrote {config.config_file}.")
    config.credentials_dir.mkdir(parents=True, exist_ok=True)
    print(
        f"Keys for {config.main_environment} go to "
        f"{config.config_dir / 'master.key'}, keys for other environments "
        f"to {config.credentials_dir}/<environment>.key."
    )
    print("Never commit key files.")
    return 0


def run(func, **kw):
    """Call a command and turn reported errors into an exit code."""
    try:
        return func(**kw)
    except ReportingException as e:
        e.report()
        return 1
