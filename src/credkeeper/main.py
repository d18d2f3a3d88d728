import argparse
import os
import sys
import textwrap
from typing import Optional

import importlib_resources

import credkeeper.secrets.edit
import credkeeper.secrets.manage
from credkeeper._output import TerminalBackend, output
from credkeeper.config import Config


def main(args: Optional[list] = None) -> None:
    version = (
        importlib_resources.files("credkeeper")
        .joinpath("version.txt")
        .read_text()
        .strip()
    )
    parser = argparse.ArgumentParser(
        description=(
            "credkeeper v{}: per-environment encrypted application secrets"
        ).format(version),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.set_defaults(func=parser.print_usage)

    parser.add_argument(
        "-d", "--debug", action="store_true", help="Enable debug mode."
    )
    parser.add_argument(
        "-r",
        "--root",
        default=os.environ.get("CREDKEEPER_ROOT", "."),
        help="Application root containing the config/ directory.",
    )

    subparsers = parser.add_subparsers()

    p = subparsers.add_parser(
        "list", help="List environments and whether keys/secrets exist."
    )
    p.set_defaults(func=credkeeper.secrets.manage.list_environments)

    p = subparsers.add_parser(
        "show", help="Show the secrets of an environment (masked)."
    )
    p.add_argument("environment", help="Environment to show.")
    p.add_argument(
        "--reveal",
        action="store_true",
        help="Show the actual values instead of masking them.",
    )
    p.set_defaults(func=credkeeper.secrets.manage.show)

    p = subparsers.add_parser(
        "edit",
        help=textwrap.dedent(
            """
            Encrypted secrets editor utility. Decrypts the secrets, invokes
            the editor on their YAML form, and encrypts them again. Creates
            the environment's key if neither key nor secrets exist.
        """
        ),
    )
    p.add_argument(
        "--editor",
        "-e",
        metavar="EDITOR",
        default=os.environ.get("EDITOR", "vi"),
        help="Invoke EDITOR to edit (default: $EDITOR or vi)",
    )
    p.add_argument(
        "environment", help="Environment to edit secrets for.", type=str
    )
    p.set_defaults(func=credkeeper.secrets.edit.main)

    p = subparsers.add_parser(
        "add", help="Add an environment with a new key and no secrets."
    )
    p.add_argument("name", help="Name of the environment.")
    p.set_defaults(func=credkeeper.secrets.manage.add)

    p = subparsers.add_parser(
        "remove", help="Remove an environment's key and secrets."
    )
    p.add_argument("name", help="Name of the environment.")
    p.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Do not ask for confirmation.",
    )
    p.set_defaults(func=credkeeper.secrets.manage.remove)

    p = subparsers.add_parser(
        "export", help="Export the secrets of an environment as JSON."
    )
    p.add_argument("environment", help="Environment to export.")
    p.add_argument(
        "--output",
        "-o",
        dest="output_file",
        default=None,
        help="File to write to, `-` for stdout. "
        "(default: <environment>_secrets_<timestamp>.json)",
    )
    p.set_defaults(func=credkeeper.secrets.manage.export)

    p = subparsers.add_parser(
        "import",
        help="Replace the secrets of an environment with a JSON export "
        "or a plain JSON object.",
    )
    p.add_argument("environment", help="Environment to import into.")
    p.add_argument("input_file", help="JSON file to import, `-` for stdin.")
    p.set_defaults(func=credkeeper.secrets.manage.import_)

    p = subparsers.add_parser(
        "init", help="Write config/credkeeper.cfg with the default settings."
    )
    p.set_defaults(func=credkeeper.secrets.manage.init)

    args = parser.parse_args(args)

    # Consume global arguments
    output.enable_debug = args.debug

    # Pass over to function
    if args.func.__name__ == "print_usage":
        args.func()
        sys.exit(1)

    output.backend = TerminalBackend()

    func_args = dict(args._get_kwargs())
    del func_args["func"]
    del func_args["debug"]
    func_args["config"] = Config.from_file(func_args.pop("root"))
    sys.exit(credkeeper.secrets.manage.run(args.func, **func_args))
