"""Securely edit encrypted secrets."""

import subprocess
import sys
import tempfile
import traceback

from credkeeper._output import output

from . import SecretsStore
from .document import decode, encode
from .manage import ensure_allowed

NEW_FILE_TEMPLATE = """\
# Secrets for {environment}, as YAML. For example:
#
# api_key: 0123456789abcdef
# aws:
#   access_key_id: AKIA...
#   secret_access_key: ...
"""


class Editor(object):
    def __init__(self, editor_cmd, store: SecretsStore, environment: str):
        self.editor_cmd = editor_cmd
        self.store = store
        self.environment = environment

    def main(self):
        document = self.store.load(self.environment)
        self.original_cleartext = encode(document)
        self.cleartext = self.original_cleartext
        if not document:
            self.cleartext = NEW_FILE_TEMPLATE.format(
                environment=self.environment
            )
        self.interact()

    def _input(self):
        return input("> ").strip()

    def interact(self):
        cmd = "edit"
        while cmd != "quit":
            try:
                self.process_cmd(cmd)
            except Exception as e:
                print()
                print()
                print(f"An error occurred: {e}")
                if output.enable_debug:
                    print("Traceback:")
                    print(traceback.format_exc())
                print()
                print("Your changes are still available. You can try:")
                print("\tedit       -- opens editor with current data again")
                print("\tencrypt    -- tries to encrypt current data again")
                print("\tquit       -- quits and loses your changes")
                cmd = self._input()
            else:
                break

    def process_cmd(self, cmd):
        if cmd == "edit":
            self.edit()
            self.encrypt()
        elif cmd == "encrypt":
            self.encrypt()
        elif cmd == "":
            raise ValueError("empty command")
        else:
            raise ValueError("unknown command `{}`".format(cmd))

    def encrypt(self):
        document = decode(self.cleartext)
        if encode(document) == self.original_cleartext:
            print("No changes from original cleartext. Not updating.")
            return
        if not self.store.write(self.environment, document):
            raise RuntimeError(
                f"Could not write secrets for {self.environment}"
            )
        self.original_cleartext = encode(document)
        print(f"Updated secrets for {self.environment}.")

    def edit(self):
        with tempfile.NamedTemporaryFile(
            prefix="edit", suffix=".yml", mode="w+", encoding="utf-8"
        ) as clearfile:
            clearfile.write(self.cleartext)
            clearfile.flush()

            args = [self.editor_cmd + " " + clearfile.name]
            output.annotate(
                "Running editor with command: {}".format(args), debug=True
            )
            subprocess.check_call(args, shell=True)

            with open(clearfile.name, "r", encoding="utf-8") as new_clearfile:
                self.cleartext = new_clearfile.read()


def main(editor, environment, config, **kw):
    """Secrets editor console script.

    The main focus here is to avoid having unencrypted files accidentally
    ending up in the application repository.

    """
    try:
        environment = ensure_allowed(config, environment)
        editor = Editor(editor, SecretsStore(config), environment)
        editor.main()
    except Exception as e:
        # only print traceback if we're in debug mode
        if output.enable_debug:
            traceback.print_exc()
        print(e, file=sys.stderr)
        return 1
    return 0
