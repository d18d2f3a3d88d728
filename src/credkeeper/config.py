"""Installation settings.

A `Config` is built once at startup (from defaults, an optional ini file and
command line flags) and handed to the store and the command line front-end.
Nothing in credkeeper reads settings from module globals.

"""

import pathlib
from configparser import RawConfigParser
from typing import List, Optional

from configupdater import ConfigUpdater

from credkeeper._output import output

CONFIG_FILE = pathlib.Path("config") / "credkeeper.cfg"

DEFAULT_BASELINE = ["development", "test", "staging", "production"]

CONFIG_TEMPLATE = """\
# credkeeper settings. All options are optional.
[credkeeper]
# Name of the environment stored in config/credentials.yml.enc and
# decrypted with config/master.key.
main_environment = credentials
# Environments that are always listed and can not be removed.
baseline_environments = development, test, staging, production
# Key fallback variables: <prefix>_<ENVIRONMENT>_KEY.
env_var_prefix = RAILS
# Key fallback variable for the main environment.
master_key_env = RAILS_MASTER_KEY
# Restrict the command line to these environments. Empty allows all.
allowed_environments =
"""


class ConfigSection(dict):
    def as_list(self, option):
        result = self.get(option) or ""
        if "," in result:
            result = [x.strip() for x in result.split(",")]
        else:
            result = [x.strip() for x in result.split("\n")]
        return [x for x in result if x]


class Config(object):
    """Settings of one credkeeper installation."""

    main_environment = "credentials"
    env_var_prefix = "RAILS"
    master_key_env = "RAILS_MASTER_KEY"

    def __init__(
        self,
        root=".",
        main_environment: Optional[str] = None,
        baseline_environments: Optional[List[str]] = None,
        env_var_prefix: Optional[str] = None,
        master_key_env: Optional[str] = None,
        allowed_environments: Optional[List[str]] = None,
    ):
        self.root = pathlib.Path(root)
        if main_environment is not None:
            self.main_environment = main_environment
        self.baseline_environments = list(
            DEFAULT_BASELINE
            if baseline_environments is None
            else baseline_environments
        )
        if env_var_prefix is not None:
            self.env_var_prefix = env_var_prefix
        if master_key_env is not None:
            self.master_key_env = master_key_env
        self.allowed_environments = list(allowed_environments or [])

    @property
    def config_dir(self) -> pathlib.Path:
        return self.root / "config"

    @property
    def credentials_dir(self) -> pathlib.Path:
        return self.config_dir / "credentials"

    @property
    def config_file(self) -> pathlib.Path:
        return self.root / CONFIG_FILE

    @property
    def protected_environments(self) -> List[str]:
        return sorted(
            set(self.baseline_environments) | {self.main_environment}
        )

    def is_allowed(self, environment: str) -> bool:
        if not self.allowed_environments:
            return True
        return environment in self.allowed_environments

    @classmethod
    def from_file(cls, root="."):
        """Load settings for `root`, falling back to defaults for anything
        that `config/credkeeper.cfg` does not set (or if it does not exist).
        """
        root = pathlib.Path(root)
        path = root / CONFIG_FILE
        parser = RawConfigParser()
        parser.optionxform = lambda optionstr: optionstr
        if path.exists():
            output.annotate(f"Reading settings from {path}.", debug=True)
            parser.read(path)
        if not parser.has_section("credkeeper"):
            return cls(root)
        section = ConfigSection(parser.items("credkeeper"))
        kw = {}
        for option in ["main_environment", "env_var_prefix", "master_key_env"]:
            if section.get(option, "").strip():
                kw[option] = section[option].strip()
        if "baseline_environments" in section:
            kw["baseline_environments"] = section.as_list(
                "baseline_environments"
            )
        if "allowed_environments" in section:
            kw["allowed_environments"] = section.as_list(
                "allowed_environments"
            )
        return cls(root, **kw)

    def write(self):
        """Write the settings file, keeping comments of an existing one."""
        updater = ConfigUpdater()
        if self.config_file.exists():
            updater.read(str(self.config_file))
        else:
            updater.read_string(CONFIG_TEMPLATE)
        if not updater.has_section("credkeeper"):
            updater.add_section("credkeeper")
        section = updater["credkeeper"]
        section["main_environment"] = self.main_environment
        section["baseline_environments"] = ", ".join(
            self.baseline_environments
        )
        section["env_var_prefix"] = self.env_var_prefix
        section["master_key_env"] = self.master_key_env
        section["allowed_environments"] = ", ".join(self.allowed_environments)
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w") as f:
            updater.write(f)
        return self.config_file
