import json
import logging
import os.path
import ast
from typing import Dict, FrozenSet, NamedTuple, Sequence, Any, Tuple, Optional
from aptly_ops.aptly import SigningConfig, DefaultSigningConfig, PublishTarget

log = logging.getLogger(__name__)


CONFIG_FILE_SUFFIXES = ("json", "conf", "cfg")
DEFAULT_CONFIG_FILE_LOCATIONS_PATTERNS: Tuple[str, ...] = ("/etc/aptly-ops.",)

if "HOME" in os.environ:
    DEFAULT_CONFIG_FILE_LOCATIONS_PATTERNS = (
        os.path.join(os.environ["HOME"], "aptly-ops."),
        os.path.join(os.environ["HOME"], ".aptly-ops."),
        os.path.join(os.environ["HOME"], ".config/aptly-ops."),
    ) + DEFAULT_CONFIG_FILE_LOCATIONS_PATTERNS

DEFAULT_CONFIG_FILE_LOCATIONS = tuple(
    file + suf
    for file in DEFAULT_CONFIG_FILE_LOCATIONS_PATTERNS
    for suf in CONFIG_FILE_SUFFIXES
)

BACKENDS = ("cli", "api")
MAIL_TRANSPORTS = ("smtp", "command")


class MailConfig(NamedTuple):
    """How notifications are delivered"""

    transport: str = "smtp"
    command: str = "mailx"
    smtp_host: str = "localhost"
    smtp_port: int = 25


class Config(NamedTuple):
    """Settings for a run. Built once by load_config"""

    backend: str = "cli"
    aptly_cmd: str = "aptly"
    aptly_config: Optional[str] = None
    url: str = "http://localhost:8080/"
    connect_timeout: Optional[float] = 15.0
    read_timeout: Optional[float] = None
    mail_recipients: Tuple[str, ...] = ()
    admin: Tuple[str, ...] = ()
    mail_from: str = "root@localhost"
    mail: MailConfig = MailConfig()
    signing: SigningConfig = DefaultSigningConfig
    merge: FrozenSet[str] = frozenset()
    snapshot_keep: int = 5
    publish: Dict[str, PublishTarget] = {}
    log_dir: Optional[str] = None

    def publish_target(self, repository: str) -> PublishTarget:
        """Publish switched for repository. By default distribution is named after it"""
        return self.publish.get(repository, PublishTarget(distribution=repository))


def _address_list(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = value.replace(",", " ").split()
    return tuple(addr for addr in value if addr)


def _read_config_file(path: Optional[str]) -> Dict[str, Any]:
    config = {}
    if path:
        try:
            with open(path, "r") as file:
                config = json.load(file)
        except (OSError, json.JSONDecodeError) as exc:
            raise ValueError(f"Failed to load config from {path}: {exc}") from exc
        log.info("Loaded config from %s", path)
    else:
        for try_path in DEFAULT_CONFIG_FILE_LOCATIONS:
            try:
                with open(try_path, "r") as file:
                    config = json.load(file)
                log.info("Loaded config from %s", try_path)
                break
            except (FileNotFoundError, IsADirectoryError) as exc:
                log.debug("Tried and failed to load config from %s: %s", try_path, exc)
    return config


def _select_section(config: Dict[str, Any], section: str) -> Dict[str, Any]:
    if not config:
        log.debug("Config file does not contain any sections")
        return {}
    if section in config:
        return config[section]
    config_sections = list(sect for sect in config if sect.startswith(section))
    if section and not config_sections:
        raise ValueError(
            'There is no section "{}" in {}'.format(section, list(config)),
        )
    elif section and len(config_sections) > 1:
        raise ValueError(
            '"{}" is ambiguous because matches {}'.format(section, config_sections),
        )
    # from python 3.7 dict is ordered
    log.info('Selected "%s" section from configuration', config_sections[0])
    return config[config_sections[0]]


def _merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge_dicts(out[key], value)
        else:
            out[key] = value
    return out


def load_config(
    path: str = None, section: str = "", override: Dict[str, Any] = None
) -> Config:
    """
    Load config section from json file at path or from the first
    file found in DEFAULT_CONFIG_FILE_LOCATIONS. Values in override take
    precedence over the file
    """
    config_section = _select_section(_read_config_file(path), section)
    values = _merge_dicts(config_section, override or {})

    kwargs = {}  # type: Dict[str, Any]
    for key in ("backend", "aptly_cmd", "aptly_config", "url", "mail_from", "log_dir"):
        if key in values:
            kwargs[key] = values[key]
    for key in ("connect_timeout", "read_timeout"):
        if key in values:
            kwargs[key] = float(values[key]) if values[key] is not None else None
    for key in ("mail_recipients", "admin"):
        if key in values:
            kwargs[key] = _address_list(values[key])
    if "merge" in values:
        merge = values["merge"]
        if isinstance(merge, str):
            merge = merge.replace(",", " ").split()
        kwargs["merge"] = frozenset(merge)
    if "snapshot_keep" in values:
        kwargs["snapshot_keep"] = int(values["snapshot_keep"])
    try:
        if "signing" in values:
            log.debug('Loading "signing" config')
            kwargs["signing"] = SigningConfig(**values["signing"])
        if "mail" in values:
            kwargs["mail"] = MailConfig(**values["mail"])
        if "publish" in values:
            publish = {}
            for repo, target in values["publish"].items():
                log.debug('Loading "publish": "%s" config', repo)
                target = dict(target)
                target.setdefault("distribution", repo)
                publish[repo] = PublishTarget(**target)
            kwargs["publish"] = publish
    except TypeError as exc:
        raise ValueError(f"Invalid config: {exc}") from exc

    config = Config(**kwargs)

    if config.backend not in BACKENDS:
        raise ValueError(f"backend must be one of {BACKENDS}, not '{config.backend}'")
    if config.mail.transport not in MAIL_TRANSPORTS:
        raise ValueError(
            f"mail transport must be one of {MAIL_TRANSPORTS}, not '{config.mail.transport}'"
        )
    if config.snapshot_keep < 0:
        raise ValueError("snapshot_keep can't be negative")
    if config.backend == "api" and "url" not in values:
        log.warning('Setting url to default "%s"', config.url)
    return config


def parse_override_dict(keys: Sequence[str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key_str in keys:
        key_with_dots, _, value = key_str.partition("=")
        if not key_with_dots or not value:
            raise ValueError(f"Invalid config key '{key_str}', expected KEY=VALUE")
        key_list = key_with_dots.split(".")
        d = out
        for key in key_list[:-1]:
            d = d.setdefault(key, {})
        # 1024 because warning in doc for ast.literal_eval says:
        # It is possible to crash the Python interpreter with a sufficiently large/complex string due to stack depth limitations in Python’s AST compiler.
        # also it hangs for a while when string is long
        if len(value) > 1024:
            d[key_list[-1]] = value
        else:
            try:
                d[key_list[-1]] = ast.literal_eval(value)
            except (ValueError, SyntaxError):
                d[key_list[-1]] = value
    return out
