"""
Argument rule tables for the install and server invocations.

Each rule pairs a platform predicate with the ordered flags it contributes.
Rules are applied top to bottom, so the order of a table is the order of the
resulting argument vector. The server binary only honours '--no-defaults' when
it is the very first argument; SERVER_RULES keeps it in first position.
"""
from pathlib import Path
from collections import namedtuple
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Sequence

if TYPE_CHECKING:
    from embeddb.config import Configuration
    from embeddb.supervisor.process import ManagedProcessBuilder

NO_DEFAULTS = "--no-defaults"

# value: None for a bare flag, else a callable taking the Configuration.
Flag = namedtuple("Flag", ["name", "value"], defaults=[None])
ArgumentRule = namedtuple("ArgumentRule", ["description", "applies", "flags"])


def always(platform: str) -> bool:
    return True


def is_posix(platform: str) -> bool:
    return platform != "win32"


def _base_dir(config: "Configuration") -> Path:
    return config.base_dir


def _data_dir(config: "Configuration") -> Path:
    return config.data_dir


def _port(config: "Configuration") -> int:
    return config.port


INSTALL_RULES: Sequence[ArgumentRule] = (
    ArgumentRule("data directory", always, (
        Flag("--datadir", _data_dir),
    )),
    ArgumentRule("posix install flags", is_posix, (
        Flag("--basedir", _base_dir),
        Flag(NO_DEFAULTS),
        Flag("--force"),
        Flag("--skip-name-resolve"),
        Flag("--verbose"),
    )),
)

SERVER_RULES: Sequence[ArgumentRule] = (
    ArgumentRule("option files disabled, must come first", always, (
        Flag(NO_DEFAULTS),
    )),
    ArgumentRule("server flags", always, (
        Flag("--console"),
        Flag("--basedir", _base_dir),
        Flag("--datadir", _data_dir),
        Flag("--port", _port),
    )),
)


def apply_rules(
    builder: "ManagedProcessBuilder",
    rules: Iterable[ArgumentRule],
    config: "Configuration",
    platform: str
) -> "ManagedProcessBuilder":
    """
    Appends the flags of every rule that applies to `platform`, in table order.

    Path values go through add_file_argument so they are absolute and normalized.

    :param builder: The builder receiving the arguments.
    :param rules: The rule table to apply.
    :param config: The configuration supplying flag values.
    :param platform: A sys.platform style identifier.
    :return ManagedProcessBuilder: The same builder, for chaining.
    """
    for rule in rules:
        if not rule.applies(platform):
            continue
        for flag in rule.flags:
            value: Optional[Callable] = flag.value
            if value is None:
                builder.add_argument(flag.name)
                continue
            resolved = value(config)
            if isinstance(resolved, Path):
                builder.add_file_argument(flag.name, resolved)
            else:
                builder.add_argument(f"{flag.name}={resolved}")
    return builder
