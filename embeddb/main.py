import sys
import signal
import logging
import threading
import setproctitle
from typing import Callable, Dict, List, Optional

import embeddb.settings as default_settings
from embeddb.config import Configuration
from embeddb.db import EmbeddedDB
from embeddb.exceptions import ProcessControlError
from embeddb.log.setup import setup_logging
from embeddb.provision import DistributionUnpacker

log = logging.getLogger("embeddb.console")

# Seconds between liveness checks while serving in the foreground.
SERVE_CHECK_INTERVAL = 1.0

USAGE = """Usage: python -m embeddb <command> [--verbose] [--quiet]

Commands:
  run           Install and start the database, serve until interrupted, then stop.
  install       Unpack the distribution and initialize the data directory only.
  check-config  Show the effective configuration and check the distribution is available.
  help          Show this message.

  --verbose     Log at DEBUG level.
  --quiet       Hide the server's own console output.
"""


def check_configuration(config: Configuration) -> bool:
    """
    Logs the effective configuration and validates that a distribution is available.

    :param config: The configuration to check.
    :return bool: True if the distribution can be found locally or downloaded.
    """
    log.info("Performing configuration and path validation...")
    for key, value in vars(config).items():
        log.info(f"  {key} = {value}")

    unpacker = DistributionUnpacker(config)
    source = unpacker.locate_source()
    if source:
        log.info(f"Config Check OK: Found distribution at '{source}'")
        return True
    if config.download_url_template:
        log.info(f"Config Check OK: Distribution will be downloaded from '{config.download_url_template}'")
        return True
    log.error(
        f"CONFIG CHECK FAILED: No distribution for '{config.version}' "
        f"under '{unpacker.source_root}' and no download URL configured."
    )
    return False


def install_only(config: Configuration) -> bool:
    try:
        EmbeddedDB.new_embedded_db(config)
    except ProcessControlError as e:
        log.critical(f"Installation failed: {e}", exc_info=True)
        return False
    return True


def run_server(config: Configuration, stop_event: Optional[threading.Event] = None) -> bool:
    """
    Installs and starts the database, then serves until a stop is requested.

    SIGINT and SIGTERM set the stop event when running on the main thread.

    :param config: The configuration of the embedded instance.
    :param stop_event: Event that ends serving when set; a new one is created if omitted.
    :return bool: True on a clean shutdown, False if startup failed or the server died.
    """
    stop_event = stop_event or threading.Event()

    def handle_shutdown_signal(signum, frame):
        log.info(f"Signal {signum} received, shutting down the database.")
        stop_event.set()

    if threading.current_thread() is threading.main_thread():
        setproctitle.setproctitle(default_settings.PROCESS_TITLE)
        signal.signal(signal.SIGTERM, handle_shutdown_signal)
        signal.signal(signal.SIGINT, handle_shutdown_signal)

    try:
        db = EmbeddedDB.new_embedded_db(config)
        db.start()
    except ProcessControlError as e:
        log.critical(f"Startup failed due to an error: {e}", exc_info=True)
        return False

    log.info(f"Database is serving on port {config.port}. Press Ctrl+C to stop.")
    try:
        while not stop_event.wait(SERVE_CHECK_INTERVAL):
            if not db.is_running:
                log.critical("The database process exited unexpectedly.")
                return False
    finally:
        db.stop()
    return True


def execute_command(command: str, config: Configuration) -> bool:
    """
    Executes a single console command.

    :param command: The command name (e.g., 'run', 'install').
    :param config: The configuration to operate on.
    :return bool: True if the command succeeded.
    """
    log.debug(f"Executing command: {command}")
    command_map: Dict[str, Callable[[], bool]] = {
        "run": lambda: run_server(config),
        "install": lambda: install_only(config),
        "check-config": lambda: check_configuration(config),
    }
    if command in command_map:
        return command_map[command]()

    if command != "help":
        log.error(f"Unknown command: '{command}'.")
    print(USAGE)
    return command == "help"


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the console application."""
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = "--verbose" in args
    quiet = "--quiet" in args
    args = [a for a in args if a not in ("--verbose", "--quiet")]

    setup_logging(logging.DEBUG if verbose else logging.INFO, show_server_output=not quiet)
    command = args[0].lower() if args else "help"

    try:
        config = Configuration.from_settings()
    except ValueError as e:
        log.critical(f"Invalid configuration: {e}")
        return 2

    return 0 if execute_command(command, config) else 1


if __name__ == "__main__":
    sys.exit(main())
