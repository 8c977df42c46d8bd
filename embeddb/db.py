import sys
import logging
import threading
from enum import Enum
from pathlib import Path
from contextlib import contextmanager
from typing import Iterator, Optional

import embeddb.settings as default_settings
from embeddb.config import Configuration
from embeddb.exceptions import InstallError, ProcessControlError
from embeddb.provision import DirectoryProvisioner, DistributionUnpacker, purge_directory
from embeddb.supervisor import ManagedProcess, ManagedProcessBuilder, exit_guard
from embeddb.supervisor.arguments import INSTALL_RULES, SERVER_RULES, apply_rules
from embeddb.supervisor.process import get_executable_path

log = logging.getLogger(__name__)


class DBState(Enum):
    CREATED = "created"
    PROVISIONED = "provisioned"
    INSTALLED = "installed"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


class EmbeddedDB:
    """
    Installs, starts and stops one embedded database server.

    Create instances with new_embedded_db(), which unpacks the distribution,
    prepares the data directory and runs the install command. start() launches
    the server and blocks until it reports that it accepts connections; stop()
    shuts it down and may be called any number of times.

    Once started, the instance is registered with the exit guard: if the host
    program ends without calling stop(), the server is stopped and a temporary
    data directory is deleted at interpreter exit.
    """

    def __init__(
        self,
        config: Configuration,
        platform: Optional[str] = None,
        provisioner: Optional[DirectoryProvisioner] = None
    ):
        self.config = config
        self.platform = platform or sys.platform
        self.provisioner = provisioner or DirectoryProvisioner()

        self._state = DBState.CREATED
        self._server: Optional[ManagedProcess] = None
        self._lock = threading.RLock()

    @classmethod
    def new_embedded_db(cls, config: Configuration, **kwargs) -> "EmbeddedDB":
        """
        Builds a database ready to be started: unpacked, provisioned and installed.

        :param config: Configuration of the embedded instance.
        :param kwargs: Passed on to the constructor (platform, provisioner).
        :return EmbeddedDB: A new instance in the INSTALLED state.
        :raises ProcessControlError: If any step fails.
        """
        db = cls(config, **kwargs)
        db.unpack_embedded_db()
        db.prepare_data_directory()
        db.install()
        return db

    def __repr__(self) -> str:
        return f"<EmbeddedDB port={self.config.port} state={self._state.name}>"

    def __enter__(self) -> "EmbeddedDB":
        if self._state is not DBState.RUNNING:
            self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.stop()

    #* --- Accessors ---
    @property
    def state(self) -> DBState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is DBState.RUNNING and self._server is not None and self._server.is_alive()

    @property
    def base_dir(self) -> Path:
        return self.config.base_dir

    @property
    def data_dir(self) -> Path:
        return self.config.data_dir

    @property
    def server_process(self) -> Optional[ManagedProcess]:
        return self._server

    @property
    def install_executable(self) -> Path:
        return get_executable_path(self.base_dir / default_settings.INSTALL_EXECUTABLE, self.platform)

    @property
    def server_executable(self) -> Path:
        return get_executable_path(self.base_dir / default_settings.SERVER_EXECUTABLE, self.platform)

    @contextmanager
    def _fatal_on_error(self, action: str) -> Iterator[None]:
        """Moves to FAILED on any error, wrapping foreign exceptions in ProcessControlError."""
        try:
            yield
        except ProcessControlError:
            self._state = DBState.FAILED
            raise
        except Exception as e:
            self._state = DBState.FAILED
            raise ProcessControlError(f"An error occurred while {action}: {e}") from e

    #* --- Installation ---
    def unpack_embedded_db(self) -> None:
        """Unpacks the distribution for the configured version and this platform into the base directory."""
        with self._fatal_on_error("unpacking the embedded database"):
            DistributionUnpacker(self.config, self.platform).unpack()

    def prepare_data_directory(self) -> None:
        """Clears a temporary data directory and makes sure both directories exist."""
        with self._fatal_on_error("preparing the data directory"):
            self.provisioner.prepare(self.config)
            self._state = DBState.PROVISIONED

    def build_install_process(self) -> ManagedProcess:
        builder = ManagedProcessBuilder(self.install_executable, self.base_dir, name="mysql_install_db")
        return apply_rules(builder, INSTALL_RULES, self.config, self.platform).build()

    def build_server_process(self) -> ManagedProcess:
        builder = ManagedProcessBuilder(self.server_executable, self.base_dir, name="mysqld")
        return apply_rules(builder, SERVER_RULES, self.config, self.platform).build()

    def install(self) -> None:
        """
        Runs the install command against the data directory and waits for it to finish.

        :raises InstallError: If the install command exits with a non-zero code.
        """
        log.info(f"Installing a new embedded database to: {self.base_dir}")
        with self._fatal_on_error("installing the database"):
            process = self.build_install_process()
            process.start()
            exit_code = process.wait_for_exit()
            if exit_code != 0:
                raise InstallError(
                    f"Install command '{process.command}' failed with exit code {exit_code}.",
                    exit_code=exit_code
                )
            self._state = DBState.INSTALLED
        log.info("Installation complete.")

    #* --- Lifecycle ---
    def start(self) -> None:
        """
        Starts the server and blocks until it is ready for connections.

        :raises ProcessControlError: If the server is already running, this
            instance is not installed, or the server fails to become ready.
        """
        with self._lock:
            if self._state is DBState.RUNNING:
                raise ProcessControlError("The database is already running.")
            if self._state not in (DBState.INSTALLED, DBState.STOPPED):
                raise ProcessControlError(f"Cannot start a database in state '{self._state.value}'.")

            log.info("Starting up the database...")
            server = self.build_server_process()
            self._server = server
            try:
                with self._fatal_on_error("starting the database"):
                    server.start()
                    server.wait_for_text(default_settings.READY_SIGNAL, self.config.ready_timeout)
            except BaseException:
                # Interrupts included: the server runs in its own session and would outlive us.
                self._state = DBState.FAILED
                server.terminate(self.config.shutdown_grace_period)
                raise

            exit_guard.register(self, self._cleanup_on_exit)
            self._state = DBState.RUNNING
        log.info(f"Database startup complete on port {self.config.port}.")

    def stop(self) -> None:
        """Stops the server. Calling this when the server is not running is a no-op."""
        with self._lock:
            if self._state is not DBState.RUNNING:
                log.info(f"Database was already stopped (state: {self._state.value}).")
                return
            log.info("Stopping the database...")
            self._server.terminate(self.config.shutdown_grace_period)
            self._state = DBState.STOPPED
            # A temporary data directory still has to be deleted at exit.
            if not self.provisioner.is_temporary(self.data_dir):
                exit_guard.unregister(self)
        log.info("Database stopped.")

    def _cleanup_on_exit(self) -> None:
        """Exit guard action: stop the server, then delete a temporary data directory."""
        try:
            self.stop()
        except Exception as e:
            log.error(f"An error occurred while stopping the database: {e}", exc_info=True)

        try:
            if self.provisioner.is_temporary(self.data_dir):
                log.info(f"Deleting temporary data directory '{self.data_dir}'.")
                purge_directory(self.data_dir)
        except OSError as e:
            log.error(f"An error occurred while deleting the data directory: {e}", exc_info=True)
