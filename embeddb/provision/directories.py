import shutil
import logging
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from embeddb.exceptions import ProvisioningError

if TYPE_CHECKING:
    from embeddb.config import Configuration

log = logging.getLogger(__name__)


def is_temporary_directory(path: Union[str, Path], temp_root: Optional[Path] = None) -> bool:
    """
    Classifies `path` as disposable when it lies under the system temp directory.

    This is a path-prefix heuristic: a directory a user deliberately placed
    under the temp root is classified as temporary too. The temp root itself
    never qualifies.

    :param path: The directory to classify.
    :param temp_root: Override for the temp root, defaults to tempfile.gettempdir().
    :return bool: True if the directory may be purged.
    """
    root = Path(temp_root or tempfile.gettempdir()).resolve()
    candidate = Path(path).resolve()
    return candidate != root and candidate.is_relative_to(root)


def purge_directory(path: Union[str, Path]) -> None:
    """Recursively deletes `path`. A missing directory is not an error."""
    path = Path(path)
    if not path.exists():
        return
    log.debug(f"Deleting directory '{path}'.")
    shutil.rmtree(path)


class DirectoryProvisioner:
    """Makes sure the base and data directories exist before the server is installed."""

    def __init__(self, temp_root: Optional[Path] = None):
        self.temp_root = temp_root

    def is_temporary(self, path: Union[str, Path]) -> bool:
        return is_temporary_directory(path, self.temp_root)

    def prepare(self, config: "Configuration") -> None:
        """
        Clears a temporary data directory and creates the base and data directories.

        Contents of a data directory outside the temp root are left untouched.

        :param config: The configuration naming both directories.
        :raises ProvisioningError: If a directory cannot be deleted or created.
        """
        log.info("Preparing data directory...")
        try:
            if self.is_temporary(config.data_dir):
                log.info(f"Data directory '{config.data_dir}' is temporary; removing previous contents.")
                purge_directory(config.data_dir)
            for directory in (config.base_dir, config.data_dir):
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProvisioningError(f"An error occurred while preparing the data directory: {e}") from e
        log.info("Data directory prepared.")
