import sys
import stat
import shutil
import tarfile
import zipfile
import logging
import requests
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import embeddb.settings as default_settings
from embeddb.exceptions import ProvisioningError

if TYPE_CHECKING:
    from embeddb.config import Configuration

log = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".zip", ".tar.gz", ".tgz")


def platform_name(platform: Optional[str] = None) -> str:
    """Maps a sys.platform identifier to the distribution directory name."""
    platform = platform or sys.platform
    if platform == "win32":
        return "win32"
    if platform == "darwin":
        return "osx"
    return "linux"


def force_executable(path: Path) -> None:
    """Sets the execute bits on `path`."""
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class DistributionUnpacker:
    """
    Places the server distribution matching the configured version and the
    current platform into the base directory.

    A distribution lives at `<distributions_dir>/<version>/<platform>` as either
    an unpacked directory or an archive with one of ARCHIVE_SUFFIXES. When
    neither exists and a download URL template is configured, the archive is
    fetched into that location first.
    """

    def __init__(self, config: "Configuration", platform: Optional[str] = None):
        self.config = config
        self.platform = platform or sys.platform
        self.source_root = config.distributions_dir / config.version
        self.platform_dir_name = platform_name(self.platform)
        self.temp_dir = config.base_dir.parent / f".{config.base_dir.name}-unpack"

    def locate_source(self) -> Optional[Path]:
        """Returns the local distribution directory or archive, or None if there is none."""
        candidate = self.source_root / self.platform_dir_name
        if candidate.is_dir():
            return candidate
        for suffix in ARCHIVE_SUFFIXES:
            archive = self.source_root / f"{self.platform_dir_name}{suffix}"
            if archive.is_file():
                return archive
        return None

    def _download_file(self, url: str, dest_path: Path) -> None:
        """Streams `url` to `dest_path`, removing partial files on failure."""
        log.info(f"Downloading from {url}...")
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            headers = {"User-Agent": "embeddb/1.0"}
            with requests.get(url, stream=True, timeout=default_settings.DOWNLOAD_TIMEOUT, headers=headers) as r:
                r.raise_for_status()
                total_size = int(r.headers.get("content-length", 0))
                downloaded = 0
                with open(dest_path, "wb") as f:
                    for chunk in r.iter_content(chunk_size=8192):
                        f.write(chunk)
                        downloaded += len(chunk)
            if total_size and downloaded != total_size:
                raise ProvisioningError(f"Download of {url} was truncated ({downloaded} of {total_size} bytes).")
            log.info(f"Successfully downloaded {downloaded / 1024 / 1024:.2f} MB to '{dest_path}'.")
        except (requests.RequestException, OSError) as e:
            dest_path.unlink(missing_ok=True)
            raise ProvisioningError(f"Download of the embedded database failed: {e}") from e
        except ProvisioningError:
            dest_path.unlink(missing_ok=True)
            raise

    def download(self) -> Path:
        """
        Fetches the distribution archive for this version and platform.

        :return Path: The downloaded archive, stored next to local distributions.
        :raises ProvisioningError: If no URL template is configured or the download fails.
        """
        template = self.config.download_url_template
        if not template:
            raise ProvisioningError(
                f"No distribution for '{self.config.version}' ({self.platform_dir_name}) "
                f"found under '{self.source_root}' and no download URL is configured."
            )
        url = template.format(version=self.config.version, platform=self.platform_dir_name)
        suffix = next((s for s in ARCHIVE_SUFFIXES if url.endswith(s)), ".zip")
        archive_path = self.source_root / f"{self.platform_dir_name}{suffix}"
        self._download_file(url, archive_path)
        return archive_path

    def _extract_archive(self, archive_path: Path, destination: Path) -> None:
        """Extracts an archive, flattening a single top-level folder into `destination`."""
        raw_extract_dir = self.temp_dir / "raw"
        log.info(f"Extracting '{archive_path.name}'...")
        try:
            raw_extract_dir.mkdir(parents=True, exist_ok=True)
            if archive_path.name.endswith(".zip"):
                with zipfile.ZipFile(archive_path, "r") as zip_ref:
                    zip_ref.extractall(raw_extract_dir)
            else:
                with tarfile.open(archive_path, "r:*") as tar_ref:
                    tar_ref.extractall(raw_extract_dir, filter="data")

            entries = list(raw_extract_dir.iterdir())
            # Release archives usually wrap everything in '<name>-<version>/'.
            if len(entries) == 1 and entries[0].is_dir() and not (raw_extract_dir / "bin").exists():
                source_dir = entries[0]
            else:
                source_dir = raw_extract_dir
            shutil.copytree(source_dir, destination, dirs_exist_ok=True)
        except (zipfile.BadZipFile, tarfile.TarError, OSError) as e:
            raise ProvisioningError(f"Extraction of '{archive_path}' failed: {e}") from e
        finally:
            if self.temp_dir.exists():
                shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _force_executables(self, destination: Path) -> None:
        if self.platform == "win32":
            return
        for relative in default_settings.POSIX_EXECUTABLES:
            executable = destination / relative
            if executable.exists():
                force_executable(executable)
            else:
                log.warning(f"Expected executable '{executable}' is missing from the distribution.")

    def unpack(self) -> Path:
        """
        Unpacks the distribution into the base directory.

        :return Path: The base directory.
        :raises ProvisioningError: If no distribution is available or unpacking fails.
        """
        log.info("Unpacking the embedded database...")
        destination = self.config.base_dir
        source = self.locate_source() or self.download()
        try:
            destination.mkdir(parents=True, exist_ok=True)
            if source.is_dir():
                shutil.copytree(source, destination, dirs_exist_ok=True)
            else:
                self._extract_archive(source, destination)
            self._force_executables(destination)
        except OSError as e:
            raise ProvisioningError(f"Error unpacking embedded database to '{destination}': {e}") from e
        log.info(f"Database successfully unpacked to {destination}")
        return destination
