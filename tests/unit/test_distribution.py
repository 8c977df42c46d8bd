"""Unit tests for unpacking server distributions."""

from __future__ import annotations

import os
import sys
import tarfile
import zipfile
from pathlib import Path
from unittest import mock

import pytest
import requests

from embeddb.exceptions import ProvisioningError
from embeddb.provision import DistributionUnpacker
from embeddb.provision.distribution import platform_name

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="execute bits are POSIX only")


def write_zip(path: Path, members: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return path


class TestPlatformName:
    @pytest.mark.parametrize("platform,expected", [
        ("win32", "win32"),
        ("linux", "linux"),
        ("darwin", "osx"),
        ("freebsd13", "linux"),
    ])
    def test_maps_sys_platform(self, platform: str, expected: str) -> None:
        assert platform_name(platform) == expected


class TestDistributionUnpacker:
    def test_copies_directory_distribution(self, make_config, make_distribution) -> None:
        make_distribution()
        config = make_config()

        DistributionUnpacker(config).unpack()

        assert (config.base_dir / "bin" / "mysqld").is_file()
        assert (config.base_dir / "bin" / "mysql_install_db").is_file()

    @posix_only
    def test_zip_distribution_is_flattened_and_made_executable(self, make_config, temp_dir: Path) -> None:
        config = make_config()
        write_zip(
            temp_dir / "distributions" / config.version / "linux.zip",
            {
                "mariadb-1.0-linux/bin/mysqld": "#!/bin/sh\n",
                "mariadb-1.0-linux/bin/mysql_install_db": "#!/bin/sh\n",
                "mariadb-1.0-linux/bin/my_print_defaults": "#!/bin/sh\n",
                "mariadb-1.0-linux/share/errmsg.sys": "",
            },
        )

        DistributionUnpacker(config, platform="linux").unpack()

        for name in ("mysqld", "mysql_install_db", "my_print_defaults"):
            binary = config.base_dir / "bin" / name
            assert binary.is_file()
            assert os.access(binary, os.X_OK)
        assert (config.base_dir / "share" / "errmsg.sys").is_file()
        assert not (config.base_dir / "mariadb-1.0-linux").exists()

    def test_tar_distribution(self, make_config, temp_dir: Path) -> None:
        config = make_config()
        payload = temp_dir / "payload"
        (payload / "bin").mkdir(parents=True)
        (payload / "bin" / "mysqld").write_text("#!/bin/sh\n")
        archive_path = temp_dir / "distributions" / config.version / "win32.tar.gz"
        archive_path.parent.mkdir(parents=True)
        with tarfile.open(archive_path, "w:gz") as archive:
            archive.add(payload / "bin", arcname="bin")

        DistributionUnpacker(config, platform="win32").unpack()

        assert (config.base_dir / "bin" / "mysqld").is_file()

    def test_corrupt_archive_raises_provisioning_error(self, make_config, temp_dir: Path) -> None:
        config = make_config()
        archive = temp_dir / "distributions" / config.version / "linux.zip"
        archive.parent.mkdir(parents=True)
        archive.write_bytes(b"definitely not a zip")

        with pytest.raises(ProvisioningError):
            DistributionUnpacker(config, platform="linux").unpack()

    def test_missing_distribution_without_url_raises(self, make_config) -> None:
        with pytest.raises(ProvisioningError, match="no download URL"):
            DistributionUnpacker(make_config(version="missing-9.9")).unpack()

    def test_downloads_when_no_local_distribution(self, make_config, temp_dir: Path) -> None:
        config = make_config(download_url_template="https://example.invalid/{version}/{platform}.zip")
        archive_bytes = write_zip(temp_dir / "remote.zip", {"bin/mysqld": "#!/bin/sh\n"}).read_bytes()

        response = mock.MagicMock()
        response.headers = {"content-length": str(len(archive_bytes))}
        response.iter_content.return_value = [archive_bytes]
        response.__enter__.return_value = response

        with mock.patch("embeddb.provision.distribution.requests.get", return_value=response) as get:
            DistributionUnpacker(config, platform="linux").unpack()

        get.assert_called_once()
        assert get.call_args.args[0] == f"https://example.invalid/{config.version}/linux.zip"
        assert (config.distributions_dir / config.version / "linux.zip").is_file()
        assert (config.base_dir / "bin" / "mysqld").is_file()

    def test_failed_download_leaves_no_partial_file(self, make_config) -> None:
        config = make_config(download_url_template="https://example.invalid/{version}.zip")

        with mock.patch(
            "embeddb.provision.distribution.requests.get",
            side_effect=requests.ConnectionError("unreachable"),
        ):
            with pytest.raises(ProvisioningError, match="unreachable"):
                DistributionUnpacker(config, platform="linux").unpack()

        assert not (config.distributions_dir / config.version / "linux.zip").exists()
