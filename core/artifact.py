"""
Prebuilt node artifact resolution and retrieval
"""
from typing import Dict, FrozenSet, Optional, Tuple
from pathlib import Path
import logging
import os
import platform
import stat
import tarfile
import zipfile

import requests
from pydantic import BaseModel, ConfigDict

from core.errors import DownloadFailure, MissingExecutable, UnsupportedPlatform

logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "mev-commit"
DEFAULT_RELEASE_BASE_URL = "https://github.com/primev/mev-commit/releases/download"
DEFAULT_METADATA_URL = "https://releases.mev-commit.xyz/latest.json"

SUPPORTED_PLATFORMS: FrozenSet[Tuple[str, str]] = frozenset({
    ("Darwin", "arm64"),
    ("Darwin", "x86_64"),
    ("Linux", "arm64"),
    ("Linux", "x86_64"),
    ("Windows", "x86_64"),
})

_ARCH_ALIASES: Dict[str, str] = {
    "aarch64": "arm64",
    "arm64": "arm64",
    "amd64": "x86_64",
    "x86_64": "x86_64",
}


class ArtifactDescriptor(BaseModel):
    """Platform-specific release artifact"""
    os_name: str
    arch: str
    version: str
    identifier: str
    archive_name: str

    model_config = ConfigDict(frozen=True)

    @property
    def executable_name(self) -> str:
        if self.os_name == "Windows":
            return f"{ARTIFACT_PREFIX}.exe"
        return ARTIFACT_PREFIX

    def download_url(self, base_url: str = DEFAULT_RELEASE_BASE_URL) -> str:
        return f"{base_url.rstrip('/')}/v{self.version}/{self.archive_name}"


def resolve_artifact(os_name: str, arch: str, version: str) -> ArtifactDescriptor:
    """
    Map an (OS, architecture, version) triple to its artifact.
    Raises UnsupportedPlatform for any pair outside the supported set.
    """
    if (os_name, arch) not in SUPPORTED_PLATFORMS:
        raise UnsupportedPlatform(os_name, arch)

    version = version.lstrip("v")
    identifier = f"{ARTIFACT_PREFIX}_{version}_{os_name}_{arch}"
    extension = "zip" if os_name == "Windows" else "tar.gz"
    return ArtifactDescriptor(
        os_name=os_name,
        arch=arch,
        version=version,
        identifier=identifier,
        archive_name=f"{identifier}.{extension}",
    )


def host_platform() -> Tuple[str, str]:
    """Return the (OS, architecture) of this machine in artifact naming"""
    machine = platform.machine()
    arch = _ARCH_ALIASES.get(machine.lower(), machine)
    return platform.system(), arch


def fetch_latest_version(metadata_url: str = DEFAULT_METADATA_URL,
                         session: Optional[requests.Session] = None,
                         timeout: float = 10.0) -> str:
    """Ask the release metadata endpoint for the latest version"""
    http = session or requests.Session()
    try:
        response = http.get(metadata_url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise DownloadFailure(f"Could not reach release metadata at {metadata_url}: {e}") from e

    if response.status_code != 200:
        raise DownloadFailure(
            f"Release metadata at {metadata_url} answered with status {response.status_code}"
        )
    try:
        version = response.json()["version"]
    except (ValueError, KeyError, TypeError) as e:
        raise DownloadFailure(f"Release metadata at {metadata_url} has no version") from e

    logger.info(f"Latest node version is {version}")
    return str(version).lstrip("v")


class ArtifactFetcher:
    """
    Downloads and unpacks release archives into an install directory.
    An already extracted executable is reused.
    """
    CHUNK_SIZE = 64 * 1024

    def __init__(self, install_dir: Path,
                 base_url: str = DEFAULT_RELEASE_BASE_URL,
                 session: Optional[requests.Session] = None,
                 timeout: float = 60.0):
        self.install_dir = Path(install_dir)
        self.base_url = base_url
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, descriptor: ArtifactDescriptor) -> Path:
        """Return the path of the node executable, downloading it if needed"""
        target_dir = self.install_dir / descriptor.identifier
        executable = target_dir / descriptor.executable_name
        if executable.is_file():
            logger.info(f"Using cached node executable {executable}")
            return executable

        target_dir.mkdir(parents=True, exist_ok=True)
        archive_path = target_dir / descriptor.archive_name
        self._download(descriptor.download_url(self.base_url), archive_path)
        self._extract(archive_path, target_dir)
        archive_path.unlink()

        found = self._find_executable(target_dir, descriptor.executable_name)
        if found is None:
            raise MissingExecutable(
                f"{descriptor.archive_name} does not contain {descriptor.executable_name}"
            )
        found.chmod(found.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        logger.info(f"Installed node executable at {found}")
        return found

    def _download(self, url: str, destination: Path):
        logger.info(f"Downloading {url}")
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                if response.status_code != 200:
                    raise DownloadFailure(f"Download of {url} failed with status {response.status_code}")
                with open(destination, "wb") as f:
                    for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                        f.write(chunk)
        except requests.exceptions.RequestException as e:
            raise DownloadFailure(f"Download of {url} failed: {e}") from e

    @staticmethod
    def _extract(archive_path: Path, target_dir: Path):
        try:
            if archive_path.name.endswith(".zip"):
                with zipfile.ZipFile(archive_path) as archive:
                    archive.extractall(target_dir)
            else:
                with tarfile.open(archive_path, "r:gz") as archive:
                    archive.extractall(target_dir, filter="data")
        except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
            raise DownloadFailure(f"Could not extract {archive_path.name}: {e}") from e

    @staticmethod
    def _find_executable(root: Path, name: str) -> Optional[Path]:
        for dirpath, _, filenames in os.walk(root):
            if name in filenames:
                return Path(dirpath) / name
        return None
