"""Checking for, downloading and installing new releases."""

from __future__ import annotations

import logging
import os
import platform
import re
import shutil
import stat
import subprocess
import sys
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

import requests

from zdefender.models import Settings

logger = logging.getLogger(__name__)

Runner = Callable[[Sequence[str]], subprocess.CompletedProcess]

REQUEST_TIMEOUT = 10
USER_AGENT = "zdefender-updater"
DEFAULT_INSTALL_PATH = "/usr/local/bin/zdefender"

_UNSIGNED = re.compile(r"\+?[0-9]+")
_U32_MAX = 0xFFFFFFFF

_KB = 1024
_MB = _KB * 1024
_GB = _MB * 1024


class UpdateError(Exception):
    """An update could not be fetched or installed."""


@dataclass(frozen=True)
class ReleaseAsset:
    """A downloadable file attached to a release."""

    name: str
    browser_download_url: str
    size: int

    @classmethod
    def from_dict(cls, data: dict) -> "ReleaseAsset":
        return cls(data["name"], data["browser_download_url"], int(data["size"]))


@dataclass(frozen=True)
class Release:
    """Metadata of a published release."""

    tag_name: str
    name: str
    published_at: str
    body: str
    html_url: str
    assets: Tuple[ReleaseAsset, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "Release":
        try:
            return cls(
                tag_name=data["tag_name"],
                name=data["name"],
                published_at=data["published_at"],
                body=data["body"],
                html_url=data["html_url"],
                assets=tuple(ReleaseAsset.from_dict(a) for a in data["assets"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise UpdateError(f"Invalid release data: {exc}") from exc


def _component(text: str) -> int:
    if _UNSIGNED.fullmatch(text) is None:
        return 0
    value = int(text)
    return value if value <= _U32_MAX else 0


def parse_version(text: str) -> Tuple[int, int, int]:
    """Parse ``major.minor.patch``; unreadable parts count as 0."""
    parts = text.split(".")
    padded = (parts + ["", "", ""])[:3]
    major, minor, patch = (_component(part) for part in padded)
    return major, minor, patch


def is_newer_version(latest: str, current: str) -> bool:
    return parse_version(latest) > parse_version(current)


def format_size(size: int) -> str:
    """Render a byte count with a binary unit."""
    if size >= _GB:
        return f"{size / _GB:.2f} GB"
    if size >= _MB:
        return f"{size / _MB:.2f} MB"
    if size >= _KB:
        return f"{size / _KB:.2f} KB"
    return f"{size} bytes"


def _current_os() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        return "macos"
    if sys.platform in ("win32", "cygwin"):
        return "windows"
    return sys.platform


def _current_arch() -> str:
    machine = platform.machine().lower()
    return {"amd64": "x86_64", "arm64": "aarch64", "i386": "x86", "i686": "x86"}.get(
        machine, machine
    )


def find_appropriate_asset(
    assets: Sequence[ReleaseAsset],
    os_name: Optional[str] = None,
    arch: Optional[str] = None,
) -> ReleaseAsset:
    """Pick the release file that best suits the given platform."""
    os_name = _current_os() if os_name is None else os_name
    arch = _current_arch() if arch is None else arch
    logger.info("Looking for a build for %s-%s", os_name, arch)

    for asset in assets:
        name = asset.name.lower()
        if f"{os_name}-{arch}" in name or (os_name in name and arch in name):
            return asset
        if os_name == "linux" and (name.endswith(".sh") or "install" in name):
            return asset

    for asset in assets:
        name = asset.name.lower()
        if name.endswith(".sh") or name.endswith(".zip"):
            return asset

    if not assets:
        raise UpdateError("No update file found")
    return assets[0]


def _run(args: Sequence[str]) -> subprocess.CompletedProcess:
    return subprocess.run(list(args), capture_output=True, check=False)


def _make_executable(path: Path) -> None:
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class UpdateManager:
    """Fetches the latest release and installs it when allowed."""

    def __init__(
        self,
        settings: Settings,
        releases_url: str,
        settings_path=None,
        session: Optional[requests.Session] = None,
        runner: Optional[Runner] = None,
        work_dir=None,
        install_path=DEFAULT_INSTALL_PATH,
        os_name: Optional[str] = None,
        arch: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self.releases_url = releases_url
        self.settings_path = settings_path
        self.session = session if session is not None else requests.Session()
        self.session.headers["User-Agent"] = USER_AGENT
        self._runner = runner if runner is not None else _run
        self.work_dir = (
            Path(work_dir)
            if work_dir is not None
            else Path(tempfile.gettempdir()) / "zdefender_update"
        )
        self.install_path = Path(install_path)
        self.os_name = os_name
        self.arch = arch

    def _get(self, url: str) -> requests.Response:
        try:
            return self.session.get(url, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as exc:
            raise UpdateError(str(exc)) from exc

    def fetch_latest_release(self) -> Release:
        response = self._get(self.releases_url)
        if not response.ok:
            raise UpdateError(f"HTTP error: {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise UpdateError(f"Invalid release data: {exc}") from exc
        return Release.from_dict(data)

    def check_for_updates(self) -> bool:
        """Return True when a newer release was installed."""
        logger.info("Checking for updates at %s", self.releases_url)
        current = self.settings.version
        logger.info("Current version: %s", current)

        try:
            release = self.fetch_latest_release()
        except UpdateError as exc:
            logger.warning("Could not fetch the latest release: %s", exc)
            return False

        latest = release.tag_name.lstrip("v")
        logger.info("Latest version available: %s", latest)

        if not is_newer_version(latest, current):
            logger.info("The system is up to date")
            return False

        logger.info("A new version is available: %s -> %s", current, latest)
        if not self.settings.auto_update:
            logger.info("Automatic updates are disabled; update manually from %s", release.html_url)
            return False

        logger.info("Downloading and installing the update...")
        try:
            self.download_and_install_update(release)
        except UpdateError as exc:
            logger.error("Update failed: %s", exc)
            raise

        logger.info("Update to version %s succeeded", latest)
        self.settings.version = latest
        if self.settings_path is not None:
            try:
                self.settings.save(self.settings_path)
            except OSError as exc:
                logger.error("Could not save settings after update: %s", exc)
        return True

    def download_and_install_update(self, release: Release) -> None:
        if not release.assets:
            raise UpdateError("No update file available")
        asset = find_appropriate_asset(release.assets, self.os_name, self.arch)
        logger.info("Downloading %s (%s)", asset.name, format_size(asset.size))

        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise UpdateError(f"Cannot create work directory: {exc}") from exc
        asset_path = self.work_dir / asset.name

        response = self._get(asset.browser_download_url)
        if not response.ok:
            raise UpdateError(f"Download error: {response.status_code}")
        try:
            asset_path.write_bytes(response.content)
        except OSError as exc:
            raise UpdateError(f"Cannot write {asset_path}: {exc}") from exc

        logger.info("Download finished, installing...")
        suffix = Path(asset.name).suffix
        if suffix == ".sh":
            try:
                _make_executable(asset_path)
            except OSError as exc:
                raise UpdateError(f"Error changing permissions: {exc}") from exc
            self._run_script(asset_path)
        elif suffix == ".zip":
            self._install_zip(asset_path)
        else:
            raise UpdateError(f"Unsupported file type: {asset.name}")

        shutil.rmtree(self.work_dir, ignore_errors=True)
        logger.info("Installation completed successfully")

    def _run_script(self, script: Path) -> None:
        try:
            result = self._runner(["sh", str(script)])
        except OSError as exc:
            raise UpdateError(f"Installation error: {exc}") from exc
        if result.returncode != 0:
            stderr = result.stderr or b""
            message = stderr.decode("utf-8", errors="replace") if isinstance(stderr, bytes) else stderr
            raise UpdateError(f"Installation error: {message}")

    def _install_zip(self, archive: Path) -> None:
        try:
            with zipfile.ZipFile(archive) as bundle:
                bundle.extractall(self.work_dir)
        except (zipfile.BadZipFile, OSError) as exc:
            raise UpdateError(f"Extraction error: {exc}") from exc

        script = self.work_dir / "install.sh"
        if script.exists():
            try:
                _make_executable(script)
            except OSError:
                pass
            self._run_script(script)
            return

        logger.info("No install script found, copying files...")
        binary = self.work_dir / "zdefender"
        if binary.exists():
            try:
                shutil.copyfile(binary, self.install_path)
            except OSError as exc:
                raise UpdateError(f"Cannot install binary: {exc}") from exc
            try:
                os.chmod(self.install_path, self.install_path.stat().st_mode | 0o111)
            except OSError:
                pass