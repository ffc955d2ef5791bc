"""
Kitware CMake binary — the fallback when the distro cmake is too old.

The release tarball unpacks under ``cmake_install_dir``; its tools are
symlinked into ``<install_prefix>/bin`` so they shadow the distro copy
on PATH.
"""

from __future__ import annotations

import logging
import platform
import shutil
import tarfile
import tempfile
import urllib.error
import urllib.request
from collections.abc import Callable
from pathlib import Path

from transmission_manager.adapters.fetcher import USER_AGENT
from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.config import ManagerConfig

logger = logging.getLogger(__name__)

ACTION = "install-deps"

# uname -m → Kitware release suffix
KITWARE_ARCHES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}
CMAKE_TOOLS = ("cmake", "ccmake", "cpack", "ctest")


class KitwareCmakeInstaller:
    """Installs a pinned CMake release from Kitware's binary tarballs."""

    def __init__(
        self,
        config: ManagerConfig,
        urlopen: Callable = urllib.request.urlopen,
        machine: Callable[[], str] = platform.machine,
    ):
        self._config = config
        self._urlopen = urlopen
        self._machine = machine

    def release_dir(self, arch: str) -> Path:
        version = self._config.cmake_fallback_version
        return Path(self._config.cmake_install_dir) / f"cmake-{version}-linux-{arch}"

    def install(self) -> ActionResult:
        cfg = self._config
        machine = self._machine()
        arch = KITWARE_ARCHES.get(machine)
        if arch is None:
            return ActionResult.failure(ACTION, reason=f"no CMake binary release for architecture {machine}")

        version = cfg.cmake_fallback_version
        url = cfg.cmake_binary_url.format(version=version, arch=arch)
        install_dir = Path(cfg.cmake_install_dir)
        logger.info("Installing CMake %s from %s", version, url)

        request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        try:
            install_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryFile() as archive:
                with self._urlopen(request, timeout=cfg.download_timeout) as resp:
                    shutil.copyfileobj(resp, archive)
                archive.seek(0)
                with tarfile.open(fileobj=archive, mode="r:gz") as tar:
                    tar.extractall(install_dir, filter="data")
        except urllib.error.HTTPError as e:
            return ActionResult.failure(ACTION, reason=f"CMake download failed: HTTP {e.code}", metadata={"url": url})
        except urllib.error.URLError as e:
            return ActionResult.failure(ACTION, reason=f"CMake download failed: {e.reason}", metadata={"url": url})
        except (tarfile.TarError, OSError) as e:
            return ActionResult.failure(ACTION, reason=f"CMake install failed: {e}", metadata={"url": url})

        release = self.release_dir(arch)
        if not (release / "bin" / "cmake").is_file():
            return ActionResult.failure(ACTION, reason=f"cmake binary not found under {release}")

        bin_dir = Path(cfg.install_prefix) / "bin"
        linked = []
        try:
            bin_dir.mkdir(parents=True, exist_ok=True)
            for tool in CMAKE_TOOLS:
                target = release / "bin" / tool
                if not target.exists():
                    continue
                link = bin_dir / tool
                if link.is_symlink() or link.exists():
                    link.unlink()
                link.symlink_to(target)
                linked.append(str(link))
        except OSError as e:
            return ActionResult.failure(ACTION, reason=f"Cannot link CMake tools into {bin_dir}: {e}")

        logger.info("CMake %s installed under %s", version, release)
        return ActionResult.success(
            ACTION,
            output=f"CMake {version} installed manually",
            metadata={"cmake_version": version, "cmake_dir": str(release), "linked": linked},
        )
