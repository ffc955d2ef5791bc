"""
Source fetcher — latest-version lookup, download, build, install.

Sources are tried in the configured order; the first usable artifact
wins. An artifact smaller than ``min_artifact_bytes`` is an error page
or a truncated transfer and the next source is tried. The build uses
CMake when the tree has a CMakeLists.txt, autotools otherwise.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tarfile
import tempfile
import urllib.error
import urllib.request
from collections.abc import Callable
from pathlib import Path

from transmission_manager.adapters.base import ArtifactFetcher
from transmission_manager.adapters.shell.command import Runner, run_command
from transmission_manager.core.errors import ActionFailed
from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import normalize_version
from transmission_manager.core.models.run import REASON_TIMEOUT

logger = logging.getLogger(__name__)

ACTION = "fetch-and-build"
USER_AGENT = "transmission-manager/0.1"

CMAKE_FLAGS = (
    "-DCMAKE_BUILD_TYPE=Release",
    "-DENABLE_DAEMON=ON",
    "-DENABLE_GTK=OFF",
    "-DENABLE_QT=OFF",
    "-DENABLE_UTILS=ON",
    "-DENABLE_CLI=ON",
    "-DENABLE_WEB=ON",
)
CONFIGURE_FLAGS = (
    "--disable-gtk",
    "--disable-qt",
    "--enable-cli",
    "--enable-daemon",
    "--enable-utilities",
)

_PAGE_VERSION_RE = re.compile(r"transmission-(\d+\.\d+\.\d+)")


class SourceBuildFetcher(ArtifactFetcher):
    """Builds the daemon from a release tarball.

    Args:
        config: Mirrors, budgets and install prefix.
        runner: Command runner for the build.
        urlopen: ``urllib.request.urlopen`` or a test double.
        workdir: Parent for the temporary build tree.
    """

    def __init__(
        self,
        config: ManagerConfig,
        runner: Runner = run_command,
        urlopen: Callable = urllib.request.urlopen,
        workdir: Path | None = None,
    ):
        self._config = config
        self._runner = runner
        self._urlopen = urlopen
        self._workdir = workdir

    @property
    def name(self) -> str:
        return "source-build"

    def is_available(self) -> bool:
        return True

    # ── Latest version ──────────────────────────────────────────

    def resolve_latest(self) -> str | None:
        """GitHub releases API, then the download page. None if both fail."""
        version = self._latest_from_api() or self._latest_from_download_page()
        if version:
            logger.info("Latest Transmission release: %s", version)
        else:
            logger.warning("Could not determine the latest release")
        return version

    def _latest_from_api(self) -> str | None:
        try:
            data = json.loads(self._get(self._config.latest_release_api, accept="application/vnd.github+json"))
        except (urllib.error.URLError, OSError, ValueError) as e:
            logger.debug("Release API lookup failed: %s", e)
            return None
        tag = data.get("tag_name") if isinstance(data, dict) else None
        return normalize_version(tag) if tag and tag != "null" else None

    def _latest_from_download_page(self) -> str | None:
        try:
            page = self._get(self._config.download_page).decode("utf-8", errors="replace")
        except (urllib.error.URLError, OSError) as e:
            logger.debug("Download page lookup failed: %s", e)
            return None
        match = _PAGE_VERSION_RE.search(page)
        return match.group(1) if match else None

    def _get(self, url: str, accept: str = "*/*") -> bytes:
        request = urllib.request.Request(url, headers={"Accept": accept, "User-Agent": USER_AGENT})
        with self._urlopen(request, timeout=self._config.download_timeout) as resp:
            return resp.read()

    # ── Fetch and build ─────────────────────────────────────────

    def fetch_and_build(self, version: str) -> ActionResult:
        version = normalize_version(version) or ""
        if not version:
            return ActionResult.failure(ACTION, reason="no version to install")

        workdir = Path(tempfile.mkdtemp(prefix=f"transmission-{version}-", dir=self._workdir))
        try:
            archive, source_url, errors = self._download_first(version, workdir)
            if archive is None:
                timed_out = bool(errors) and all(e == REASON_TIMEOUT for e in errors.values())
                return ActionResult.failure(
                    ACTION,
                    reason=REASON_TIMEOUT if timed_out else f"download failed from all {len(errors)} sources",
                    metadata={"errors": errors},
                )

            source_dir = self._extract(archive, workdir / "src")
            built = self._build(source_dir)
            if not built.ok:
                built.metadata["source_url"] = source_url
                return built

            return ActionResult.success(
                ACTION,
                output=built.output,
                metadata={
                    "version": version,
                    "source_url": source_url,
                    "binary_path": str(self._config.binary_path),
                },
            )
        except ActionFailed as e:
            return ActionResult.failure(ACTION, reason=e.reason)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    def _download_first(self, version: str, workdir: Path) -> tuple[Path | None, str, dict[str, str]]:
        errors: dict[str, str] = {}
        for template in self._config.source_urls:
            url = template.format(version=version)
            dest = workdir / url.rsplit("/", 1)[-1]
            error = self._download(url, dest)
            if error is None:
                logger.info("Downloaded %s (%d bytes)", url, dest.stat().st_size)
                return dest, url, errors
            logger.info("Source unusable: %s (%s)", url, error)
            errors[url] = error
            dest.unlink(missing_ok=True)
        return None, "", errors

    def _download(self, url: str, dest: Path) -> str | None:
        """Download with bounded retries. None on success, else the error."""
        last_error = "not attempted"
        request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        for attempt in range(1, self._config.download_attempts + 1):
            try:
                with self._urlopen(request, timeout=self._config.download_timeout) as resp, dest.open("wb") as f:
                    shutil.copyfileobj(resp, f)
            except TimeoutError:
                last_error = REASON_TIMEOUT
            except urllib.error.HTTPError as e:
                # 404 will not get better with retries
                return f"HTTP {e.code}"
            except urllib.error.URLError as e:
                last_error = REASON_TIMEOUT if isinstance(e.reason, TimeoutError) else str(e.reason)
            except OSError as e:
                last_error = str(e)
            else:
                size = dest.stat().st_size
                if size < self._config.min_artifact_bytes:
                    return f"corrupt artifact ({size} bytes < {self._config.min_artifact_bytes})"
                return None
            logger.debug("Download attempt %d/%d failed for %s: %s",
                         attempt, self._config.download_attempts, url, last_error)
        return last_error

    def _extract(self, archive: Path, target: Path) -> Path:
        target.mkdir(parents=True, exist_ok=True)
        try:
            with tarfile.open(archive, "r:*") as tar:
                tar.extractall(target, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise ActionFailed(f"Cannot extract {archive.name}: {e}") from e

        dirs = sorted(p for p in target.iterdir() if p.is_dir())
        for candidate in dirs:
            if (candidate / "CMakeLists.txt").is_file() or (candidate / "configure").is_file():
                return candidate
        raise ActionFailed(f"Could not find extracted source directory in {archive.name}")

    def _build(self, source: Path) -> ActionResult:
        prefix = self._config.install_prefix
        jobs = str(os.cpu_count() or 2)

        if (source / "CMakeLists.txt").is_file():
            build = source / "build"
            build.mkdir(exist_ok=True)
            steps = [
                (["cmake", "-S", str(source), "-B", str(build), f"-DCMAKE_INSTALL_PREFIX={prefix}", *CMAKE_FLAGS], build),
                (["make", f"-j{jobs}"], build),
                (["make", "install"], build),
            ]
        elif (source / "configure").is_file():
            steps = [
                (["./configure", f"--prefix={prefix}", *CONFIGURE_FLAGS], source),
                (["make", f"-j{jobs}"], source),
                (["make", "install"], source),
            ]
        else:
            return ActionResult.failure(ACTION, reason="No recognizable build system found")

        output = ""
        for cmd, cwd in steps:
            logger.info("Build: %s", " ".join(cmd[:2]))
            result = self._runner(cmd, timeout=self._config.build_timeout, cwd=str(cwd))
            if not result.ok:
                return result.to_result(ACTION)
            output = result.stdout
        return ActionResult.success(ACTION, output=output.strip())
