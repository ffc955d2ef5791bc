"""
Environment facts and desired state — the two inputs of planning.

``EnvironmentFacts`` is an immutable snapshot of what the probe
observed. During a run the engine derives new snapshots from it with
``updated()``; the original is never mutated.

``DesiredState`` is fully specified by the caller. Nothing inside the
engine or the action registry prompts for missing values.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_serializer

# Credential targets other than an explicit hash.
CREDENTIAL_UNCHANGED = "unchanged"
CREDENTIAL_GENERATE = "generate-random"
# Serialized in place of an explicit hash.
CREDENTIAL_EXPLICIT = "explicit"

LATEST = "latest"


class OsFamily(StrEnum):
    """Distribution family, derived from /etc/os-release."""

    DEBIAN = "debian"
    RHEL = "rhel"
    ARCH = "arch"
    SUSE = "suse"
    ALPINE = "alpine"
    UNKNOWN = "unknown"


class InitSystem(StrEnum):
    """Service manager running as PID 1."""

    SYSTEMD = "systemd"
    OPENRC = "openrc"
    SYSV = "sysv"
    UNKNOWN = "unknown"


class EnvironmentFacts(BaseModel):
    """Immutable snapshot of the host, captured once per run."""

    model_config = ConfigDict(frozen=True)

    os_family: OsFamily = OsFamily.UNKNOWN
    init_system: InitSystem = InitSystem.UNKNOWN
    installed_version: str | None = None
    is_running: bool = False
    available_tools: frozenset[str] = Field(default_factory=frozenset)

    # ── Observed installation state ──────────────────────────────
    binary_path: str | None = None
    service_account: bool = False
    service_unit: bool = False
    runtime_config: bool = False
    network_tuned: bool = False
    log_rotation: bool = False
    rpc_password_hash: str | None = Field(default=None, repr=False, exclude=True)

    @property
    def installed(self) -> bool:
        return self.installed_version is not None

    @property
    def package_managers(self) -> list[str]:
        """Package manager kinds found on the host (``pm:<kind>`` tags)."""
        return sorted(t.split(":", 1)[1] for t in self.available_tools if t.startswith("pm:"))

    def has_tool(self, tag: str) -> bool:
        return tag in self.available_tools

    def updated(self, **changes) -> EnvironmentFacts:
        """Return a new snapshot with ``changes`` applied."""
        if not changes:
            return self
        return self.model_copy(update=changes)


class DesiredState(BaseModel):
    """Target state requested by the caller."""

    model_config = ConfigDict(frozen=True)

    version: str = LATEST
    running: bool = True
    credential: str = CREDENTIAL_UNCHANGED
    network_tuning: bool = False
    purge_data: bool = False

    # Plain text matching an explicit credential hash. Written to the
    # password file only; never serialized.
    credential_plain: str | None = Field(default=None, exclude=True, repr=False)

    @property
    def wants_latest(self) -> bool:
        return self.version == LATEST

    @property
    def explicit_credential(self) -> bool:
        return self.credential not in (CREDENTIAL_UNCHANGED, CREDENTIAL_GENERATE)

    @field_serializer("credential")
    def _mask_credential(self, value: str) -> str:
        if value in (CREDENTIAL_UNCHANGED, CREDENTIAL_GENERATE):
            return value
        return CREDENTIAL_EXPLICIT

    def resolved(self, version: str) -> DesiredState:
        """Return a copy with ``latest`` replaced by a concrete version."""
        return self.model_copy(update={"version": normalize_version(version)})


def normalize_version(version: str | None) -> str | None:
    """Strip a leading ``v`` and whitespace from a version string."""
    if version is None:
        return None
    version = version.strip()
    if version[:1] in ("v", "V"):
        version = version[1:]
    return version or None


def version_tuple(version: str) -> tuple[int, ...]:
    """Numeric tuple for ordering (``4.0.5`` → ``(4, 0, 5)``).

    Non-numeric trailing parts (``-beta.1``) are ignored.
    """
    parts: list[int] = []
    for chunk in (normalize_version(version) or "").split("."):
        digits = ""
        for ch in chunk:
            if not ch.isdigit():
                break
            digits += ch
        if not digits:
            break
        parts.append(int(digits))
    return tuple(parts)
