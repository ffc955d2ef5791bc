"""
Password use cases — set or generate the RPC credential.

Both go through the ``set-credential`` action, so a running daemon is
stopped, the settings rewritten (with a backup) and the daemon started
again. The plain text is only ever written to the 0600 password file
and, for a generated password, returned once to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass

from transmission_manager.core.models.facts import DesiredState
from transmission_manager.core.services.actions import SET_CREDENTIAL, build_install_registry
from transmission_manager.core.services.credentials import (
    generate_password,
    hash_password,
)
from transmission_manager.core.use_cases.runtime import ConvergeOutcome, Runtime, converge

MIN_PASSWORD_LENGTH = 8


@dataclass
class PasswordResult:
    outcome: ConvergeOutcome
    plain: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome.ok


def set_password(runtime: Runtime, plain: str) -> PasswordResult:
    """Hash ``plain`` and store it.

    Raises:
        ValueError: If the password is shorter than the minimum.
    """
    if len(plain) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return PasswordResult(outcome=_store(runtime, plain))


def random_password(runtime: Runtime, length: int = 16) -> PasswordResult:
    """Generate, store and return a random password."""
    plain = generate_password(length)
    return PasswordResult(outcome=_store(runtime, plain), plain=plain)


def _store(runtime: Runtime, plain: str) -> ConvergeOutcome:
    desired = DesiredState(credential=hash_password(plain), credential_plain=plain)
    return converge(
        runtime,
        build_install_registry(runtime.config),
        desired,
        operation="password",
        targets=[SET_CREDENTIAL],
    )
