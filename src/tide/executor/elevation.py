"""Credential Negotiator: establish a sudo session without blocking workers on prompts.

Elevation prompts are synchronous and block on the terminal. Negotiation is
therefore tried in three tiers (cached session, stored secret, interactive
prompt) and front-loaded once per run by :meth:`CredentialNegotiator.preauthorize`.
Every elevated task still renegotiates on its own; a failed pre-authorization
is advisory only.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Callable
from enum import Enum

from tide.executor.models import ELEVATION_COMMAND
from tide.executor.ports import (
    ElevationBackend,
    Notifier,
    NullNotifier,
    PromptSource,
    SecretStore,
    deliver,
)
from tide.executor.process import CommandError, ProcessOutcome

logger = logging.getLogger(__name__)

_PROBE_TIMEOUT_SECONDS = 10.0
_AUTH_TIMEOUT_SECONDS = 30.0

PREAUTHORIZE_QUESTION = "Enter sudo password (or press Enter to skip)"
TASK_PASSWORD_QUESTION = "Enter sudo password"
SAVE_SECRET_QUESTION = "Save password to keychain for future use?"


class SessionState(str, Enum):
    """Negotiation states for one attempt."""

    UNCHECKED = "unchecked"
    CACHED_VALID = "cached_valid"
    NEEDS_SECRET = "needs_secret"
    AUTHENTICATED = "authenticated"
    ABANDONED_BY_USER = "abandoned_by_user"
    INVALID_SECRET = "invalid_secret"

    @property
    def usable(self) -> bool:
        return self in {SessionState.CACHED_VALID, SessionState.AUTHENTICATED}


class SecretStoreError(RuntimeError):
    """Secret could not be persisted."""


class SudoBackend:
    """``sudo`` probes: ``sudo -n true`` for the cache, ``sudo -S`` to feed a password."""

    command = ELEVATION_COMMAND

    def probe(self) -> bool:
        try:
            completed = subprocess.run(  # noqa: S603
                [self.command, "-n", "true"],
                check=False,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=_PROBE_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return completed.returncode == 0

    def authenticate(self, secret: str) -> bool:
        try:
            completed = subprocess.run(  # noqa: S603
                [self.command, "-S", "-p", "", "true"],
                check=False,
                input=f"{secret}\n",
                text=True,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=_AUTH_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired) as error:
            logger.debug("sudo authentication attempt failed to run: %s", error)
            return False
        return completed.returncode == 0


class CredentialNegotiator:
    """Three-tier sudo negotiation shared by the coordinator and all workers.

    Negotiation is serialized with a lock so two tasks never negotiate at the
    same time. Prompts are only issued when ``interactive`` is True, which the
    dispatcher passes for the coordinating thread alone.
    """

    def __init__(
        self,
        *,
        secret_store: SecretStore,
        prompts: PromptSource,
        backend: ElevationBackend | None = None,
        notifier: Notifier | None = None,
        on_message: Callable[[str], None] | None = None,
    ) -> None:
        self._secret_store = secret_store
        self._prompts = prompts
        self._backend = backend or SudoBackend()
        self._notifier = notifier or NullNotifier()
        self._on_message = on_message or (lambda _message: None)
        self._lock = threading.Lock()
        self.state = SessionState.UNCHECKED

    @property
    def command(self) -> str:
        return self._backend.command

    def has_cached_session(self) -> bool:
        return self._backend.probe()

    def preauthorize(self, label: str) -> SessionState:
        """Best-effort session setup before any task runs. Never raises."""

        with self._lock:
            state = self._negotiate(
                label,
                interactive=True,
                question=PREAUTHORIZE_QUESTION,
                announce=True,
            )
            self.state = state

        if state == SessionState.CACHED_VALID:
            logger.debug("sudo timestamp already valid")
        elif state == SessionState.AUTHENTICATED:
            logger.debug("sudo authenticated before run")
        else:
            logger.warning("sudo pre-authorization did not succeed: %s", state.value)
            self._message(
                f"Sudo authentication failed ({state.value}); "
                "tasks requiring sudo may fail or time out.",
            )
        return state

    def run_elevated(
        self,
        args: list[str],
        *,
        label: str,
        launch: Callable[[list[str]], ProcessOutcome],
        interactive: bool = True,
    ) -> ProcessOutcome:
        """Negotiate a session, then run ``args`` under ``sudo -n``.

        Raises ``CommandError`` when no session could be established; the
        failure is local to the calling task.
        """

        with self._lock:
            state = self._negotiate(
                label,
                interactive=interactive,
                question=TASK_PASSWORD_QUESTION,
                announce=False,
            )
            self.state = state

        if state == SessionState.INVALID_SECRET:
            raise CommandError("authentication failed")
        if state == SessionState.ABANDONED_BY_USER:
            raise CommandError("sudo authentication cancelled by user")
        if state == SessionState.NEEDS_SECRET:
            raise CommandError(
                "sudo authentication required but no cached session or stored password "
                "is available, and parallel tasks cannot prompt. Run sequentially or "
                "store the password in the keychain.",
            )
        return launch([self._backend.command, "-n", *args])

    def _negotiate(
        self,
        label: str,
        *,
        interactive: bool,
        question: str,
        announce: bool,
    ) -> SessionState:
        if self._backend.probe():
            return SessionState.CACHED_VALID

        stored = self._secret_store.get(label)
        if stored:
            if self._backend.authenticate(stored):
                logger.debug("sudo authenticated via stored secret %s", label)
                return SessionState.AUTHENTICATED
            logger.warning("Stored secret %s is outdated", label)
            if not interactive:
                return SessionState.INVALID_SECRET

        if not interactive:
            return SessionState.NEEDS_SECRET

        if announce:
            self._message("Some tasks may require sudo privileges.")
        deliver(self._notifier.elevation_required)
        secret = self._prompts.ask_secret(question)
        if not secret:
            self._message("Skipping sudo authentication.")
            return SessionState.ABANDONED_BY_USER

        if not self._backend.authenticate(secret):
            return SessionState.INVALID_SECRET

        self._offer_to_store(label, secret)
        return SessionState.AUTHENTICATED

    def _message(self, text: str) -> None:
        deliver(self._on_message, text)

    def _offer_to_store(self, label: str, secret: str) -> None:
        if self._secret_store.exists(label):
            return
        if not self._prompts.confirm(SAVE_SECRET_QUESTION, default=True):
            return
        try:
            self._secret_store.put(label, secret)
        except SecretStoreError as error:
            logger.warning("Could not save password to keychain: %s", error)
            self._message(f"Could not save password to keychain: {error}")
            return
        self._message(f"Password saved to keychain (service: {label})")
