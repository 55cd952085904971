"""macOS keychain secret store backed by the ``security`` command line tool."""

from __future__ import annotations

import logging
import subprocess

from tide.executor.elevation import SecretStoreError

logger = logging.getLogger(__name__)

SECURITY_EXECUTABLE = "security"
KEYCHAIN_ACCOUNT = "root"
_SECURITY_TIMEOUT_SECONDS = 15.0


class KeychainSecretStore:
    """Generic-password entries keyed by service label."""

    def __init__(self, *, executable: str = SECURITY_EXECUTABLE, account: str = KEYCHAIN_ACCOUNT):
        self._executable = executable
        self._account = account

    def exists(self, label: str) -> bool:
        completed = self._security("find-generic-password", "-s", label, "-a", self._account)
        return completed is not None and completed.returncode == 0

    def get(self, label: str) -> str | None:
        completed = self._security("find-generic-password", "-s", label, "-a", self._account, "-w")
        if completed is None or completed.returncode != 0:
            return None
        secret = completed.stdout.strip()
        return secret or None

    def put(self, label: str, secret: str) -> None:
        completed = self._security(
            "add-generic-password",
            "-U",
            "-s",
            label,
            "-a",
            self._account,
            "-w",
            secret,
        )
        if completed is None:
            raise SecretStoreError(f"{self._executable} is not available")
        if completed.returncode != 0:
            detail = completed.stderr.strip() or f"exit code {completed.returncode}"
            raise SecretStoreError(f"Failed to save password to keychain: {detail}")

    def _security(self, *args: str) -> subprocess.CompletedProcess[str] | None:
        try:
            return subprocess.run(  # noqa: S603
                [self._executable, *args],
                check=False,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=_SECURITY_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired) as error:
            logger.debug("%s %s failed: %s", self._executable, args[0], error)
            return None
