"""Text encryption through the platform's external crypto binary."""

from __future__ import annotations

from typing import Optional

from ..errors import DirectiveError
from .session import LocalSession


class ExternalSecretCodec:
    """Encrypts and decrypts short strings by shelling out to `binary`."""

    def __init__(self, binary: str = "dusa", session: Optional[LocalSession] = None) -> None:
        self.binary = binary
        self.session = session or LocalSession(timeout=30)

    def encrypt(self, text: str) -> str:
        return self._run("encrypt-text", text)

    def decrypt(self, text: str) -> str:
        return self._run("decrypt-text", text)

    def _run(self, mode: str, data: str) -> str:
        result = self.session.run([self.binary, mode, data])
        if not result.ok:
            raise DirectiveError(f"{self.binary} {mode} failed: {result.describe()}")
        if not result.stdout:
            raise DirectiveError(f"No data received from {self.binary}")
        return result.stdout
