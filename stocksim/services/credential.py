"""Credential service: answers ``AUTH <user> <obfuscated_password>``."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping

from stocksim.errors import DataFileError
from stocksim.protocol import AUTH_FAILED, AUTH_SUCCESS, obfuscate_password
from stocksim.services.base import BaseService

logger = logging.getLogger(__name__)


def load_members(path: Path, plaintext: bool = False) -> dict[str, str]:
    """
    Read ``<username> <password>`` lines.

    The file normally stores obfuscated passwords. With ``plaintext`` the
    passwords are obfuscated at load time.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DataFileError(f"Cannot read members file: {exc}", path=str(path)) from exc

    members: dict[str, str] = {}
    for line_no, line in enumerate(text.splitlines(), start=1):
        parts = line.split()
        if not parts:
            continue
        if len(parts) != 2:
            raise DataFileError(
                "expected '<username> <password>'", path=str(path), line_no=line_no
            )
        username, password = parts
        members[username] = obfuscate_password(password) if plaintext else password
    logger.info(f"Loaded {len(members)} member credentials from {path}")
    return members


class CredentialService(BaseService):
    """Holds username -> obfuscated password, read-only after load."""

    name = "credential"

    def __init__(self, members: Mapping[str, str]) -> None:
        super().__init__()
        # Usernames are matched case-insensitively
        self._members: dict[str, str] = {u.lower(): p for u, p in members.items()}
        self._verbs = {"AUTH": self._handle_auth}

    @classmethod
    def from_file(cls, path: Path, plaintext: bool = False) -> "CredentialService":
        return cls(load_members(path, plaintext=plaintext))

    @property
    def usernames(self) -> Iterable[str]:
        return self._members.keys()

    def authenticate(self, username: str, obfuscated: str) -> bool:
        stored = self._members.get(username.lower())
        return stored is not None and stored == obfuscated

    def _handle_auth(self, parts: list[str]) -> str:
        if len(parts) != 3:
            raise ValueError("AUTH takes <username> <password>")
        _, username, obfuscated = parts
        if self.authenticate(username, obfuscated):
            logger.info(f"[{self.name}] Member {username} has been authenticated")
            return AUTH_SUCCESS
        logger.info(f"[{self.name}] The username {username} or password is incorrect")
        return AUTH_FAILED
