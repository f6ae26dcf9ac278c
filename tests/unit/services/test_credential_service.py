"""
Unit tests for the credential service and members file loader.
"""

from pathlib import Path

import pytest

from stocksim.errors import DataFileError
from stocksim.protocol import AUTH_FAILED, AUTH_SUCCESS, ERR_MALFORMED_REQUEST
from stocksim.services.credential import CredentialService, load_members


class TestLoadMembers:
    def test_obfuscated_file(self, tmp_path: Path) -> None:
        path = tmp_path / "members.txt"
        path.write_text("James VRGlgv625\n\nMary Pdub5357\n")

        assert load_members(path) == {"James": "VRGlgv625", "Mary": "Pdub5357"}

    def test_plaintext_file_is_obfuscated(self, tmp_path: Path) -> None:
        path = tmp_path / "members.txt"
        path.write_text("James SODids392\n")

        assert load_members(path, plaintext=True) == {"James": "VRGlgv625"}

    def test_malformed_line(self, tmp_path: Path) -> None:
        path = tmp_path / "members.txt"
        path.write_text("James VRGlgv625\nMary\n")

        with pytest.raises(DataFileError) as exc_info:
            load_members(path)
        assert exc_info.value.line_no == 2

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(DataFileError):
            load_members(tmp_path / "nope.txt")


class TestCredentialService:
    @pytest.fixture
    def service(self) -> CredentialService:
        return CredentialService({"James": "VRGlgv625"})

    def test_correct_credentials(self, service: CredentialService) -> None:
        assert service.handle("AUTH James VRGlgv625") == AUTH_SUCCESS

    def test_username_is_case_insensitive(self, service: CredentialService) -> None:
        assert service.handle("AUTH james VRGlgv625") == AUTH_SUCCESS
        assert service.handle("AUTH JAMES VRGlgv625") == AUTH_SUCCESS

    def test_password_is_case_sensitive(self, service: CredentialService) -> None:
        assert service.handle("AUTH James vrglgv625") == AUTH_FAILED

    def test_plaintext_password_rejected(self, service: CredentialService) -> None:
        assert service.handle("AUTH James SODids392") == AUTH_FAILED

    def test_unknown_user(self, service: CredentialService) -> None:
        assert service.handle("AUTH Nobody VRGlgv625") == AUTH_FAILED

    @pytest.mark.parametrize("request_text", ["AUTH James", "AUTH", "AUTH a b c", "LOGIN James x", ""])
    def test_malformed(self, service: CredentialService, request_text: str) -> None:
        assert service.handle(request_text) == ERR_MALFORMED_REQUEST

    def test_trailing_nul_and_whitespace(self, service: CredentialService) -> None:
        assert service.handle("AUTH James VRGlgv625\0") == AUTH_SUCCESS
        assert service.handle("  AUTH James VRGlgv625 \n") == AUTH_SUCCESS

    def test_stats(self, service: CredentialService) -> None:
        service.handle("AUTH James VRGlgv625")
        service.handle("AUTH James")
        service.handle("PING")
        assert service.stats.requests == 3
        assert service.stats.malformed == 2
        assert service.stats.by_verb == {"AUTH": 2}

    def test_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "members.txt"
        path.write_text("James VRGlgv625\n")
        service = CredentialService.from_file(path)
        assert list(service.usernames) == ["james"]
