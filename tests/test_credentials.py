"""Tests for credential wrapping and wiping."""

import pytest

from smime_exec.credentials import Credential, resolve_credential, secure_zero
from smime_exec.errors import CredentialError


class TestSecureZero:

    def test_zeroes_in_place(self):
        data = bytearray(b"secret")
        secure_zero(data)
        assert data == bytearray(6)

    def test_empty(self):
        data = bytearray()
        secure_zero(data)
        assert data == bytearray()

    def test_rejects_bytes(self):
        with pytest.raises(TypeError, match="bytearray"):
            secure_zero(b"immutable")


class TestCredential:

    def test_str_is_utf8(self):
        assert Credential("pässword").to_bytes() == "pässword".encode("utf-8")

    def test_clear(self):
        credential = Credential(b"secret")
        buffer = credential.data
        credential.clear()

        assert credential.cleared
        assert buffer == bytearray(6)
        with pytest.raises(CredentialError, match="cleared"):
            credential.to_bytes()

    def test_context_manager_clears(self):
        with Credential("secret") as credential:
            assert credential.to_bytes() == b"secret"
        assert credential.cleared

    def test_repr_hides_value(self):
        assert "secret" not in repr(Credential("secret"))
        assert repr(Credential("secret")) == "<Credential 6 bytes>"

    def test_copies_input(self):
        source = bytearray(b"secret")
        credential = Credential(source)
        source[0] = 0
        assert credential.to_bytes() == b"secret"


class TestResolveCredential:

    @pytest.mark.parametrize("source", ["pw", b"pw", Credential("pw")])
    def test_values(self, source):
        assert resolve_credential(source).to_bytes() == b"pw"

    def test_provider(self):
        assert resolve_credential(lambda: "pw").to_bytes() == b"pw"

    def test_provider_returning_credential(self):
        assert resolve_credential(lambda: Credential(b"pw")).to_bytes() == b"pw"

    def test_bytearray_source_wiped(self):
        source = bytearray(b"pw")
        credential = resolve_credential(source)
        assert credential.to_bytes() == b"pw"
        assert source == bytearray(2)

    @pytest.mark.parametrize("source", [None, "", b"", lambda: None, lambda: ""])
    def test_missing_or_empty(self, source):
        with pytest.raises(CredentialError):
            resolve_credential(source)

    def test_cleared_credential(self):
        credential = Credential("pw")
        credential.clear()
        with pytest.raises(CredentialError):
            resolve_credential(credential)

    def test_unsupported_type(self):
        with pytest.raises(CredentialError, match="Unsupported"):
            resolve_credential(1234)
