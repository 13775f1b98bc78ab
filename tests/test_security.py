"""
Tests for the admin credential check and log helpers.
"""
import pytest

from keygate.core.config import KeyPolicy
from keygate.core.deps import admin_credential
from keygate.core.errors import Unauthorized
from keygate.core.security import fingerprint, mask_key, verify_admin_credential

from tests.conftest import ADMIN_PASSWORD


class TestVerifyAdminCredential:
    """Tests for the shared-secret comparison."""

    def test_accepts_admin_secret(self):
        verify_admin_credential(ADMIN_PASSWORD, KeyPolicy(admin_secret=ADMIN_PASSWORD))

    @pytest.mark.parametrize("credential", [None, "", "wrong", ADMIN_PASSWORD + "x"])
    def test_rejects_anything_else(self, credential):
        with pytest.raises(Unauthorized):
            verify_admin_credential(credential, KeyPolicy(admin_secret=ADMIN_PASSWORD))


class TestAdminCredential:
    """Tests for pulling the credential out of a request."""

    def test_raw_header(self):
        assert admin_credential("secret-value", None) == "secret-value"

    def test_bearer_header(self):
        assert admin_credential("Bearer secret-value", None) == "secret-value"

    def test_query_parameter(self):
        assert admin_credential(None, "secret-value") == "secret-value"

    def test_header_wins_over_query(self):
        assert admin_credential("from-header", "from-query") == "from-header"

    def test_nothing_supplied(self):
        assert admin_credential(None, None) is None


class TestLogHelpers:

    def test_mask_key(self):
        assert mask_key("KEY_ABCD1234") == "KEY_ABCD..."

    def test_fingerprint_is_stable_and_short(self):
        assert fingerprint("device-x") == fingerprint("device-x")
        assert len(fingerprint("device-x")) == 12
        assert fingerprint("device-x") != fingerprint("device-y")
