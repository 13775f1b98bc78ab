"""
Tests for settings validation and the explicit key policy.
"""
import re
from datetime import timedelta

import pytest
from pydantic import ValidationError

from keygate.core.config import KeyPolicy, Settings


class TestAdminPasswordValidation:
    """Tests for ADMIN_PASSWORD checks."""

    def test_insecure_default_rejected(self):
        with pytest.raises(ValidationError):
            Settings(ADMIN_PASSWORD="changeme")

    def test_short_password_rejected(self):
        with pytest.raises(ValidationError):
            Settings(ADMIN_PASSWORD="short-pw")

    def test_strong_password_accepted(self):
        settings = Settings(ADMIN_PASSWORD="a-much-longer-secret")
        assert settings.ADMIN_PASSWORD == "a-much-longer-secret"

    def test_bulk_limit_cannot_exceed_ceiling(self):
        with pytest.raises(ValidationError):
            Settings(ADMIN_PASSWORD="a-much-longer-secret", BULK_ISSUE_LIMIT=51)


class TestKeyPolicy:
    """Tests for policy construction and id generation."""

    def test_from_settings(self):
        settings = Settings(
            ADMIN_PASSWORD="a-much-longer-secret",
            DEFAULT_KEY_DAYS=7,
            PUBLIC_KEY_HOURS=12,
            KEY_PREFIX="LIC_",
        )
        policy = KeyPolicy.from_settings(settings)

        assert policy.admin_secret == "a-much-longer-secret"
        assert policy.default_duration == timedelta(days=7)
        assert policy.public_duration == timedelta(hours=12)
        assert policy.new_key_id().startswith("LIC_")

    def test_generated_ids_have_expected_shape(self):
        policy = KeyPolicy(admin_secret="x" * 12)
        key_id = policy.new_key_id()

        assert re.fullmatch(r"KEY_[A-Z0-9]{8}", key_id)

    def test_generated_ids_differ(self):
        policy = KeyPolicy(admin_secret="x" * 12)
        ids = {policy.new_key_id() for _ in range(100)}

        assert len(ids) == 100

    def test_policies_coexist(self, clock):
        """Two policies with different secrets and clocks do not interfere."""
        first = KeyPolicy(admin_secret="first-secret-value", clock=clock)
        second = KeyPolicy(admin_secret="second-secret-value")

        assert first.now() == clock.now
        assert first.admin_secret != second.admin_secret
