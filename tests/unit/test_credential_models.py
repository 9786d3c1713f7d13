"""Unit tests for credential record and auth status models."""

import pytest
from pydantic import ValidationError

from google_mcp.auth.models import (
    CURRENT_SCHEMA_VERSION,
    REFRESH_BUFFER_MS,
    AuthStatus,
    CredentialRecord,
    TokenStatus,
)


@pytest.mark.unit
class TestCredentialRecord:
    """Tests for CredentialRecord validation and serialization."""

    def test_should_accept_snake_case_field_names(self) -> None:
        """Verify records can be built with Python attribute names."""
        record = CredentialRecord(
            access_token="access",
            refresh_token="refresh",
            expiry_epoch_millis=1_000,
            scope="a b",
        )

        assert record.access_token == "access"
        assert record.token_type == "Bearer"
        assert record.schema_version == CURRENT_SCHEMA_VERSION

    def test_should_accept_camel_case_storage_keys(self) -> None:
        """Verify records validate from the on-disk JSON layout."""
        record = CredentialRecord.model_validate(
            {
                "accessToken": "access",
                "refreshToken": "refresh",
                "expiryEpochMillis": 2_000,
                "scope": "a",
                "tokenType": "Bearer",
                "createdAtEpochMillis": 1_000,
                "schemaVersion": "2.0.0",
            }
        )

        assert record.expiry_epoch_millis == 2_000
        assert record.created_at_epoch_millis == 1_000

    def test_should_serialize_with_camel_case_keys(self) -> None:
        """Verify to_storage_dict uses the on-disk key names."""
        record = CredentialRecord(
            access_token="access",
            refresh_token="refresh",
            expiry_epoch_millis=2_000,
            created_at_epoch_millis=1_000,
        )

        data = record.to_storage_dict()

        assert data["accessToken"] == "access"
        assert data["refreshToken"] == "refresh"
        assert data["expiryEpochMillis"] == 2_000
        assert data["createdAtEpochMillis"] == 1_000
        assert data["schemaVersion"] == CURRENT_SCHEMA_VERSION
        assert "access_token" not in data

    @pytest.mark.parametrize("missing", ["access_token", "refresh_token"])
    def test_should_reject_record_without_both_tokens(self, missing: str) -> None:
        """Verify a record lacking either token is invalid."""
        values = {
            "access_token": "access",
            "refresh_token": "refresh",
            "expiry_epoch_millis": 1_000,
        }
        values[missing] = ""

        with pytest.raises(ValidationError):
            CredentialRecord(**values)

    def test_should_split_scope_string(self) -> None:
        """Verify scopes property returns the granted scopes as a list."""
        record = CredentialRecord(
            access_token="a", refresh_token="r", expiry_epoch_millis=0, scope="x  y x"
        )
        assert record.scopes == ["x", "y"]


@pytest.mark.unit
class TestRefreshBuffer:
    """Tests for the five-minute refresh buffer."""

    def _record(self, expiry: int) -> CredentialRecord:
        return CredentialRecord(access_token="a", refresh_token="r", expiry_epoch_millis=expiry)

    def test_should_not_need_refresh_outside_buffer(self) -> None:
        """Verify a token expiring after now + buffer is usable."""
        now = 10_000_000
        record = self._record(now + REFRESH_BUFFER_MS + 1)
        assert record.needs_refresh(now) is False

    def test_should_need_refresh_at_buffer_boundary(self) -> None:
        """Verify expiry exactly at now + buffer already requires refresh."""
        now = 10_000_000
        record = self._record(now + REFRESH_BUFFER_MS)
        assert record.needs_refresh(now) is True

    def test_should_need_refresh_inside_buffer(self) -> None:
        """Verify a token expiring in one minute requires refresh."""
        now = 10_000_000
        record = self._record(now + 60_000)

        assert record.needs_refresh(now) is True
        assert record.is_expired(now) is False

    def test_should_report_expired_after_nominal_expiry(self) -> None:
        """Verify is_expired ignores the buffer."""
        now = 10_000_000
        assert self._record(now).is_expired(now) is True
        assert self._record(now + 1).is_expired(now) is False

    def test_should_clamp_time_until_expiry_at_zero(self) -> None:
        """Verify time_until_expiry never goes negative."""
        now = 10_000_000
        assert self._record(now - 5_000).time_until_expiry(now) == 0
        assert self._record(now + 5_000).time_until_expiry(now) == 5_000


@pytest.mark.unit
class TestTokenStatus:
    """Tests for TokenStatus enum."""

    def test_should_have_expected_values(self) -> None:
        """Verify TokenStatus values."""
        assert TokenStatus.VALID.value == "valid"
        assert TokenStatus.EXPIRED.value == "expired"
        assert TokenStatus.MISSING.value == "missing"
        assert TokenStatus.INVALID.value == "invalid"


@pytest.mark.unit
class TestAuthStatus:
    """Tests for AuthStatus snapshot model."""

    def test_should_default_optional_fields(self) -> None:
        """Verify an unauthenticated snapshot needs only the two flags."""
        status = AuthStatus(is_authenticated=False, has_tokens=False)

        assert status.scopes == []
        assert status.missing_scopes == []
        assert status.token_expiry is None
        assert status.needs_refresh is None
