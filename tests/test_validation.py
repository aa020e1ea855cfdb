"""
Tests for credential shape validation.

Both the connection test and the add-tenant path go through
validate_credential_shape, so these cases pin down what either accepts.
"""

import pytest

from tenant_connections.exceptions import (
    ConflictingCredentialsError,
    CredentialValidationError,
    MissingFieldsError,
)
from tenant_connections.models import CredentialChannel
from tenant_connections.validation import validate_credential_shape

NAME = "contoso.onMicrosoft.com"
APP_ID = "11111111-1111-1111-1111-111111111111"


class TestRequiredFields:
    """Tests for the mandatory name and application id."""

    @pytest.mark.parametrize(
        "name,application_id,missing",
        [
            ("", APP_ID, ["name"]),
            ("   ", APP_ID, ["name"]),
            (None, APP_ID, ["name"]),
            (NAME, "", ["application_id"]),
            (None, None, ["name", "application_id"]),
        ],
    )
    def test_blank_fields_are_reported(self, name, application_id, missing):
        with pytest.raises(MissingFieldsError) as exc_info:
            validate_credential_shape(name, application_id, "s3cr3t", False, False)

        assert exc_info.value.message == "Some mandatory fields are missing."
        assert exc_info.value.context["missing_fields"] == missing

    def test_missing_fields_checked_before_credentials(self):
        """A missing name wins over a credential conflict."""
        with pytest.raises(MissingFieldsError):
            validate_credential_shape("", APP_ID, "s3cr3t", True, True)


class TestCredentialExclusion:
    """Tests for the secret XOR certificate rule."""

    def test_secret_only(self):
        assert (
            validate_credential_shape(NAME, APP_ID, "s3cr3t", False, False)
            == CredentialChannel.SECRET
        )

    def test_certificate_only(self):
        assert (
            validate_credential_shape(NAME, APP_ID, "", True, True)
            == CredentialChannel.CERTIFICATE
        )

    def test_both_supplied_conflicts(self):
        with pytest.raises(ConflictingCredentialsError) as exc_info:
            validate_credential_shape(NAME, APP_ID, "s3cr3t", True, True)

        assert (
            exc_info.value.message
            == "Specify either a client secret or a client certificate, but not both."
        )
        assert exc_info.value.context == {"secret": True, "certificate": True}

    def test_neither_supplied_conflicts(self):
        with pytest.raises(ConflictingCredentialsError) as exc_info:
            validate_credential_shape(NAME, APP_ID, "", False, False)

        assert exc_info.value.context == {"secret": False, "certificate": False}

    def test_empty_upload_counts_as_no_certificate(self):
        """An uploaded but empty file does not select the certificate channel."""
        assert (
            validate_credential_shape(NAME, APP_ID, "s3cr3t", True, False)
            == CredentialChannel.SECRET
        )
        with pytest.raises(ConflictingCredentialsError):
            validate_credential_shape(NAME, APP_ID, "", True, False)

    def test_whitespace_secret_counts_as_empty(self):
        assert (
            validate_credential_shape(NAME, APP_ID, "   ", True, True)
            == CredentialChannel.CERTIFICATE
        )
        with pytest.raises(ConflictingCredentialsError):
            validate_credential_shape(NAME, APP_ID, " \t", False, False)

    def test_errors_share_validation_base(self):
        with pytest.raises(CredentialValidationError):
            validate_credential_shape(NAME, APP_ID, None, False, False)
