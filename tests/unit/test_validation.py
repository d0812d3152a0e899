"""
Unit tests for input validation utilities.
"""

import pytest


class TestCompanyName:
    """Tests for validate_company_name function."""

    def test_whitespace_collapsed(self):
        from src.utils.validation import validate_company_name

        assert validate_company_name("  Acme \n Corp ") == "Acme Corp"

    @pytest.mark.parametrize("name", [None, "", "   ", "---", "!!!"])
    def test_rejected_names(self, name):
        from src.utils.validation import validate_company_name
        from src.intelligence.errors import InvalidRequest

        with pytest.raises(InvalidRequest):
            validate_company_name(name)

    def test_too_long(self):
        from src.utils.validation import validate_company_name
        from src.intelligence.errors import InvalidRequest

        with pytest.raises(InvalidRequest, match="longer"):
            validate_company_name("A" * 500)

    def test_invalid_request_is_value_error(self):
        """Callers catching ValueError keep working."""
        from src.utils.validation import validate_company_name

        with pytest.raises(ValueError):
            validate_company_name("")


class TestContactEmail:
    """Tests for validate_contact_email function."""

    def test_valid_email_lowercased(self):
        from src.utils.validation import validate_contact_email

        assert validate_contact_email(" Jane.Doe@Acme.IO ") == "jane.doe@acme.io"

    @pytest.mark.parametrize("email", [None, "", "jane", "jane@", "@acme.io", "jane@acme"])
    def test_invalid_emails(self, email):
        from src.utils.validation import validate_contact_email
        from src.intelligence.errors import InvalidRequest

        with pytest.raises(InvalidRequest):
            validate_contact_email(email)


class TestSources:
    """Tests for validate_sources function."""

    def test_none_means_all(self):
        from src.utils.validation import validate_sources
        from src.intelligence.models.content import SourceKey

        assert validate_sources(None) == list(SourceKey)

    def test_case_and_order_normalized(self):
        from src.utils.validation import validate_sources
        from src.intelligence.models.content import SourceKey

        assert validate_sources(["NEWS", " repos", "news"]) == [SourceKey.REPOS, SourceKey.NEWS]

    def test_enum_members_accepted(self):
        from src.utils.validation import validate_sources
        from src.intelligence.models.content import SourceKey

        assert validate_sources([SourceKey.JOBS]) == [SourceKey.JOBS]


class TestJobIdValidation:
    """Tests for validate_job_id function."""

    def test_valid_job_id(self):
        from src.utils.validation import validate_job_id

        assert validate_job_id("job-0123456789ab") == "job-0123456789ab"

    @pytest.mark.parametrize("job_id", ["", "job-123", "job-0123456789AB", "../job-0123456789ab", "task-0123456789ab"])
    def test_invalid_job_ids(self, job_id):
        from src.utils.validation import validate_job_id
        from src.intelligence.errors import InvalidRequest

        with pytest.raises(InvalidRequest):
            validate_job_id(job_id)
