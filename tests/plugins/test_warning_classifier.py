"""
Tests for the Warning Classifier Module
"""

import pytest

from mysql_lhm.exceptions import ChunkerError, UnexpectedWarningError
from mysql_lhm.warning_classifier import (
    IGNORABLE_WARNING_CODES,
    WarningClassifier,
    warning_record,
)


def show_warnings_row(code, message='warning'):
    return {'Level': 'Warning', 'Code': code, 'Message': message}


class TestWarningClassifier:
    """Test warning allow-list handling."""

    @pytest.mark.parametrize("code", [1062, 1265, 1592])
    def test_allow_listed_codes_ignored(self, code):
        classifier = WarningClassifier()

        assert classifier.is_ignorable(show_warnings_row(code))
        classifier.check([show_warnings_row(code)])

    def test_unknown_code_is_fatal(self):
        classifier = WarningClassifier()

        with pytest.raises(UnexpectedWarningError) as exc_info:
            classifier.check([show_warnings_row(9999, 'Something unexpected')])

        assert exc_info.value.code == 9999
        assert str(exc_info.value) == "Database error returned: Something unexpected 9999"
        assert isinstance(exc_info.value, ChunkerError)

    def test_fatal_among_ignorable(self):
        """Test one bad warning in a batch of tolerated ones still aborts."""
        warnings = [
            show_warnings_row(1062),
            show_warnings_row(1366, "Incorrect integer value: 'abc' for column 'age' at row 1"),
        ]

        with pytest.raises(UnexpectedWarningError, match="1366"):
            WarningClassifier().check(warnings)

    def test_no_warnings(self):
        WarningClassifier().check([])

    def test_injected_allow_list(self):
        """Test the allow-list is fixed at construction."""
        classifier = WarningClassifier(ignorable_codes=[1062])

        with pytest.raises(UnexpectedWarningError):
            classifier.check([show_warnings_row(1265)])

    def test_default_allow_list_is_immutable(self):
        assert IGNORABLE_WARNING_CODES == frozenset({1062, 1265, 1592})
        with pytest.raises(AttributeError):
            IGNORABLE_WARNING_CODES.add(1366)

    def test_check_uses_is_ignorable(self):
        """Test a subclass widening is_ignorable also widens check()."""
        class TolerantClassifier(WarningClassifier):
            def is_ignorable(self, warning):
                return True

        TolerantClassifier().check([show_warnings_row(9999)])

    def test_code_as_string(self):
        """Test codes returned as strings by some drivers are normalized."""
        assert warning_record({'Level': 'Note', 'Code': '1592', 'Message': 'x'})['code'] == 1592
