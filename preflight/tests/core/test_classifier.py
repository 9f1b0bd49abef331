"""Tests for transport error classification."""

import pytest

from preflight.core.classifier import (
    FATAL_CODES,
    UNKNOWN_CODE_POLICY,
    UNKNOWN_CODE_REASON,
    ErrorClassifier,
)
from preflight.core.models import ErrorClassification, FatalError, NonFatalError


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


@pytest.mark.parametrize(
    ("code", "reason"),
    [
        (31000, FatalError.SIGNALING_CONNECTION_FAILED),
        (31003, FatalError.ICE_CONNECTION_FAILED),
        (20101, FatalError.INVALID_TOKEN),
        (31208, FatalError.MEDIA_PERMISSIONS_FAILED),
        (31201, FatalError.NO_DEVICES_FOUND),
    ],
)
def test_fatal_codes_map_to_their_reason(
    classifier: ErrorClassifier, code: int, reason: FatalError
) -> None:
    """Each fatal transport code maps to its own reason."""
    error = classifier.classify(code)
    assert error.classification is ErrorClassification.FATAL
    assert error.reason is reason
    assert error.code == code
    assert error.is_fatal


def test_fatal_reasons_are_distinct() -> None:
    """No two fatal codes share a reason."""
    assert len(set(FATAL_CODES.values())) == len(FATAL_CODES)


def test_insights_failure_is_non_fatal(classifier: ErrorClassifier) -> None:
    error = classifier.classify(31400)
    assert error.classification is ErrorClassification.NON_FATAL
    assert error.reason is NonFatalError.INSIGHTS_CONNECTION_FAILED
    assert not error.is_fatal


@pytest.mark.parametrize("code", [0, 1, 31005, 53000, 99999, -1])
def test_unknown_codes_are_non_fatal(classifier: ErrorClassifier, code: int) -> None:
    """Codes outside the table never end the test."""
    error = classifier.classify(code)
    assert UNKNOWN_CODE_POLICY is ErrorClassification.NON_FATAL
    assert error.classification is UNKNOWN_CODE_POLICY
    assert error.reason is UNKNOWN_CODE_REASON
    assert error.code == code
    assert not classifier.is_known(code)


def test_call_cancelled_is_never_produced_by_a_code(classifier: ErrorClassifier) -> None:
    reasons = {classifier.classify(code).reason for code in range(20000, 32000)}
    assert FatalError.CALL_CANCELLED not in reasons


def test_synthetic_error_has_no_code() -> None:
    error = ErrorClassifier.synthetic(FatalError.CALL_CANCELLED)
    assert error.is_fatal
    assert error.reason is FatalError.CALL_CANCELLED
    assert error.code is None


def test_extra_fatal_codes_override_defaults() -> None:
    """Per-instance tables extend and override the defaults."""
    classifier = ErrorClassifier(fatal_codes={31400: FatalError.SIGNALING_CONNECTION_FAILED})

    assert classifier.classify(31400).is_fatal
    assert classifier.classify(31000).reason is FatalError.SIGNALING_CONNECTION_FAILED
    assert 31400 not in classifier.non_fatal_codes


def test_extra_non_fatal_codes_override_defaults() -> None:
    classifier = ErrorClassifier(
        non_fatal_codes={31003: NonFatalError.INSIGHTS_CONNECTION_FAILED}
    )

    assert not classifier.classify(31003).is_fatal
    assert 31003 not in classifier.fatal_codes
    # Default table is untouched
    assert ErrorClassifier().classify(31003).is_fatal


def test_call_cancelled_cannot_be_mapped() -> None:
    with pytest.raises(ValueError, match="CALL_CANCELLED"):
        ErrorClassifier(fatal_codes={12345: FatalError.CALL_CANCELLED})
