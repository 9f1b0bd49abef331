"""Classification rules for transport error codes.

This module decides which transport errors end a preflight test and
which are only reported. Codes not in the table are treated as
non-fatal so an otherwise healthy test is never aborted by an error
the classifier does not understand.
"""

from collections.abc import Mapping
from types import MappingProxyType

from .models import ErrorClassification, FatalError, NonFatalError, TestError

FATAL_CODES: Mapping[int, FatalError] = MappingProxyType(
    {
        31000: FatalError.SIGNALING_CONNECTION_FAILED,
        31003: FatalError.ICE_CONNECTION_FAILED,
        20101: FatalError.INVALID_TOKEN,
        31208: FatalError.MEDIA_PERMISSIONS_FAILED,
        31201: FatalError.NO_DEVICES_FOUND,
    }
)

NON_FATAL_CODES: Mapping[int, NonFatalError] = MappingProxyType(
    {
        31400: NonFatalError.INSIGHTS_CONNECTION_FAILED,
    }
)

# Policy for codes found in neither table.
UNKNOWN_CODE_POLICY = ErrorClassification.NON_FATAL
UNKNOWN_CODE_REASON = NonFatalError.UNRECOGNIZED_ERROR


class ErrorClassifier:
    """Maps transport error codes to classified test errors.

    Pure decision logic, no side effects.
    """

    def __init__(
        self,
        fatal_codes: Mapping[int, FatalError] | None = None,
        non_fatal_codes: Mapping[int, NonFatalError] | None = None,
    ):
        """Initialize the classifier.

        Args:
            fatal_codes: Extra fatal codes merged over the default table.
            non_fatal_codes: Extra non-fatal codes merged over the default table.
        """
        fatal = dict(FATAL_CODES)
        non_fatal = dict(NON_FATAL_CODES)
        if fatal_codes:
            if FatalError.CALL_CANCELLED in fatal_codes.values():
                raise ValueError("CALL_CANCELLED cannot be mapped to a transport code")
            fatal.update(fatal_codes)
            for code in fatal_codes:
                non_fatal.pop(code, None)
        if non_fatal_codes:
            non_fatal.update(non_fatal_codes)
            for code in non_fatal_codes:
                fatal.pop(code, None)
        self.fatal_codes: Mapping[int, FatalError] = MappingProxyType(fatal)
        self.non_fatal_codes: Mapping[int, NonFatalError] = MappingProxyType(non_fatal)

    def classify(self, code: int) -> TestError:
        """Classify a transport error code."""
        fatal_reason = self.fatal_codes.get(code)
        if fatal_reason is not None:
            return TestError(ErrorClassification.FATAL, fatal_reason, code)

        non_fatal_reason = self.non_fatal_codes.get(code)
        if non_fatal_reason is not None:
            return TestError(ErrorClassification.NON_FATAL, non_fatal_reason, code)

        return TestError(UNKNOWN_CODE_POLICY, UNKNOWN_CODE_REASON, code)

    def is_known(self, code: int) -> bool:
        return code in self.fatal_codes or code in self.non_fatal_codes

    @staticmethod
    def synthetic(reason: FatalError) -> TestError:
        """Build a fatal error that did not come from the transport."""
        return TestError(ErrorClassification.FATAL, reason)
