from __future__ import annotations


class StudyToolError(Exception):
    """Base error carrying a human-readable message and the HTTP status to surface."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidInputError(StudyToolError):
    status_code = 400


class UnsupportedTypeError(InvalidInputError):
    ...


class InvalidURLError(InvalidInputError):
    ...


class NotFoundError(StudyToolError):
    status_code = 404


class PolicyViolationError(StudyToolError):
    status_code = 403


class NoSourcesError(StudyToolError):
    status_code = 400


class MaterialNotIngestedError(StudyToolError):
    status_code = 400

    def __init__(self, message: str = "Study material not ingested yet") -> None:
        super().__init__(message)


class UpstreamError(StudyToolError):
    status_code = 500


class RateLimitedError(UpstreamError):
    status_code = 429


class ProcessingFailedError(UpstreamError):
    status_code = 502


class ProcessingTimeoutError(UpstreamError):
    status_code = 504


class SummaryParseError(StudyToolError):
    """The model did not return parseable summary JSON, even after the retry."""

    status_code = 502

    def __init__(self, raw_text: str) -> None:
        super().__init__("Could not parse summary. Please try again.")
        self.raw_text = raw_text
