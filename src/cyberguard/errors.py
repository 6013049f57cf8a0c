from __future__ import annotations


class ScanError(Exception):
    pass


class ClassificationError(ScanError):
    pass


class ProviderLookupError(ScanError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PollTimeoutError(ScanError):
    def __init__(self, analysis_id: str, attempts: int) -> None:
        super().__init__(f"Analysis {analysis_id} did not complete after {attempts} attempts")
        self.analysis_id = analysis_id
        self.attempts = attempts
