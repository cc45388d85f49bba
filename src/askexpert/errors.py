from __future__ import annotations


class ExpertError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigError(ExpertError):
    pass


# ---------------------------------------------------------------------------
# Image pipeline
# ---------------------------------------------------------------------------

class ImageInputError(ExpertError):
    pass


class InvalidDataUriError(ImageInputError):
    pass


class DownloadFailedError(ImageInputError):
    pass


class NonImageContentError(ImageInputError):
    pass


class FileReadFailedError(ImageInputError):
    pass


class UnrecognizedInputError(ImageInputError):
    pass


# ---------------------------------------------------------------------------
# Chat-completion client
# ---------------------------------------------------------------------------

class EmptyInputError(ExpertError):
    pass


class InvalidArgumentsError(ExpertError):
    pass


class UnauthorizedError(ExpertError):
    pass


class ApiError(ExpertError):
    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message, status_code=status_code)
        self.body = body


class MalformedResponseError(ExpertError):
    pass
