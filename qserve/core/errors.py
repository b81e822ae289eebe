"""Error taxonomy for qserve.

Every error carries a ``kind`` (the key used in JSON error payloads) and an
HTTP ``status_code`` so the service facade can map failures without
inspecting types one by one.
"""


class QServeError(Exception):
    """Base class for all qserve errors."""

    status_code: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_payload(self) -> dict[str, str]:
        return {self.kind: self.message}


# Request validation (client errors)


class RequestValidationError(QServeError):
    status_code = 400


class MissingQueryError(RequestValidationError):
    def __init__(self, message: str = "Query is missing from request"):
        super().__init__(message)


class InvalidControlError(RequestValidationError):
    pass


class RequestMalformedError(RequestValidationError):
    pass


# Serving failures


class RetrievalExecutionError(QServeError):
    """A retrieval pipeline stage failed.

    The message names the underlying cause's kind so clients can tell a
    malformed query from an engine fault without seeing a traceback.
    """

    def __init__(self, cause: BaseException):
        self.cause_kind = type(cause).__name__
        self.cause_message = str(cause)
        super().__init__(f"{self.cause_kind}: {self.cause_message}")
        self.cause = cause


class DocumentResolutionError(QServeError):
    pass


class EndpointNotFoundError(QServeError):
    status_code = 404

    def __init__(self, message: str = "This endpoint does not exist"):
        super().__init__(message)

    @property
    def kind(self) -> str:
        return "EndpointNotFound"


# Index handle


class IndexLoadError(QServeError):
    pass


class UnknownDocumentIdError(QServeError):
    def __init__(self, docid: int, reason: str = "no such document"):
        super().__init__(f"Cannot resolve document id {docid}: {reason}")
        self.docid = docid


# Retrieval engine


class EngineError(QServeError):
    pass


class QuerySyntaxError(EngineError):
    pass


class UnknownModelError(EngineError):
    pass


class StageOrderError(EngineError):
    pass


class InvalidPropertyError(EngineError):
    pass
