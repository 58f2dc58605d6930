from bulkimport.schemas import BulkOperationResult


class UnsupportedFileError(ValueError):
    pass


class FileTooLargeError(ValueError):
    pass


class RemoteValidationError(RuntimeError):
    pass


class BatchDispatchError(RuntimeError):
    """A batch could not be delivered; ``outcome`` is the last dispatch outcome."""

    def __init__(self, message: str, *, outcome: object = None, attempts: int = 0) -> None:
        super().__init__(message)
        self.outcome = outcome
        self.attempts = attempts


class ImportAborted(RuntimeError):
    def __init__(self, message: str, *, partial_result: BulkOperationResult) -> None:
        super().__init__(message)
        self.partial_result = partial_result
