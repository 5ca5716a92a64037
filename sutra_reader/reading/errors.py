from __future__ import annotations


class BackendError(Exception):
    """
    Raised by auth and row-store backends when a request is rejected
    (bad credentials, duplicate account, unknown table, invalid row).
    """

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status
