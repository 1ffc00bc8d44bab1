"""
Error taxonomy shared by every database adapter
"""

from typing import Optional


class DatabaseError(Exception):
    """A submitted statement failed"""

    def __init__(self, message: str, code: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.detail = detail

    def __str__(self) -> str:
        if self.detail and self.detail != self.message:
            return f"{self.message} {self.detail}"
        return self.message


class DatabaseConnectionError(DatabaseError):
    """A session could not be established or re-established"""


class QueryTimeoutError(DatabaseError):
    """Reserved for statements that exceed a client-side deadline"""

    def __init__(self, message: str = "Query timed out.", code: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message, code, detail)
