"""
Payment provider errors.

There are no retries in the gateway itself: a failed issuance fails the
checkout attempt and redelivery of notifications is left to bunq. The
`retriable` flag only tells the callback endpoint whether asking bunq to
redeliver can help.
"""


class ProviderError(Exception):
    """Base exception for payment provider errors."""

    def __init__(self, message: str, status_code: int = 500, retriable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retriable = retriable


class PermanentError(ProviderError):
    """Non-retriable error (e.g. invalid API key, unknown account, bad request)."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, status_code=status_code, retriable=False)


class IssueError(ProviderError):
    """Creating a payment request failed; the checkout attempt fails."""

    def __init__(self, message: str, status_code: int = 502, retriable: bool = False):
        super().__init__(message, status_code=status_code, retriable=retriable)
