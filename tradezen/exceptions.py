# -*- coding: utf-8 -*-
"""
tradezen.exceptions

Error taxonomy shared by the session, the remote adapters and the cache.
"""

from typing import Optional


class TradeZenError(RuntimeError):
    """Base class for every error raised by the store."""


class TransportError(TradeZenError):
    """Network or HTTP failure talking to a Google service.

    Not retried here; callers decide whether to try again.
    """

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


class AuthorizationError(TransportError):
    """The bearer credential was rejected (HTTP 401/403) or is missing."""


class NotFoundError(TradeZenError):
    """A record identifier was absent from its collection at mutation time."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection} record '{record_id}' not found")
        self.collection = collection
        self.record_id = record_id


class RowValidationError(TradeZenError):
    """A remote row could not be parsed into a record."""


class ProvisioningError(TradeZenError):
    """The remote document or attachment folder could not be created."""


class SessionError(TradeZenError):
    """Sign-in could not complete, or a refresh failure ended the session."""
