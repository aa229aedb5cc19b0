"""Sharing error taxonomy.

Every failure the sharing protocol can report has a stable ``code`` and an
HTTP ``status_code``. The server renders them as JSON; the sync transport
rebuilds the same exception class from the ``error`` field of a response
so client code can branch on type instead of on strings.

ACL violations (``NotOwner``, ``NotCollaborator``, ``Forbidden``) are
permanent and never retried. ``TransientNetworkFailure`` only ever
originates client-side (timeouts, dropped connections, 5xx).
"""

from __future__ import annotations


class SharingError(Exception):
    """Base class for sharing-protocol failures."""

    code = 'sharing_error'
    status_code = 400
    default_detail = 'Sharing request failed.'
    permanent = True

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {
            'success': False,
            'error': self.code,
            'detail': self.detail,
        }


class NotOwner(SharingError):
    code = 'not_owner'
    status_code = 403
    default_detail = 'Only the owner can perform this action.'


class NotCollaborator(SharingError):
    code = 'not_collaborator'
    status_code = 403
    default_detail = 'You are not a collaborator on this resource.'


class Forbidden(SharingError):
    code = 'forbidden'
    status_code = 403
    default_detail = 'Permission denied.'


class UserNotFound(SharingError):
    code = 'user_not_found'
    status_code = 404
    default_detail = 'User not found.'

    def __init__(self, username: str = '', detail: str | None = None) -> None:
        self.username = username
        super().__init__(detail or (f'User {username!r} not found.' if username else None))


class NotFound(SharingError):
    code = 'not_found'
    status_code = 404
    default_detail = 'Resource not found.'


class CannotShareWithSelf(SharingError):
    code = 'cannot_share_with_self'
    status_code = 400
    default_detail = 'Cannot share with yourself.'


class InvalidShareRequest(SharingError):
    code = 'invalid_request'
    status_code = 400
    default_detail = 'Invalid share request.'


class TransientNetworkFailure(SharingError):
    """Timeout, connection failure or 5xx while talking to the server."""

    code = 'transient_network_failure'
    status_code = 503
    default_detail = 'Network request failed.'
    permanent = False


_BY_CODE: dict[str, type[SharingError]] = {
    cls.code: cls
    for cls in (
        NotOwner,
        NotCollaborator,
        Forbidden,
        UserNotFound,
        NotFound,
        CannotShareWithSelf,
        InvalidShareRequest,
        TransientNetworkFailure,
    )
}


def error_from_code(code: str | None, detail: str | None = None) -> SharingError:
    """Rebuild a typed error from its wire ``code``.

    Unknown codes fall back to the base ``SharingError``.
    """
    cls = _BY_CODE.get(code or '', SharingError)
    if cls is UserNotFound:
        return UserNotFound(detail=detail)
    return cls(detail)
