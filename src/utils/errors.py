"""Exceptions raised across the Linear sync pipeline.

Webhook transport code maps these onto HTTP status codes; batch code counts
them via record_exception_and_ignore and moves on.
"""


class SyncError(Exception):
    """Base class for sync pipeline failures."""


class SignatureInvalidError(SyncError):
    """The delivery was not signed with the shared secret. Retrying cannot help."""


class SignatureLengthMismatchError(SignatureInvalidError):
    """The provided signature decodes to a different length than an HMAC-SHA256 digest.

    Raised instead of returning False because the constant-time comparison is
    only meaningful for equal-length inputs.
    """

    def __init__(self, provided_length: int, expected_length: int):
        self.provided_length = provided_length
        self.expected_length = expected_length
        super().__init__(
            f"Signature length mismatch: got {provided_length} bytes, expected {expected_length}"
        )


class MalformedPayloadError(SyncError):
    """The payload is missing something required, usually its natural key."""


class UnsupportedEntityTypeError(SyncError):
    """The delivery names an entity type the sync pipeline does not store."""

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Unsupported entity type: {entity_type}")


class StorageUnavailableError(SyncError):
    """The synced store could not be reached. Safe to retry, upserts are idempotent."""


class TenantUnauthorizedError(SyncError):
    """The caller is not a member of the hub, or lacks the role for the operation."""


class LabelChangeRejectedError(SyncError):
    """A hub user's label add/remove request failed validation.

    ``status_code`` is 403 when the label is outside the hub's visibility and
    400 for requests that are merely inconsistent with the issue's labels.
    """

    def __init__(self, message: str, status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)
