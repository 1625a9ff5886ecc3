"""
Shared error types for the identity engine.

Every rejection the engine produces is a ``ValidationIssue`` so the
service layer can turn it into a structured payload. Subclasses fix the
``error_type``/``error_code`` pair callers branch on.
"""


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class _EngineIssue(ValidationIssue):
    default_field = "unknown"
    default_error_type = "invalid"
    default_error_code: str | None = None

    def __init__(
        self,
        message: str,
        field: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(
            message,
            field=field or self.default_field,
            error_type=self.default_error_type,
            error_code=self.default_error_code,
            data=data,
        )


class CycleDetected(_EngineIssue):
    default_field = "target_id"
    default_error_type = "cycle"
    default_error_code = "ALIAS_CYCLE"


class ConflictingAlias(_EngineIssue):
    default_field = "source_id"
    default_error_type = "conflict"
    default_error_code = "ALIAS_CONFLICT"


class AlreadyLinkedCannotMerge(_EngineIssue):
    default_field = "member_id"
    default_error_type = "conflict"
    default_error_code = "ALREADY_LINKED"


class NotFound(_EngineIssue):
    default_error_type = "not_found"
    default_error_code = "NOT_FOUND"


class RequestNotFound(NotFound):
    default_field = "request_id"
    default_error_code = "REQUEST_NOT_FOUND"


class RequestNotPending(_EngineIssue):
    default_field = "request_id"
    default_error_type = "invalid_state"
    default_error_code = "REQUEST_NOT_PENDING"


class RequestExpired(_EngineIssue):
    default_field = "request_id"
    default_error_type = "expired"
    default_error_code = "REQUEST_EXPIRED"


class RequestAlreadyPending(_EngineIssue):
    default_field = "recipient_email"
    default_error_type = "conflict"
    default_error_code = "REQUEST_ALREADY_PENDING"


class RequestPreviouslyRejected(_EngineIssue):
    default_field = "recipient_email"
    default_error_type = "conflict"
    default_error_code = "REQUEST_REJECTED"


class AlreadyFriends(_EngineIssue):
    default_field = "recipient_email"
    default_error_type = "conflict"
    default_error_code = "ALREADY_FRIENDS"


class Unauthorized(_EngineIssue):
    default_field = "account"
    default_error_type = "unauthorized"
    default_error_code = "UNAUTHORIZED"


class PolicyViolation(_EngineIssue):
    default_field = "participant_ids"
    default_error_type = "policy"
    default_error_code = "NOT_FRIENDS"


class RemovalPathMismatch(_EngineIssue):
    default_field = "member_id"
    default_error_type = "invalid_state"
    default_error_code = "REMOVAL_PATH_MISMATCH"


class SelfClaim(_EngineIssue):
    default_field = "recipient_email"
    default_error_type = "invalid_value"
    default_error_code = "SELF_CLAIM"
