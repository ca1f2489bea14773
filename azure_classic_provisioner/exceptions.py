"""Custom exception hierarchy for the provisioning scripts."""


class ProvisioningError(Exception):
    """Base exception for all provisioning errors."""


class ConfigurationError(ProvisioningError):
    """A local precondition failed: invalid configuration, declined prompt, bad arguments."""


class ModeConflict(ConfigurationError):
    """New-fleet semantics were requested for a fleet that already has instances."""


class InvariantViolation(ProvisioningError):
    """Discovered state breaks an assumed naming or structural convention."""

    def __init__(self, message: str, identifier: str | None = None):
        super().__init__(message)
        self.identifier = identifier


class ProvisioningFailure(ProvisioningError):
    """The remote provider rejected a create/update call."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.response_body = response_body


class FleetSubmissionFailure(ProvisioningFailure):
    """Submitting one fleet instance failed; earlier instances are left in place."""

    def __init__(self, message: str, index: int, created: list[str] | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.index = index
        self.created = list(created or [])
