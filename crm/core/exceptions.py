class CRMError(Exception):
    """Base class for all CRM engagement-core domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except CRMError`` clause can catch any domain error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class MissingOwnerError(CRMError):
    """Raised when an interactive request does not identify its owner."""

    def __init__(self, detail: str = "X-User-Id header is required"):
        super().__init__(detail)


class ContactNotFoundError(CRMError):
    """Raised when a contact does not exist for the requesting owner."""

    def __init__(self, detail: str = "Contact not found"):
        super().__init__(detail)


class LeadScoreNotFoundError(CRMError):
    """Raised when a contact has never been scored."""

    def __init__(self, detail: str = "Lead score not found"):
        super().__init__(detail)


class EnrollmentNotFoundError(CRMError):
    """Raised when a sequence enrollment does not exist."""

    def __init__(self, detail: str = "Enrollment not found"):
        super().__init__(detail)


class RuleNotFoundError(CRMError):
    """Raised when an automation rule does not exist for the owner."""

    def __init__(self, detail: str = "Automation rule not found"):
        super().__init__(detail)


class UnsupportedEntityTypeError(CRMError):
    """Raised when scoring is requested for an entity kind with no signal set."""

    def __init__(self, detail: str = "Unsupported entity type"):
        super().__init__(detail)


class InvalidRuleConfigError(CRMError):
    """Raised when a rule names an unknown trigger/action or lacks config."""

    def __init__(self, detail: str = "Invalid automation rule configuration"):
        super().__init__(detail)


class EmailDispatchError(CRMError):
    """Raised when the email transport fails to accept a message.

    The sequence stepper relies on this propagating *before* the
    enrollment cursor is advanced, so the step is retried on the next
    poll.
    """

    def __init__(self, detail: str = "Email dispatch failed"):
        super().__init__(detail)


class WebhookDeliveryError(CRMError):
    """Raised when a webhook endpoint is unreachable or returns non-2xx."""

    def __init__(self, detail: str = "Webhook delivery failed"):
        super().__init__(detail)


class ScoreConflictError(CRMError):
    """Raised when a conditional lead-score write loses a concurrent race."""

    def __init__(self, detail: str = "Lead score was modified concurrently"):
        super().__init__(detail)
