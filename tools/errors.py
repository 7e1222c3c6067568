"""Error types shared by the approval workflow, its store and the gateways."""


class ApprovalError(RuntimeError):
    """Base exception for the lead approval workflow."""

    def __init__(self, message: str, code: str = "APPROVAL_ERROR"):
        super().__init__(message)
        self.code = code


class NotFoundError(ApprovalError):
    """Raised when an approval id is unknown, expired or already purged."""

    def __init__(self, approval_id: str):
        super().__init__(f"Approval {approval_id} not found or expired", code="NOT_FOUND")
        self.approval_id = approval_id


class ValidationError(ApprovalError):
    """Raised when an inbound payload or decision cannot be accepted."""

    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR")


class ExternalGatewayError(ApprovalError):
    """Raised when HubSpot, Slack or another third-party call fails."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service} request failed: {message}", code="GATEWAY_ERROR")
        self.service = service
