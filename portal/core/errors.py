"""Error types shared across the portal services."""


class PortalError(Exception):
    """Base error for the member portal."""


class UpstreamAuthError(PortalError):
    """A valid bearer token for an upstream integration could not be obtained."""

    def __init__(self, integration: str, detail: str) -> None:
        super().__init__(f"{integration}: {detail}")
        self.integration = integration
        self.detail = detail


class CredentialConflictError(PortalError):
    """A persisted credential changed between read and write."""


class FilterValidationError(PortalError, ValueError):
    """Malformed filter, sort or page description."""


class CascadeDeleteError(PortalError):
    """The parent row of a cascade delete could not be removed."""

    def __init__(self, kind: str, entity_id: object, detail: str = "") -> None:
        super().__init__(f"Failed to delete {kind} {entity_id}: {detail}".rstrip(": "))
        self.kind = kind
        self.entity_id = entity_id
        self.detail = detail


class UnknownEntityError(PortalError, LookupError):
    """Entity kind name with no registered table."""


class UpstreamRequestError(PortalError):
    """An upstream API call made with a valid token was rejected or unreachable."""

    def __init__(self, integration: str, detail: str, status_code: int | None = None) -> None:
        super().__init__(f"{integration}: {detail}")
        self.integration = integration
        self.detail = detail
        self.status_code = status_code
