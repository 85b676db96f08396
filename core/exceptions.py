"""
Core domain exceptions.

These exceptions are transport-agnostic and should be caught by the server
layer to convert into appropriate HTTP responses.
"""


class CoreError(Exception):
    """Base exception for all core errors."""

    pass


class NotFoundError(CoreError):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class InvalidOperationError(CoreError):
    """Raised when an operation cannot be performed in the current state."""

    pass


class PromptNotPendingError(InvalidOperationError):
    """Raised when a prompt has already reached a terminal status."""

    def __init__(self, prompt_id: str, status: str):
        self.prompt_id = prompt_id
        self.status = status
        super().__init__(f"Prompt {prompt_id} is not pending (status: {status})")


class StoreUnavailableError(CoreError):
    """Raised when the backing store cannot be reached."""

    pass