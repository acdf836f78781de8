"""Exception hierarchy for modelchain."""

from __future__ import annotations

from typing import Optional


class ModelChainError(Exception):
    """Base class for all modelchain errors."""


# ----------------------------------------------------------------------
# Configuration errors: fatal to the step, abort the whole execution
class ConfigurationError(ModelChainError):
    """A step or workflow definition cannot be executed as declared."""


class UnknownStepKindError(ConfigurationError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown step kind: {kind}")
        self.kind = kind


class ModelNotFoundError(ConfigurationError):
    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unknown model: {model_id}")
        self.model_id = model_id


# ----------------------------------------------------------------------
# Provider errors
class ProviderError(ModelChainError):
    """A provider call failed."""


class ProviderUnavailableError(ProviderError):
    """The provider has no credential configured."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Provider {provider} is not configured")
        self.provider = provider


class ProviderHTTPError(ProviderError):
    """A provider answered with a non-2xx status."""

    def __init__(self, provider: str, status_code: int, body: str = "") -> None:
        super().__init__(f"{provider} returned {status_code}: {body[:200]}")
        self.provider = provider
        self.status_code = status_code
        self.body = body


# ----------------------------------------------------------------------
# Access errors: raised before any step runs
class AccessError(ModelChainError):
    """The caller may not start this execution."""


class SignupRequiredError(AccessError):
    def __init__(self) -> None:
        super().__init__("Free trial already used; sign up to run more workflows")


class InsufficientBalanceError(AccessError):
    def __init__(self, required: int, available: Optional[int] = None) -> None:
        super().__init__(f"Insufficient balance: {required} required")
        self.required = required
        self.available = available


class ForbiddenError(AccessError):
    """The caller does not own the requested resource."""


# ----------------------------------------------------------------------
class WorkflowNotFoundError(ModelChainError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class ExecutionNotFoundError(ModelChainError):
    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution not found: {execution_id}")
        self.execution_id = execution_id


class InvalidInputError(ModelChainError):
    """The execution input is empty or malformed."""
