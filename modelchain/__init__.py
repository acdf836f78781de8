"""modelchain: chain AI model calls into streamed, fail-fast workflows."""

from .access import Caller, TrialGate
from .catalog import ModelCatalog, default_catalog
from .contracts import ExecutionInput, FileInput, StepOutput, Workflow
from .engine import CancellationToken, ExecutionController
from .executors import StepDispatcher
from .persistence import get_repository
from .providers import ProviderClients, build_clients
from .service import WorkflowService, build_service

__version__ = "0.1.0"
__all__ = [
    "Caller",
    "TrialGate",
    "ModelCatalog",
    "default_catalog",
    "ExecutionInput",
    "FileInput",
    "StepOutput",
    "Workflow",
    "CancellationToken",
    "ExecutionController",
    "StepDispatcher",
    "get_repository",
    "ProviderClients",
    "build_clients",
    "WorkflowService",
    "build_service",
]
