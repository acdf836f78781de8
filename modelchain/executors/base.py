"""Common interface for step executors."""

from __future__ import annotations

import abc

from ..catalog import ModelCatalog
from ..contracts import StepDefinition, StepOutput
from ..providers import ProviderClients


class StepExecutor(metaclass=abc.ABCMeta):
    """Turns one resolved step plus its merged input into a ``StepOutput``."""

    def __init__(self, clients: ProviderClients, catalog: ModelCatalog) -> None:
        self._clients = clients
        self._catalog = catalog

    @abc.abstractmethod
    async def execute(self, step: StepDefinition, step_input: StepOutput) -> StepOutput:
        raise NotImplementedError
