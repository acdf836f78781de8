"""Shared fakes and fixtures for modelchain tests."""

from __future__ import annotations

import socket
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from modelchain.catalog import default_catalog
from modelchain.contracts import Edge, HostedModelStep, InputStep, OutputStep, Workflow
from modelchain.errors import ProviderHTTPError
from modelchain.executors import StepDispatcher
from modelchain.filestore import LocalFileStore
from modelchain.providers import GeneratedImage, ProviderClients, TextProvider


class FakeDefaultProvider:
    """Stands in for the default hosted provider client."""

    name = "openai"

    def __init__(
        self,
        chat_response: str = "generated text",
        fail: Optional[Exception] = None,
        image: Optional[GeneratedImage] = None,
    ) -> None:
        self.available = True
        self.chat_response = chat_response
        self.fail = fail
        self.image = image or GeneratedImage(url="https://cdn.example.com/generated.png")
        self.chat_calls: List[Dict[str, Any]] = []
        self.image_calls: List[Dict[str, Any]] = []
        self.transcribed: List[bytes] = []
        self.transcribed_paths: List[Path] = []
        self.speech_calls: List[str] = []

    async def chat(self, system_prompt, user_message, params, model_id, images=()):
        self.chat_calls.append(
            {
                "system_prompt": system_prompt,
                "user_message": user_message,
                "params": params,
                "model_id": model_id,
                "images": list(images),
            }
        )
        if self.fail is not None:
            raise self.fail
        return self.chat_response

    async def generate_image(self, model_id, prompt, params):
        self.image_calls.append({"model_id": model_id, "prompt": prompt, "params": params})
        return self.image

    async def transcribe(self, path: Path, language=None):
        self.transcribed_paths.append(Path(path))
        self.transcribed.append(Path(path).read_bytes())
        return "transcript"

    async def synthesize_speech(self, text, voice="alloy", speed=1.0):
        self.speech_calls.append(text)
        return b"ID3-default-speech"


class FakeTextProvider(TextProvider):
    def __init__(
        self,
        name: str,
        response: Optional[str] = "secondary text",
        available: bool = True,
        fail: Optional[Exception] = None,
    ) -> None:
        self.name = name
        self._available = available
        self.response = response
        self.fail = fail
        self.calls: List[str] = []

    @property
    def available(self) -> bool:
        return self._available

    async def generate(self, system_prompt, user_message, params, model_id):
        self.calls.append(model_id)
        if self.fail is not None:
            raise self.fail
        return self.response


class FakePremiumSpeech:
    def __init__(self, available: bool = True, fail: bool = False) -> None:
        self.available = available
        self.fail = fail
        self.calls: List[str] = []

    async def synthesize(self, text, voice_id="rachel", stability=0.5, similarity_boost=0.75):
        self.calls.append(text)
        if self.fail:
            raise ProviderHTTPError("elevenlabs", 500, "boom")
        return b"ID3-premium-speech"


class FakeMarketplace:
    def __init__(
        self,
        result: Any = None,
        available: bool = True,
        fail: Optional[Exception] = None,
    ) -> None:
        self.available = available
        self.result = result if result is not None else {"images": [{"url": "https://fal.media/out.png"}]}
        self.fail = fail
        self.runs: List[Dict[str, Any]] = []
        self.uploads: List[str] = []

    async def run(self, endpoint, params):
        self.runs.append({"endpoint": endpoint, "params": params})
        if self.fail is not None:
            raise self.fail
        return self.result

    async def upload(self, data, content_type, file_name):
        self.uploads.append(file_name)
        return f"https://fal.media/uploads/{file_name}"


def _not_found(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, text="not found")


PUBLIC_ADDRESS = "93.184.216.34"


@pytest.fixture(autouse=True)
def fake_dns(monkeypatch) -> Dict[str, Optional[str]]:
    """Resolve every host to a public address unless mapped otherwise.

    Map a host to ``None`` to make resolution fail.
    """
    records: Dict[str, Optional[str]] = {}

    def _getaddrinfo(host, port, *args, **kwargs):
        address = records.get(host, PUBLIC_ADDRESS)
        if address is None:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        family = socket.AF_INET6 if ":" in address else socket.AF_INET
        return [(family, socket.SOCK_STREAM, 6, "", (address, port))]

    monkeypatch.setattr(socket, "getaddrinfo", _getaddrinfo)
    return records


@pytest.fixture
def file_store(tmp_path) -> LocalFileStore:
    return LocalFileStore(tmp_path / "uploads")


@pytest.fixture
def make_clients(file_store) -> Callable[..., ProviderClients]:
    """Factory building provider clients around fakes and a mock HTTP transport."""

    def _make(
        default: Optional[FakeDefaultProvider] = None,
        handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
        **kwargs: Any,
    ) -> ProviderClients:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler or _not_found))
        return ProviderClients(
            default=default or FakeDefaultProvider(),
            files=file_store,
            http=http,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_dispatcher(make_clients) -> Callable[..., StepDispatcher]:
    def _make(**kwargs: Any) -> StepDispatcher:
        return StepDispatcher(make_clients(**kwargs), default_catalog())

    return _make


def summarize_workflow(workflow_id: str = "summarize", **kwargs: Any) -> Workflow:
    """Input -> hosted text model -> Output."""
    return Workflow(
        id=workflow_id,
        name="Summarize",
        steps=[
            InputStep(id="in", name="Input", order=0),
            HostedModelStep(
                id="llm",
                name="Summarize",
                order=1,
                model="gpt-4o-mini",
                prompt="Summarize: {{input}}",
            ),
            OutputStep(id="out", name="Output", order=2),
        ],
        edges=[Edge(source="in", target="llm"), Edge(source="llm", target="out")],
        **kwargs,
    )


@pytest.fixture
def workflow_factory() -> Callable[..., Workflow]:
    return summarize_workflow
