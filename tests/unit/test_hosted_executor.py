"""Tests for the hosted model executor and its fallback chains."""

import base64
import tempfile

import httpx
import pytest
from conftest import FakeDefaultProvider, FakePremiumSpeech, FakeTextProvider

from modelchain.catalog import ModelSpec
from modelchain.contracts import FileInput, HostedModelStep, MediaType, StepOutput
from modelchain.errors import ModelNotFoundError, ProviderHTTPError
from modelchain.providers import GeneratedImage


@pytest.mark.asyncio
async def test_secondary_provider_answers_first(make_dispatcher):
    default = FakeDefaultProvider()
    anthropic = FakeTextProvider("anthropic", response="from claude")
    dispatcher = make_dispatcher(default=default, text_providers={"anthropic": anthropic})
    step = HostedModelStep(id="s", model="claude-4-sonnet", prompt="Summarize: {{input}}")

    output = await dispatcher.execute(step, StepOutput(text="fox"))

    assert output.text == "from claude"
    assert anthropic.calls == ["claude-4-sonnet"]
    assert default.chat_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "provider",
    [
        FakeTextProvider("anthropic", available=False),
        FakeTextProvider("anthropic", response=None),
        FakeTextProvider("anthropic", response=""),
        FakeTextProvider("anthropic", fail=httpx.ConnectError("down")),
        FakeTextProvider("anthropic", fail=ProviderHTTPError("anthropic", 529, "overloaded")),
    ],
)
async def test_secondary_unavailability_falls_back_silently(make_dispatcher, provider):
    default = FakeDefaultProvider(chat_response="from default")
    dispatcher = make_dispatcher(default=default, text_providers={"anthropic": provider})
    step = HostedModelStep(id="s", model="claude-4-opus", prompt="Summarize: {{input}}")

    output = await dispatcher.execute(step, StepOutput(text="fox"))

    assert output.text == "from default"
    assert output.error is None
    call = default.chat_calls[0]
    assert call["system_prompt"] == "Summarize: fox"
    assert call["user_message"] == "fox"
    assert call["model_id"] == "claude-4-opus"


@pytest.mark.asyncio
async def test_missing_secondary_provider_falls_back(make_dispatcher):
    default = FakeDefaultProvider(chat_response="from default")
    dispatcher = make_dispatcher(default=default)
    step = HostedModelStep(id="s", model="grok-3")

    output = await dispatcher.execute(step, StepOutput(text="hello"))

    assert output.text == "from default"
    assert default.chat_calls[0]["system_prompt"] == "hello"


@pytest.mark.asyncio
async def test_empty_prompt_and_input_use_default_instruction(make_dispatcher):
    default = FakeDefaultProvider()
    dispatcher = make_dispatcher(default=default)
    step_input = StepOutput(
        files=[FileInput(url="https://cdn.example.com/cat.png", media_type=MediaType.IMAGE)]
    )

    await dispatcher.execute(HostedModelStep(id="s", model="gpt-4o"), step_input)

    assert default.chat_calls[0]["system_prompt"] == "Process the user input and respond."


@pytest.mark.asyncio
async def test_default_provider_receives_images_as_vision_content(make_dispatcher, file_store):
    local_url = await file_store.put(b"\x89PNG-local", "image/png", "local.png")
    default = FakeDefaultProvider()
    dispatcher = make_dispatcher(default=default)
    step = HostedModelStep(id="s", model="gpt-4o", prompt="Describe")
    step_input = StepOutput(
        text="",
        files=[
            FileInput(url=local_url, media_type=MediaType.IMAGE, mime_type="image/png"),
            FileInput(url="https://cdn.example.com/remote.jpg", media_type=MediaType.IMAGE),
            FileInput(url="https://cdn.example.com/song.mp3", media_type=MediaType.AUDIO),
        ],
    )

    await dispatcher.execute(step, step_input)

    images = default.chat_calls[0]["images"]
    assert len(images) == 2
    assert images[0].data == b"\x89PNG-local"
    assert images[0].mime_type == "image/png"
    assert images[1].url == "https://cdn.example.com/remote.jpg"


@pytest.mark.asyncio
async def test_default_provider_failure_propagates(make_dispatcher):
    dispatcher = make_dispatcher(default=FakeDefaultProvider(fail=RuntimeError("quota exceeded")))
    with pytest.raises(RuntimeError, match="quota exceeded"):
        await dispatcher.execute(HostedModelStep(id="s", model="gpt-4o"), StepOutput(text="x"))


@pytest.mark.asyncio
async def test_step_without_model_is_identity(make_dispatcher):
    dispatcher = make_dispatcher()
    output = await dispatcher.execute(HostedModelStep(id="s"), StepOutput(text="same"))
    assert output.text == "same"


@pytest.mark.asyncio
async def test_unknown_model_is_a_configuration_error(make_dispatcher):
    dispatcher = make_dispatcher()
    with pytest.raises(ModelNotFoundError):
        await dispatcher.execute(HostedModelStep(id="s", model="gpt-99"), StepOutput(text="x"))


@pytest.mark.asyncio
async def test_unhandled_category_returns_placeholder(make_dispatcher):
    dispatcher = make_dispatcher()
    dispatcher.catalog.register(
        ModelSpec(id="veo", name="Veo", provider="google", category=MediaType.VIDEO, cost_per_use=9)
    )

    output = await dispatcher.execute(HostedModelStep(id="s", model="veo"), StepOutput(text="x" * 300))

    assert output.text == '[Veo] Processed: "' + "x" * 200 + '"'


@pytest.mark.asyncio
async def test_image_url_is_returned_as_file(make_dispatcher):
    default = FakeDefaultProvider()
    dispatcher = make_dispatcher(default=default)
    step = HostedModelStep(id="s", model="dall-e-3", prompt="A poster of {{input}}", params={"size": "1024x1792"})

    output = await dispatcher.execute(step, StepOutput(text="a fox"))

    assert default.image_calls[0]["prompt"] == "A poster of a fox"
    assert output.text == "https://cdn.example.com/generated.png"
    assert output.files[0].media_type == MediaType.IMAGE


@pytest.mark.asyncio
async def test_inline_image_is_persisted(make_dispatcher, file_store):
    encoded = base64.b64encode(b"\x89PNG-inline").decode()
    dispatcher = make_dispatcher(default=FakeDefaultProvider(image=GeneratedImage(b64_json=encoded)))

    output = await dispatcher.execute(HostedModelStep(id="s", model="gpt-image-1"), StepOutput(text="fox"))

    assert output.text.startswith("/uploads/")
    assert output.text.endswith(".png")
    assert file_store.local_path(output.text).read_bytes() == b"\x89PNG-inline"


@pytest.mark.asyncio
async def test_transcribe_local_audio(make_dispatcher, file_store):
    url = await file_store.put(b"RIFF-local", "audio/wav", "memo.wav")
    default = FakeDefaultProvider()
    dispatcher = make_dispatcher(default=default)
    step_input = StepOutput(files=[FileInput(url=url, media_type=MediaType.AUDIO)])

    output = await dispatcher.execute(HostedModelStep(id="s", model="whisper-1"), step_input)

    assert output.text == "transcript"
    assert default.transcribed == [b"RIFF-local"]


@pytest.mark.asyncio
async def test_transcribe_remote_audio_cleans_up_temp_file(make_dispatcher):
    default = FakeDefaultProvider()
    dispatcher = make_dispatcher(
        default=default, handler=lambda request: httpx.Response(200, content=b"ID3-remote")
    )
    step_input = StepOutput(
        files=[FileInput(url="https://cdn.example.com/talk.mp3", media_type=MediaType.AUDIO)]
    )

    output = await dispatcher.execute(HostedModelStep(id="s", model="whisper-1"), step_input)

    assert output.text == "transcript"
    assert default.transcribed == [b"ID3-remote"]
    assert default.transcribed_paths[0].suffix == ".mp3"
    assert not default.transcribed_paths[0].exists()


@pytest.mark.asyncio
async def test_failed_download_still_removes_temp_file(make_dispatcher, tmp_path, monkeypatch):
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))
    dispatcher = make_dispatcher(handler=lambda request: httpx.Response(404))
    step_input = StepOutput(
        files=[FileInput(url="https://cdn.example.com/gone.mp3", media_type=MediaType.AUDIO)]
    )

    with pytest.raises(httpx.HTTPStatusError):
        await dispatcher.execute(HostedModelStep(id="s", model="whisper-1"), step_input)

    assert list(scratch.iterdir()) == []


@pytest.mark.asyncio
async def test_transcribe_without_audio(make_dispatcher):
    dispatcher = make_dispatcher()
    output = await dispatcher.execute(HostedModelStep(id="s", model="whisper-1"), StepOutput(text="hi"))
    assert output.text == "No audio file provided for transcription."

    unreachable = StepOutput(files=[FileInput(url="/somewhere/else.mp3", media_type=MediaType.AUDIO)])
    output = await dispatcher.execute(HostedModelStep(id="s", model="whisper-1"), unreachable)
    assert output.text == "Could not access audio file for transcription."


@pytest.mark.asyncio
async def test_text_to_speech_stores_audio(make_dispatcher, file_store):
    default = FakeDefaultProvider()
    dispatcher = make_dispatcher(default=default)

    output = await dispatcher.execute(
        HostedModelStep(id="s", model="openai-tts-1-hd"), StepOutput(text="Read me")
    )

    assert default.speech_calls == ["Read me"]
    assert output.files[0].media_type == MediaType.AUDIO
    assert file_store.local_path(output.text).read_bytes() == b"ID3-default-speech"


@pytest.mark.asyncio
async def test_text_to_speech_uses_declared_literal_without_input(make_dispatcher):
    default = FakeDefaultProvider()
    dispatcher = make_dispatcher(default=default)
    step = HostedModelStep(id="s", model="openai-tts-1-hd", params={"input": "Welcome aboard"})

    await dispatcher.execute(step, StepOutput())

    assert default.speech_calls == ["Welcome aboard"]


@pytest.mark.asyncio
async def test_premium_speech_is_used_when_configured(make_dispatcher, file_store):
    default = FakeDefaultProvider()
    premium = FakePremiumSpeech()
    dispatcher = make_dispatcher(default=default, premium_tts=premium)

    output = await dispatcher.execute(HostedModelStep(id="s", model="elevenlabs-tts"), StepOutput(text="Hi"))

    assert premium.calls == ["Hi"]
    assert default.speech_calls == []
    assert file_store.local_path(output.text).read_bytes() == b"ID3-premium-speech"


@pytest.mark.asyncio
@pytest.mark.parametrize("premium", [None, FakePremiumSpeech(available=False), FakePremiumSpeech(fail=True)])
async def test_premium_speech_falls_back_to_default(make_dispatcher, file_store, premium):
    default = FakeDefaultProvider()
    dispatcher = make_dispatcher(default=default, premium_tts=premium)

    output = await dispatcher.execute(HostedModelStep(id="s", model="elevenlabs-tts"), StepOutput(text="Hi"))

    assert output.error is None
    assert default.speech_calls == ["Hi"]
    assert file_store.local_path(output.text).read_bytes() == b"ID3-default-speech"


@pytest.mark.asyncio
async def test_file_outside_the_store_is_never_read(make_dispatcher, file_store, tmp_path):
    (tmp_path / "secret.png").write_bytes(b"TOP SECRET")
    default = FakeDefaultProvider()
    dispatcher = make_dispatcher(default=default)
    step_input = StepOutput(
        files=[FileInput(url="/uploads/../secret.png", media_type=MediaType.IMAGE)]
    )

    await dispatcher.execute(HostedModelStep(id="s", model="gpt-4o"), step_input)

    image = default.chat_calls[0]["images"][0]
    assert image.data is None
    assert image.url == "http://localhost:3000/uploads/../secret.png"

    audio = StepOutput(files=[FileInput(url="/uploads/../secret.png", media_type=MediaType.AUDIO)])
    output = await dispatcher.execute(HostedModelStep(id="s", model="whisper-1"), audio)
    assert output.text == "Could not access audio file for transcription."
    assert default.transcribed == []
