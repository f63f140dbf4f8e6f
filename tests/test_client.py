import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from musicgen_store.api.client import GenerationClient
from musicgen_store.exceptions import GenerationError
from musicgen_store.models.track import AdvancedSettings


@pytest.fixture
def requests():
    return []


def _make_app(requests, status=200, body=b"RIFFdata", content_type="audio/wav"):
    async def handler(request):
        requests.append((request.path, await request.json()))
        return web.Response(status=status, body=body, content_type=content_type)

    app = web.Application()
    app.router.add_post("/generate", handler)
    app.router.add_post("/postprocess", handler)
    return app


@pytest.mark.asyncio
async def test_generate_posts_prompt_and_returns_audio(requests):
    async with TestServer(_make_app(requests)) as server:
        async with GenerationClient(str(server.make_url("/"))) as client:
            audio = await client.generate("lofi beat", 20)

    assert audio.data == b"RIFFdata"
    assert audio.mime_type == "audio/wav"
    assert requests == [("/generate", {"prompt": "lofi beat", "duration": 20})]


@pytest.mark.asyncio
async def test_refine_sends_advanced_params(requests):
    settings = AdvancedSettings(temperature=0.7, cfg_coef=3.0, top_k=100)

    async with TestServer(_make_app(requests)) as server:
        async with GenerationClient(str(server.make_url("/"))) as client:
            await client.refine("lofi beat", 20, settings)

    path, body = requests[0]
    assert path == "/postprocess"
    assert body["advanced_params"] == {
        "temperature": 0.7,
        "cfg_coef": 3.0,
        "top_k": 100,
        "top_p": 0.0,
        "use_sampling": True,
    }


@pytest.mark.asyncio
async def test_octet_stream_is_treated_as_wav(requests):
    app = _make_app(requests, content_type="application/octet-stream")

    async with TestServer(app) as server:
        async with GenerationClient(str(server.make_url("/"))) as client:
            audio = await client.generate("p", 5)

    assert audio.mime_type == "audio/wav"


@pytest.mark.asyncio
@pytest.mark.parametrize("status, body", [(500, b"boom"), (200, b"")])
async def test_failures_raise_generation_error_once(requests, status, body):
    async with TestServer(_make_app(requests, status=status, body=body)) as server:
        async with GenerationClient(str(server.make_url("/"))) as client:
            with pytest.raises(GenerationError):
                await client.generate("p", 5)

    assert len(requests) == 1


@pytest.mark.asyncio
async def test_unreachable_service_raises_generation_error():
    async with GenerationClient("http://127.0.0.1:9", timeout_s=5) as client:
        with pytest.raises(GenerationError):
            await client.generate("p", 5)


def test_missing_base_url_is_rejected():
    with pytest.raises(GenerationError):
        GenerationClient("")
