import asyncio

import httpx
import pytest

from painpoint.errors import DownloadError, IntegrityError, StorageError
from painpoint.transcribe.acquire import acquire, local_name_for

AUDIO = b"ID3" + b"\x00" * 4096


class FakeObjectStore:
    def __init__(self, url="https://storage.test/signed/call.mp3?token=abc", error=None):
        self.url = url
        self.error = error
        self.requests: list[tuple[str, int]] = []

    async def signed_download_url(self, object_ref: str, ttl_s: int) -> str:
        self.requests.append((object_ref, ttl_s))
        if self.error:
            raise self.error
        return self.url


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _acquire(store, tmp_path, handler, source_ref="recordings/user-1/call.mp3"):
    async def _go():
        async with _client(handler) as client:
            return await acquire(store, source_ref, tmp_path, ttl_s=600, client=client)

    return asyncio.run(_go())


def test_downloads_the_signed_url_into_the_workdir(tmp_path):
    store = FakeObjectStore()
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, content=AUDIO)

    path = _acquire(store, tmp_path, handler)

    assert path == tmp_path / "call.mp3"
    assert path.read_bytes() == AUDIO
    assert store.requests == [("recordings/user-1/call.mp3", 600)]
    assert seen == [store.url]


def test_chunks_are_written_off_the_event_loop(tmp_path, monkeypatch):
    offloaded = []
    to_thread = asyncio.to_thread

    async def _recording_to_thread(func, *args, **kwargs):
        offloaded.append(getattr(func, "__name__", ""))
        return await to_thread(func, *args, **kwargs)

    monkeypatch.setattr("painpoint.transcribe.acquire.asyncio.to_thread", _recording_to_thread)

    path = _acquire(FakeObjectStore(), tmp_path, lambda request: httpx.Response(200, content=AUDIO))

    assert path.read_bytes() == AUDIO
    assert "write" in offloaded


@pytest.mark.parametrize("status", [403, 404, 500])
def test_unsuccessful_response_is_a_download_error(tmp_path, status):
    with pytest.raises(DownloadError, match=str(status)):
        _acquire(FakeObjectStore(), tmp_path, lambda request: httpx.Response(status))


def test_transport_failure_is_a_download_error(tmp_path):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DownloadError, match="ConnectError"):
        _acquire(FakeObjectStore(), tmp_path, handler)


def test_empty_body_is_an_integrity_error(tmp_path):
    with pytest.raises(IntegrityError):
        _acquire(FakeObjectStore(), tmp_path, lambda request: httpx.Response(200, content=b""))


def test_store_failures_are_storage_errors(tmp_path):
    never_called = lambda request: pytest.fail("should not download")  # noqa: E731

    with pytest.raises(StorageError, match="bucket missing"):
        _acquire(FakeObjectStore(error=StorageError("bucket missing")), tmp_path, never_called)
    with pytest.raises(StorageError, match="timed out"):
        _acquire(FakeObjectStore(error=TimeoutError("timed out")), tmp_path, never_called)


@pytest.mark.parametrize(
    "ref, name",
    [
        ("recordings/user-1/call.mp3", "call.mp3"),
        ("https://example.test/a/b/meeting%201.m4a?sig=1", "meeting%201.m4a"),
        ("", "audio"),
    ],
)
def test_local_name_for(ref, name):
    assert local_name_for(ref) == name
