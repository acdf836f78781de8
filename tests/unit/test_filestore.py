import pytest

from modelchain.filestore import LocalFileStore, extension_for


@pytest.mark.asyncio
async def test_put_returns_public_url_and_local_path(tmp_path):
    store = LocalFileStore(tmp_path / "uploads", public_base_url="https://app.example.com/")

    url = await store.put(b"\x89PNG", "image/png; charset=binary")

    assert url.startswith("/uploads/") and url.endswith(".png")
    assert store.owns(url)
    assert store.local_path(url).read_bytes() == b"\x89PNG"
    assert store.absolute_url(url) == f"https://app.example.com{url}"
    assert store.absolute_url("https://cdn.example.com/a.png") == "https://cdn.example.com/a.png"


@pytest.mark.parametrize(
    "url",
    [
        "/uploads/../secret.txt",
        "/uploads/../../secret.txt",
        "/uploads/nested/../../secret.txt",
        "/uploads//etc/passwd",
    ],
)
def test_local_path_stays_inside_the_store(tmp_path, url):
    root = tmp_path / "public" / "uploads"
    root.mkdir(parents=True)
    (tmp_path / "public" / "secret.txt").write_text("TOP SECRET")
    (tmp_path / "secret.txt").write_text("TOP SECRET")

    assert LocalFileStore(root).local_path(url) is None


def test_local_path_of_missing_or_foreign_file(tmp_path):
    store = LocalFileStore(tmp_path)
    assert store.local_path("/uploads/missing.png") is None
    assert store.local_path("/elsewhere/file.png") is None


def test_extension_for_known_and_guessed_types():
    assert extension_for("audio/mpeg") == ".mp3"
    assert extension_for("VIDEO/MP4") == ".mp4"
    assert extension_for("application/x-unknown-thing") == ""
