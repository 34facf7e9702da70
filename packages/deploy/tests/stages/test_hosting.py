from __future__ import annotations

import io
import tarfile
from pathlib import Path

import httpx
import pytest
from content_deploy.core import PromotionError
from content_deploy.stages.deploy import DirectoryHost, HttpHost, hosting
from content_deploy.stages.publish import Artifact


def _artifact(tmp_path: Path, artifact_id: str, body: str) -> Artifact:
    root = tmp_path / "artifacts" / artifact_id
    content = root / "content"
    content.mkdir(parents=True)
    (content / "index.html").write_text(body)
    manifest = root / "manifest.json"
    manifest.write_text("{}")
    return Artifact(
        artifact_id=artifact_id,
        producing_run="run",
        content_root=content,
        created_at_utc="2026-01-01T00:00:00Z",
        commit="abc123",
        files=1,
        manifest_path=manifest,
    )


def test_directory_host_swaps_current(tmp_path: Path) -> None:
    host = DirectoryHost(tmp_path / "site", site_url="https://docs.example.org/")
    first = _artifact(tmp_path, "a" * 32, "v1")
    second = _artifact(tmp_path, "b" * 32, "v2")

    res = host.promote(first)
    assert res.page_url == "https://docs.example.org/"
    assert host.current() == first.artifact_id
    assert (tmp_path / "site" / "current" / "index.html").read_text() == "v1"

    host.promote(second)
    assert host.current() == second.artifact_id
    assert (tmp_path / "site" / "current" / "index.html").read_text() == "v2"

    # re-promoting an already staged release is allowed
    host.promote(first)
    assert host.current() == first.artifact_id


def test_directory_host_failure_keeps_previous_release(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    host = DirectoryHost(tmp_path / "site")
    good = _artifact(tmp_path, "a" * 32, "v1")
    host.promote(good)

    def failing_swap(link: Path, target: Path) -> None:
        raise OSError("read-only file system")

    monkeypatch.setattr(hosting, "atomic_symlink_swap", failing_swap)
    with pytest.raises(PromotionError, match="read-only"):
        host.promote(_artifact(tmp_path, "c" * 32, "v3"))

    assert host.current() == good.artifact_id
    assert (tmp_path / "site" / "current" / "index.html").read_text() == "v1"


def test_http_host_uploads_tarball(tmp_path: Path) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"page_url": "https://pages.example.org/book/"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    host = HttpHost("https://deploy.example.org/", token="t0k", client=client)
    res = host.promote(_artifact(tmp_path, "a" * 32, "v1"))

    assert res.page_url == "https://pages.example.org/book/"
    assert len(seen) == 1
    req = seen[0]
    assert str(req.url) == "https://deploy.example.org/deployments"
    assert req.headers["Authorization"] == "Bearer t0k"
    assert req.headers["X-Artifact-Id"] == "a" * 32
    with tarfile.open(fileobj=io.BytesIO(req.content), mode="r:gz") as tar:
        assert tar.getnames() == ["index.html"]


def test_http_host_retries_5xx_then_succeeds(tmp_path: Path) -> None:
    statuses = iter([503, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses))

    client = httpx.Client(transport=httpx.MockTransport(handler))
    host = HttpHost("https://deploy.example.org", client=client, backoff_base=0, backoff_cap=0)
    res = host.promote(_artifact(tmp_path, "a" * 32, "v1"))
    assert res.page_url == "https://deploy.example.org/"


def test_http_host_rejection_is_promotion_error(tmp_path: Path) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(403, text="forbidden")

    client = httpx.Client(transport=httpx.MockTransport(handler))
    host = HttpHost("https://deploy.example.org", client=client, backoff_base=0, backoff_cap=0)
    with pytest.raises(PromotionError, match="HTTP 403"):
        host.promote(_artifact(tmp_path, "a" * 32, "v1"))
    assert len(calls) == 1


def test_http_host_gives_up_after_retries(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    host = HttpHost(
        "https://deploy.example.org", client=client, max_attempts=2, backoff_base=0, backoff_cap=0
    )
    with pytest.raises(PromotionError, match="after 2 attempts"):
        host.promote(_artifact(tmp_path, "a" * 32, "v1"))
