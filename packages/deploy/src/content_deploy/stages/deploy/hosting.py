from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx
import structlog
from content_deploy.core import (
    PromotionError,
    TransientError,
    atomic_dir_commit,
    atomic_symlink_swap,
    copy_tree,
    make_tmp_dir_for,
    remove_tree,
    utc_now_iso,
)
from content_deploy.core.retry import bounded_retrying
from tenacity import RetryError

from ..cache.archive import pack_dir
from ..publish.models import Artifact

log = structlog.get_logger(__name__)

_RETRYABLE_STATUSES: set[int] = {408, 429, 500, 502, 503, 504}


@dataclass(frozen=True, slots=True)
class PromotionResult:
    artifact_id: str
    page_url: str
    promoted_at_utc: str


class HostingEndpoint(Protocol):
    def promote(self, artifact: Artifact) -> PromotionResult: ...


class DirectoryHost:
    """
    Serve-from-disk host:

      {site_root}/releases/{artifact_id}/...
      {site_root}/current -> releases/{artifact_id}

    Promotion swaps the `current` symlink in one rename, so the live site is
    either the previous release or the new one.
    """

    def __init__(self, site_root: Path, *, site_url: str | None = None) -> None:
        self.site_root = Path(site_root)
        self.site_url = site_url

    @property
    def current_link(self) -> Path:
        return self.site_root / "current"

    def current(self) -> str | None:
        link = self.current_link
        if not link.is_symlink():
            return None
        return Path(link.readlink()).name

    def _page_url(self) -> str:
        if self.site_url:
            return self.site_url
        return self.current_link.absolute().as_uri() + "/"

    def promote(self, artifact: Artifact) -> PromotionResult:
        release = self.site_root / "releases" / artifact.artifact_id
        try:
            if not release.exists():
                tmp = make_tmp_dir_for(release)
                try:
                    copy_tree(artifact.content_root, tmp)
                    atomic_dir_commit(tmp_dir=tmp, final_dir=release)
                except FileExistsError:
                    # same artifact already staged by an earlier promotion
                    pass
                finally:
                    if tmp.exists():
                        remove_tree(tmp)
            atomic_symlink_swap(
                self.current_link, Path("releases") / artifact.artifact_id
            )
        except OSError as e:
            raise PromotionError(
                f"Promotion of {artifact.artifact_id} to {self.site_root} failed: {e}"
            ) from e

        log.info("host.promoted", artifact_id=artifact.artifact_id, site_root=str(self.site_root))
        return PromotionResult(
            artifact_id=artifact.artifact_id,
            page_url=self._page_url(),
            promoted_at_utc=utc_now_iso(),
        )


def make_http_client(
    *,
    timeout: httpx.Timeout | None = None,
    user_agent: str = "content-deploy/0.1",
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    t = timeout or httpx.Timeout(connect=5.0, read=60.0, write=60.0, pool=5.0)
    return httpx.Client(
        timeout=t,
        follow_redirects=True,
        headers={"User-Agent": user_agent},
        transport=transport,
    )


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, (httpx.TransportError, TransientError))


class HttpHost:
    """
    Remote host accepting a gzip'd tarball of the artifact content at
    POST {base_url}/deployments. A 2xx response means the site now serves the
    artifact; its JSON body may carry `page_url`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        client: httpx.Client | None = None,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_cap: float = 4.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.client = client or make_http_client()
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap

    def _headers(self, artifact: Artifact) -> dict[str, str]:
        headers = {
            "Content-Type": "application/gzip",
            "X-Artifact-Id": artifact.artifact_id,
            "X-Commit": artifact.commit,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _post(self, url: str, payload: bytes, headers: dict[str, str]) -> httpx.Response:
        resp = self.client.post(url, content=payload, headers=headers)
        if resp.is_success:
            return resp
        snippet = (resp.text or "")[:200].strip()
        if resp.status_code in _RETRYABLE_STATUSES:
            raise TransientError(f"HTTP {resp.status_code} for POST {url}")
        raise PromotionError(
            f"Host rejected deployment: HTTP {resp.status_code} for POST {url}"
            + (f" (body: {snippet})" if snippet else "")
        )

    def promote(self, artifact: Artifact) -> PromotionResult:
        url = f"{self.base_url}/deployments"
        payload = pack_dir(artifact.content_root)
        headers = self._headers(artifact)

        retrying = bounded_retrying(
            op="host.upload",
            max_attempts=self.max_attempts,
            base=self.backoff_base,
            cap=self.backoff_cap,
            should_retry=_is_retryable,
            url=url,
            artifact_id=artifact.artifact_id,
        )
        try:
            for attempt in retrying:
                with attempt:
                    resp = self._post(url, payload, headers)
        except RetryError as re:
            last = re.last_attempt.exception()
            raise PromotionError(
                f"Upload to {url} failed after {re.last_attempt.attempt_number} attempts: {last}"
            ) from last

        page_url = self.base_url + "/"
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("page_url"), str):
            page_url = body["page_url"]

        log.info("host.promoted", artifact_id=artifact.artifact_id, url=url, bytes=len(payload))
        return PromotionResult(
            artifact_id=artifact.artifact_id,
            page_url=page_url,
            promoted_at_utc=utc_now_iso(),
        )
