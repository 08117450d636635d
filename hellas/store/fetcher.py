"""
Hellas Store - Archive Fetcher

Resolves an update source to a concrete downloadable artifact.

- Feed sources: a cache-busting GET of the feed document, which names
  the artifact url plus optional version and sha256/hash.
- Direct sources: the configured URL is the candidate artifact, but the
  response is sniffed first. A JSON content-type, a ``.json`` URL, or a
  small body that parses as JSON is treated as a *descriptor* that
  redirects to the real artifact; the redirect is followed exactly once.

``open()`` keeps the final response alive as an ArtifactStream so that
bytes buffered while sniffing are handed to the download service rather
than fetched twice.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Iterator, Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests

from config.settings import PackConfig

from .cancellation import CancelToken
from .errors import CancelledError, ConfigurationError, SourceError, TransferError
from .models import DirectSource, FeedSource, ResolvedArtifact, UpdateSource

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; HellasLauncher/1.0)"


def _is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _is_success(response: requests.Response) -> bool:
    return 200 <= response.status_code < 300


def _content_length(response: requests.Response) -> Optional[int]:
    value = response.headers.get("content-length")
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def resolve_update_source(pack: PackConfig) -> UpdateSource:
    """
    Pick the active update source from configuration.

    Feed beats direct; direct falls back to the built-in default URL.

    Raises:
        ConfigurationError: If no usable source can be formed.
    """
    source_type = (pack.source_type or "").strip().lower() or None
    feed_url = (pack.feed_url or "").strip()
    direct_url = (pack.zip_url or "").strip()

    if source_type == "feed" and not feed_url:
        raise ConfigurationError("Feed update source selected but no feed URL is configured.")

    if feed_url and source_type != "direct":
        if not _is_http_url(feed_url):
            raise ConfigurationError(f"Update feed URL is not a valid http(s) URL: {feed_url}")
        return FeedSource(feed_url=feed_url)

    url = direct_url or (pack.default_url or "").strip()
    if not url or not _is_http_url(url):
        raise ConfigurationError("Update source is not configured.")

    return DirectSource(
        url=url,
        version=pack.version or None,
        expected_sha256=pack.expected_sha256 or None,
    )


def parse_descriptor(data: Any, base_url: str = "") -> Optional[ResolvedArtifact]:
    """
    Interpret a JSON document as a descriptor.

    Accepts ``{modpack: {url, version?, sha256|hash}}`` or a flat
    ``{url, version?, sha256|hash}``; the nested form wins.

    Returns:
        ResolvedArtifact, or None if the document names no url.
    """
    if not isinstance(data, dict):
        return None

    nested = data.get("modpack")
    if isinstance(nested, dict) and isinstance(nested.get("url"), str) and nested["url"].strip():
        entry: Dict[str, Any] = nested
    elif isinstance(data.get("url"), str) and data["url"].strip():
        entry = data
    else:
        return None

    url = entry["url"].strip()
    if base_url:
        url = urljoin(base_url, url)

    return ResolvedArtifact(
        url=url,
        version=_str_or_none(entry.get("version")) or _str_or_none(data.get("version")),
        sha256=_str_or_none(entry.get("sha256") or entry.get("hash"))
        or _str_or_none(data.get("sha256") or data.get("hash")),
    )


class ArtifactStream:
    """
    An open artifact response.

    Yields any prefix buffered while sniffing, then the rest of the
    body. Must be closed; usable as a context manager.
    """

    def __init__(
        self,
        artifact: ResolvedArtifact,
        session: requests.Session,
        response: requests.Response,
        chunks: Iterator[bytes],
        prefix: bytes = b"",
        total_bytes: Optional[int] = None,
    ):
        self.artifact = artifact
        self.total_bytes = total_bytes
        self._session = session
        self._response = response
        self._chunks = chunks
        self._prefix = prefix
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        if self._prefix:
            prefix, self._prefix = self._prefix, b""
            yield prefix
        for chunk in self._chunks:
            if chunk:
                yield chunk

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._response.close()
        finally:
            self._session.close()

    def __enter__(self) -> "ArtifactStream":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class ArchiveFetcher:
    """Resolves update sources to artifacts (and opens them)."""

    DEFAULT_CHUNK_SIZE = 64 * 1024
    DEFAULT_SNIFF_LIMIT = 512 * 1024

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        sniff_limit: int = DEFAULT_SNIFF_LIMIT,
        timeout: Tuple[int, int] = (15, 60),
    ):
        self.chunk_size = chunk_size
        self.sniff_limit = sniff_limit
        self.timeout = timeout

    def _new_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({"User-Agent": USER_AGENT})
        return session

    # =========================================================================
    # Feed
    # =========================================================================

    def fetch_feed_manifest(self, feed_url: str, cancel: Optional[CancelToken] = None) -> ResolvedArtifact:
        """
        Fetch and validate the feed document.

        Raises:
            SourceError: Non-2xx status, unreachable host, invalid JSON or missing url.
        """
        if cancel is not None:
            cancel.check("fetching-feed")

        session = self._new_session()
        unregister = cancel.on_cancel(session.close) if cancel is not None else None
        try:
            response = session.get(
                feed_url,
                headers={"Cache-Control": "no-cache", "Pragma": "no-cache"},
                params={"_": int(time.time() * 1000)},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            if cancel is not None:
                cancel.check("fetching-feed")
            raise SourceError(f"Failed to fetch update feed: {e}") from e
        finally:
            if unregister:
                unregister()
            session.close()

        if not _is_success(response):
            raise SourceError(f"Failed to fetch update feed ({response.status_code})")

        try:
            manifest = response.json()
        except ValueError as e:
            raise SourceError("Update feed did not return valid JSON.") from e

        if not isinstance(manifest, dict) or not manifest.get("url"):
            raise SourceError('Feed JSON is missing the "url" field.')

        artifact = ResolvedArtifact(
            url=urljoin(feed_url, str(manifest["url"])),
            version=_str_or_none(manifest.get("version")),
            sha256=_str_or_none(manifest.get("sha256") or manifest.get("hash")),
        )
        logger.info("[ArchiveFetcher] Feed %s -> %s (version=%s)", feed_url, artifact.url, artifact.version)
        return artifact

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve(self, source: UpdateSource, cancel: Optional[CancelToken] = None) -> ResolvedArtifact:
        """Resolve a source to its artifact without downloading it."""
        if isinstance(source, FeedSource):
            return self.fetch_feed_manifest(source.feed_url, cancel)
        with self.open(source, cancel) as stream:
            return stream.artifact

    def open(self, source: UpdateSource, cancel: Optional[CancelToken] = None) -> ArtifactStream:
        """
        Resolve a source and open the artifact body.

        Raises:
            SourceError: Feed or descriptor malformed/unreachable.
            TransferError: Artifact request failed.
            CancelledError: Cancelled before the body was opened.
        """
        cancel = cancel or CancelToken()
        if isinstance(source, FeedSource):
            artifact = self.fetch_feed_manifest(source.feed_url, cancel)
            return self._open_artifact(artifact, cancel)
        return self._open_direct(source, cancel)

    def _open_artifact(self, artifact: ResolvedArtifact, cancel: CancelToken) -> ArtifactStream:
        session = self._new_session()
        try:
            response = self._get(session, artifact.url, cancel)
        except BaseException:
            session.close()
            raise
        return ArtifactStream(
            artifact,
            session,
            response,
            response.iter_content(chunk_size=self.chunk_size),
            total_bytes=_content_length(response),
        )

    def _open_direct(self, source: DirectSource, cancel: CancelToken) -> ArtifactStream:
        session = self._new_session()
        try:
            response = self._get(session, source.url, cancel)
        except BaseException:
            session.close()
            raise

        try:
            content_type = response.headers.get("content-type", "").lower()
            is_json_type = "json" in content_type
            url_is_json = urlparse(source.url).path.lower().endswith(".json")
            length = _content_length(response)
            chunks = response.iter_content(chunk_size=self.chunk_size)

            should_sniff = (
                is_json_type
                or url_is_json
                or length is None
                or length <= self.sniff_limit
            )
            prefix = b""
            exhausted = False
            if should_sniff:
                prefix, exhausted = self._buffer(response, chunks, cancel)

            if exhausted:
                descriptor = parse_descriptor(self._parse_json(prefix), base_url=source.url)
                if descriptor is not None:
                    logger.info(
                        "[ArchiveFetcher] %s is a descriptor -> %s (version=%s)",
                        source.url, descriptor.url, descriptor.version,
                    )
                    response.close()
                    session.close()
                    artifact = ResolvedArtifact(
                        url=descriptor.url,
                        version=descriptor.version or source.version,
                        sha256=descriptor.sha256 or source.expected_sha256,
                    )
                    return self._open_artifact(artifact, cancel)
                if is_json_type:
                    raise SourceError(
                        f"Update descriptor at {source.url} is not valid: expected JSON with a \"url\" field."
                    )
            elif is_json_type:
                raise SourceError(
                    f"Update descriptor at {source.url} exceeds {self.sniff_limit} bytes."
                )

            logger.debug("[ArchiveFetcher] %s treated as the artifact itself", source.url)
            artifact = ResolvedArtifact(
                url=source.url,
                version=source.version,
                sha256=source.expected_sha256,
            )
            return ArtifactStream(artifact, session, response, chunks, prefix=prefix, total_bytes=length)
        except BaseException:
            response.close()
            session.close()
            raise

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get(self, session: requests.Session, url: str, cancel: CancelToken) -> requests.Response:
        cancel.check("downloading")
        unregister = cancel.on_cancel(session.close)
        try:
            response = session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            cancel.check("downloading")
            raise TransferError(f"Failed to download update archive from {url}: {e}") from e
        finally:
            unregister()

        if not _is_success(response):
            response.close()
            raise TransferError(f"Failed to download update archive ({response.status_code})")
        return response

    def _buffer(
        self, response: requests.Response, chunks: Iterator[bytes], cancel: CancelToken
    ) -> Tuple[bytes, bool]:
        """
        Read up to sniff_limit bytes. A cancel request closes the response
        so a stalled read aborts immediately.

        Returns:
            (buffered bytes, True if the body ended within the limit)
        """
        buffered = bytearray()
        unregister = cancel.on_cancel(response.close)
        try:
            for chunk in chunks:
                cancel.check("downloading")
                if chunk:
                    buffered.extend(chunk)
                if len(buffered) > self.sniff_limit:
                    return bytes(buffered), False
            cancel.check("downloading")
        except (requests.RequestException, OSError, ValueError, AttributeError) as e:
            # Closing the response from another thread surfaces as one of these
            cancel.check("downloading")
            raise TransferError(f"Failed while reading update response: {e}") from e
        finally:
            unregister()
        return bytes(buffered), True

    @staticmethod
    def _parse_json(body: bytes) -> Any:
        if not body.strip():
            return None
        try:
            return json.loads(body.decode("utf-8-sig"))
        except ValueError:
            return None


__all__ = [
    "ArchiveFetcher",
    "ArtifactStream",
    "CancelledError",
    "parse_descriptor",
    "resolve_update_source",
]
