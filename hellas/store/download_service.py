"""
Hellas Store - Download Service

Streams an update archive to a temporary file with:
- Per-request sessions (safe to call from the worker thread)
- SHA256 streaming verification (case-insensitive compare)
- Split timeout (connect, read)
- Progress callbacks, scaled into a sub-range of the overall operation
- Cancellation wired to the in-flight response

On any failure (network, integrity, cancellation) the partial file is
removed before the error propagates.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple

import requests

from .cancellation import CancelToken
from .errors import CancelledError, IntegrityError, TransferError
from .fetcher import USER_AGENT, ArtifactStream
from .models import ResolvedArtifact

logger = logging.getLogger(__name__)

# Progress callback type: (downloaded_bytes, total_bytes); total is 0 when unknown
ProgressCallback = Callable[[int, int], None]


@dataclass
class DownloadResult:
    """Result of a file download."""
    sha256: str
    size: int


@dataclass(frozen=True)
class ProgressBand:
    """
    Maps byte progress into a slice of an overall 0-100 scale.

    The download occupies [start, end]; values are capped at ``cap`` so
    the download phase never reports completion on its own.
    """
    start: int = 0
    end: int = 80
    cap: int = 99

    def scale(self, downloaded: int, total: int) -> Optional[int]:
        if total <= 0:
            return None
        fraction = min(1.0, downloaded / total)
        return min(self.cap, self.start + round(fraction * (self.end - self.start)))

    def tracker(self, emit: Callable[[int], None]) -> ProgressCallback:
        """Callback that forwards only changed percentages to emit."""
        last = {"value": None}

        def on_progress(downloaded: int, total: int) -> None:
            value = self.scale(downloaded, total)
            if value is not None and value != last["value"]:
                last["value"] = value
                emit(value)

        return on_progress


DOWNLOAD_BAND = ProgressBand()


class DownloadService:
    """HTTP download of update archives with hashing, progress and cancellation.

    Thread-safe: creates a new requests.Session per download call.
    """

    def __init__(self, chunk_size: int = 64 * 1024, timeout: Tuple[int, int] = (15, 60)):
        self.chunk_size = chunk_size
        self.timeout = timeout

    def download_to_file(
        self,
        artifact: ResolvedArtifact,
        dest: Path,
        *,
        progress_callback: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> DownloadResult:
        """Download an already-resolved artifact to dest.

        Args:
            artifact: Artifact to fetch; its sha256 (if any) is enforced
            dest: Destination file path
            progress_callback: Optional callback(downloaded_bytes, total_bytes)
            cancel: Cancellation token for this operation

        Returns:
            DownloadResult with sha256 hash and size

        Raises:
            TransferError: On network errors or non-2xx status
            IntegrityError: On hash mismatch
            CancelledError: If cancelled mid-stream
        """
        cancel = cancel or CancelToken()
        cancel.check("downloading")

        session = requests.Session()
        session.headers.update({"User-Agent": USER_AGENT})
        unregister = cancel.on_cancel(session.close)
        try:
            response = session.get(artifact.url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            session.close()
            cancel.check("downloading")
            raise TransferError(f"Download failed for {artifact.url}: {e}") from e
        finally:
            unregister()

        if not 200 <= response.status_code < 300:
            response.close()
            session.close()
            raise TransferError(f"Failed to download update archive ({response.status_code})")

        content_length = response.headers.get("content-length")
        stream = ArtifactStream(
            artifact,
            session,
            response,
            response.iter_content(chunk_size=self.chunk_size),
            total_bytes=int(content_length) if content_length and content_length.isdigit() else None,
        )
        return self.write_stream(stream, dest, progress_callback=progress_callback, cancel=cancel)

    def write_stream(
        self,
        stream: ArtifactStream,
        dest: Path,
        *,
        progress_callback: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> DownloadResult:
        """Drain an open artifact stream into dest, verifying its hash.

        The stream is always closed on return.
        """
        cancel = cancel or CancelToken()
        artifact = stream.artifact
        total = stream.total_bytes or 0
        downloaded = 0
        sha256 = hashlib.sha256()

        unregister = cancel.on_cancel(stream.close)
        try:
            cancel.check("downloading")
            dest.parent.mkdir(parents=True, exist_ok=True)
            with open(dest, "wb") as f:
                for data in stream:
                    cancel.check("downloading")
                    f.write(data)
                    sha256.update(data)
                    downloaded += len(data)
                    if progress_callback:
                        progress_callback(downloaded, total)
            cancel.check("downloading")

            actual_sha256 = sha256.hexdigest().lower()
            if artifact.sha256 and actual_sha256 != artifact.sha256.strip().lower():
                raise IntegrityError(expected=artifact.sha256, actual=actual_sha256, url=artifact.url)

            logger.info(
                "[DownloadService] Downloaded %s (%d bytes, sha256=%s)",
                artifact.url, downloaded, actual_sha256[:12],
            )
            return DownloadResult(sha256=actual_sha256, size=downloaded)

        except CancelledError:
            self._discard(dest)
            raise
        except IntegrityError:
            self._discard(dest)
            raise
        except (requests.RequestException, OSError, ValueError, AttributeError) as e:
            # Closing the response from another thread surfaces as one of these
            self._discard(dest)
            if cancel.cancelled:
                raise CancelledError(cancel.reason or "Operation cancelled.", phase="downloading") from e
            if isinstance(e, OSError) and not isinstance(e, requests.RequestException):
                raise TransferError(f"Failed to write update archive to {dest}: {e}") from e
            raise TransferError(f"Download failed for {artifact.url}: {e}") from e
        finally:
            unregister()
            stream.close()

    @staticmethod
    def _discard(dest: Path) -> None:
        try:
            dest.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("[DownloadService] Could not remove partial file %s: %s", dest, e)
