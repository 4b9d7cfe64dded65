"""Video transcript fetching.

The fetcher walks an ordered list of backends: yt-dlp first (subprocess,
most reliable from a residential IP), then ``youtube-transcript-api``. It
stops at the first success or at the first failure whose message marks it
as permanent (private, disabled, no captions, ...). Unclassified failures
fall through to the next backend.
"""

from __future__ import annotations

import asyncio
import json
import re
import tempfile
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from youtube_transcript_api import (
    IpBlocked,
    NoTranscriptFound,
    RequestBlocked,
    TranscriptsDisabled,
    VideoUnavailable,
    YouTubeTranscriptApi,
)

from rescontent.cache import make_cache_key
from rescontent.errors import (
    ErrorType,
    FetchError,
    classify_transcript_error,
    is_retryable_transcript_failure,
)
from rescontent.models.results import (
    BatchTranscriptResult,
    BatchTranscriptSummary,
    Transcript,
    TranscriptResult,
    TranscriptSegment,
)
from rescontent.parser import parse_json3, parse_vtt

if TYPE_CHECKING:
    from rescontent.config import TranscriptSettings
    from rescontent.protocols import CacheProtocol, TranscriptBackend

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_VIDEO_URL_RE = re.compile(
    r"(?:youtube\.com/watch\?(?:[^#]*&)?v=|youtu\.be/|youtube\.com/(?:embed|shorts|live)/)"
    r"([A-Za-z0-9_-]{11})"
)


def extract_video_id(value: str) -> str | None:
    """Accept a bare 11-character id or any common YouTube URL form."""
    value = value.strip()
    if _VIDEO_ID_RE.match(value):
        return value
    match = _VIDEO_URL_RE.search(value)
    return match.group(1) if match else None


def build_transcript(segments: list[TranscriptSegment], language: str) -> Transcript:
    full_text = " ".join(segment.text for segment in segments).strip()
    return Transcript(
        full_text=full_text,
        segments=segments,
        language=language,
        word_count=len(full_text.split()),
    )


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


# ---------------------------------------------------------------------------
# yt-dlp backend
# ---------------------------------------------------------------------------


@dataclass
class CommandOutput:
    returncode: int
    output: str  # stdout and stderr interleaved


CommandRunner = Callable[[Sequence[str], float], Awaitable[CommandOutput]]


async def run_command(args: Sequence[str], timeout: float) -> CommandOutput:
    """Run ``args`` without a shell, killing the process on timeout.

    Raises FileNotFoundError if the executable is missing and TimeoutError
    if it runs longer than ``timeout`` seconds.
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        raise
    return CommandOutput(
        returncode=process.returncode or 0,
        output=stdout.decode("utf-8", errors="replace"),
    )


def _last_error_line(output: str) -> str:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    for line in reversed(lines):
        if line.startswith("ERROR"):
            return line
    return lines[-1] if lines else "no output"


class YtDlpBackend:
    """Primary backend: shells out to the yt-dlp CLI."""

    name = "yt-dlp"

    def __init__(
        self,
        settings: TranscriptSettings,
        *,
        runner: CommandRunner = run_command,
        temp_root: str | None = None,
    ) -> None:
        self._settings = settings
        self._runner = runner
        self._temp_root = temp_root

    async def attempt(self, video_id: str, language: str) -> TranscriptResult:
        log = structlog.get_logger().bind(backend=self.name, video_id=video_id)
        try:
            segments = await self._fetch_segments(video_id, language, log)
        except FetchError as exc:
            return self._failure(log, video_id, exc.message, exc.error_type)
        except FileNotFoundError:
            return self._failure(log, video_id, "yt-dlp not installed", ErrorType.SERVER_ERROR)
        except TimeoutError:
            return self._failure(log, video_id, "Request timed out", ErrorType.TIMEOUT)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            return self._failure(
                log, video_id, f"yt-dlp error: {message}", classify_transcript_error(message)
            )

        if not segments:
            return self._failure(
                log, video_id, "No transcript content found", ErrorType.TRANSCRIPT_NOT_FOUND
            )

        transcript = build_transcript(segments, language)
        log.info("transcript_fetched", word_count=transcript.word_count)
        return TranscriptResult(
            success=True,
            video_id=video_id,
            transcript=transcript,
            source="yt-dlp",
        )

    def _failure(
        self, log, video_id: str, message: str, error_type: ErrorType
    ) -> TranscriptResult:
        log.warning("transcript_backend_failed", error_type=error_type, error=message)
        return TranscriptResult.failure(video_id, message, error_type)

    async def _fetch_segments(self, video_id: str, language: str, log) -> list[TranscriptSegment]:
        binary = self._settings.yt_dlp_path
        url = YOUTUBE_WATCH_URL.format(video_id=video_id)

        listing = await self._runner(
            [binary, "--list-subs", "--skip-download", url],
            self._settings.list_timeout_seconds,
        )
        output = listing.output

        # Permanent conditions: no point downloading anything
        if "Private video" in output:
            raise FetchError(ErrorType.PRIVATE_VIDEO, "Video is private")
        if "Video unavailable" in output:
            raise FetchError(ErrorType.VIDEO_NOT_FOUND, "Video not found or unavailable")
        if "Sign in to confirm your age" in output:
            raise FetchError(ErrorType.AGE_RESTRICTED, "Age-restricted video")

        has_manual = "Available subtitles" in output
        has_auto = "Available automatic captions" in output
        if not has_manual and not has_auto:
            if listing.returncode != 0:
                detail = _last_error_line(output)
                raise FetchError(classify_transcript_error(detail), f"yt-dlp error: {detail}")
            raise FetchError(
                ErrorType.TRANSCRIPT_NOT_FOUND, "No captions available for this video"
            )

        sub_flag = "--write-subs" if has_manual else "--write-auto-subs"
        fmt = self._settings.subtitle_format
        log.debug("transcript_downloading", track="manual" if has_manual else "auto", fmt=fmt)

        # The directory and everything yt-dlp wrote into it is removed on exit
        with tempfile.TemporaryDirectory(prefix=f"yt_{video_id}_", dir=self._temp_root) as tmp:
            await self._runner(
                [
                    binary,
                    sub_flag,
                    "--sub-langs",
                    language,
                    "--sub-format",
                    fmt,
                    "--skip-download",
                    "-o",
                    str(Path(tmp) / video_id),
                    url,
                ],
                self._settings.download_timeout_seconds,
            )
            # yt-dlp names the file <output>.<lang>.<ext>
            downloaded = sorted(Path(tmp).glob(f"*.{fmt}"))
            if not downloaded:
                raise FetchError(ErrorType.TRANSCRIPT_NOT_FOUND, "Could not download subtitles")
            raw = downloaded[0].read_text(encoding="utf-8")

        if fmt == "json3":
            return parse_json3(json.loads(raw))
        return parse_vtt(raw)


# ---------------------------------------------------------------------------
# youtube-transcript-api backend
# ---------------------------------------------------------------------------

# Checked in order; IpBlocked is a RequestBlocked subclass.
_API_ERROR_TYPES: tuple[tuple[type[Exception], ErrorType], ...] = (
    (TranscriptsDisabled, ErrorType.TRANSCRIPTS_DISABLED),
    (NoTranscriptFound, ErrorType.TRANSCRIPT_NOT_FOUND),
    (VideoUnavailable, ErrorType.VIDEO_NOT_FOUND),
    (IpBlocked, ErrorType.RATE_LIMITED),
    (RequestBlocked, ErrorType.RATE_LIMITED),
)


def _api_error_message(exc: Exception) -> str:
    # The library's str() is a multi-paragraph help text; ``cause`` is the useful part.
    cause = getattr(exc, "cause", None)
    message = cause if isinstance(cause, str) and cause.strip() else str(exc)
    return " ".join(message.split()) or type(exc).__name__


class TranscriptApiBackend:
    """Fallback backend: the youtube-transcript-api library.

    The library is synchronous, so each fetch runs in a worker thread.
    Snippet ``start``/``duration`` are already in seconds.
    """

    name = "youtube-transcript-api"

    def __init__(self, api: YouTubeTranscriptApi | None = None) -> None:
        self._api = api or YouTubeTranscriptApi()

    async def attempt(self, video_id: str, language: str) -> TranscriptResult:
        log = structlog.get_logger().bind(backend=self.name, video_id=video_id)
        try:
            fetched = await asyncio.to_thread(self._api.fetch, video_id, languages=[language])
            segments = [
                TranscriptSegment(
                    start=float(snippet.start),
                    duration=float(snippet.duration),
                    text=snippet.text.replace("\n", " ").strip(),
                )
                for snippet in fetched
            ]
        except Exception as exc:
            message = _api_error_message(exc)
            error_type = next(
                (etype for cls, etype in _API_ERROR_TYPES if isinstance(exc, cls)),
                classify_transcript_error(message),
            )
            log.warning("transcript_backend_failed", error_type=error_type, error=message)
            return TranscriptResult.failure(video_id, message, error_type)

        if not segments:
            return TranscriptResult.failure(
                video_id, "No transcript available", ErrorType.TRANSCRIPT_NOT_FOUND
            )

        transcript = build_transcript(segments, language)
        log.info("transcript_fetched", word_count=transcript.word_count)
        return TranscriptResult(
            success=True,
            video_id=video_id,
            transcript=transcript,
            source="youtube-transcript-api",
        )


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class TranscriptFetcher:
    """Cache-fronted transcript fetcher over an ordered backend chain."""

    def __init__(
        self,
        cache: CacheProtocol,
        backends: Sequence[TranscriptBackend],
        *,
        default_language: str = "en",
    ) -> None:
        self._cache = cache
        self._backends = list(backends)
        self._default_language = default_language

    @staticmethod
    def cache_key(video_id: str, language: str) -> str:
        return make_cache_key("transcript", {"videoId": video_id, "language": language})

    async def fetch(self, video_id: str, language: str | None = None) -> TranscriptResult:
        """Fetch one transcript. Never raises; failures come back classified."""
        lang = language or self._default_language
        log = structlog.get_logger().bind(video_id=video_id, language=lang)
        key = self.cache_key(video_id, lang)

        cached: TranscriptResult | None = self._cache.get(key)
        if cached is not None:
            log.info("transcript_cache_hit")
            return cached.model_copy(update={"fetch_time_ms": 0, "source": "cache", "cached": True})

        started = time.perf_counter()
        log.info("transcript_fetch_started")

        result: TranscriptResult | None = None
        for backend in self._backends:
            try:
                result = await backend.attempt(video_id, lang)
            except Exception as exc:
                message = f"{backend.name} error: {exc}"
                log.error("transcript_backend_crashed", backend=backend.name, exc_info=True)
                result = TranscriptResult.failure(
                    video_id, message, classify_transcript_error(message)
                )

            if result.success or not is_retryable_transcript_failure(result.error):
                break
            log.info(
                "transcript_backend_fallback",
                backend=backend.name,
                error_type=result.error_type,
            )

        if result is None:
            result = TranscriptResult.failure(
                video_id, "No transcript backends configured", ErrorType.SERVER_ERROR
            )

        result = result.model_copy(update={"fetch_time_ms": _elapsed_ms(started)})
        if result.success:
            self._cache.set(key, result, "transcript")
        return result

    async def fetch_batch(
        self, video_ids: Sequence[str], language: str | None = None
    ) -> BatchTranscriptResult:
        """Fetch several transcripts concurrently; invalid ids fail individually."""

        async def fetch_one(raw_id: str) -> TranscriptResult:
            video_id = extract_video_id(raw_id)
            if video_id is None:
                return TranscriptResult.failure(
                    raw_id, "Invalid videoId format", ErrorType.INVALID_URL
                )
            return await self.fetch(video_id, language)

        results = await asyncio.gather(*(fetch_one(raw_id) for raw_id in video_ids))
        successful = sum(1 for result in results if result.success)
        return BatchTranscriptResult(
            results=list(results),
            summary=BatchTranscriptSummary(
                total=len(results),
                successful=successful,
                failed=len(results) - successful,
            ),
        )
