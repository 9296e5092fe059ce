"""
Media Providers - Upstream endpoints the acquisition chain can ask for media.

Two implementations share the MediaProvider interface:

    YtDlpProvider   the primary upstream, negotiated through yt-dlp client
                    profiles (restricted to one profile when a cookies file
                    is configured)
    MirrorProvider  an Invidious-compatible mirror reached over its JSON API

Providers only fetch. They never classify failures or decide what to try
next; every upstream problem surfaces as ProviderError carrying the raw
error text, which the chain classifies. Downloads take a TransferBudget from
the chain and stop mid-transfer when its deadline passes or the job is
cancelled.
"""

import os
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin

import requests
import yt_dlp
from yt_dlp.utils import DownloadError, ExtractorError

from .config_timeouts import TimeoutConfig
from .exceptions import JobCancelledError, ShortForgeError, StageTimeoutError
from .logger import logger
from .source_resolver import canonical_url

SOURCE_BASENAME = "source"
CAPTIONS_BASENAME = "captions"


@dataclass
class VideoMetadata:
    """What an upstream reports about a video before download."""
    video_id: str
    title: str
    duration: float  # seconds, 0 when unknown
    direct_url: Optional[str] = None
    source: str = ""  # provider name that answered


@dataclass(frozen=True)
class CredentialBundle:
    """Authentication material for the primary upstream."""
    cookies_file: Path


class ProviderError(ShortForgeError):
    """An upstream refused or failed a request. Message is the raw error text."""

    def __init__(self, text: str, provider: Optional[str] = None):
        super().__init__(text)
        self.text = text
        self.provider = provider


class TransferBudget:
    """
    Wall-clock deadline and cancellation flag for one acquisition operation.

    Providers call check() while bytes are moving, so a slow transfer stops
    at the chain's deadline instead of at the next candidate. Without a
    deadline or event it never fires.
    """

    def __init__(
        self,
        operation: str = "download",
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.operation = operation
        self.deadline = deadline
        self.cancel_event = cancel_event
        self._clock = clock

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - self._clock()

    def check(self) -> None:
        """
        Raises:
            JobCancelledError: the job was cancelled
            StageTimeoutError: the deadline has passed
        """
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise JobCancelledError(f"Cancelled during {self.operation}")
        remaining = self.remaining()
        if remaining is not None and remaining < 0:
            raise StageTimeoutError(
                f"{self.operation}: deadline passed {-remaining:.1f}s ago mid-transfer", stage="acquisition"
            )

    def cap(self, seconds: float) -> float:
        """Shrink a per-request timeout to what is left, never below one second."""
        remaining = self.remaining()
        if remaining is None:
            return seconds
        return max(1.0, min(seconds, remaining))


class MediaProvider(ABC):
    """One candidate endpoint in the acquisition chain."""

    name: str = "provider"

    @abstractmethod
    def get_metadata(self, video_id: str) -> VideoMetadata:
        """Raises ProviderError."""

    @abstractmethod
    def download_media(
        self,
        video_id: str,
        dest_dir: Path,
        max_height: int,
        budget: Optional[TransferBudget] = None,
    ) -> Path:
        """
        Download muxed media into dest_dir.

        Raises:
            ProviderError: the upstream failed
            StageTimeoutError, JobCancelledError: raised by budget mid-transfer
        """

    @abstractmethod
    def download_captions(self, video_id: str, dest_dir: Path, languages: List[str]) -> Optional[Path]:
        """
        Fetch the first available caption track in language order.

        Returns None when the upstream has no track in any requested
        language. Raises ProviderError when the request itself failed.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


# =============================================================================
# Primary upstream (yt-dlp)
# =============================================================================

class YtDlpProvider(MediaProvider):
    """
    Primary upstream reached through yt-dlp.

    With credentials, negotiation is limited to credential_profile since
    most alternate clients reject cookies. Without them, every profile in
    `profiles` is offered so yt-dlp can fall through bot checks itself.
    """

    name = "primary"

    def __init__(
        self,
        profiles: List[str],
        credentials: Optional[CredentialBundle] = None,
        credential_profile: str = "web",
        user_agent: Optional[str] = None,
    ):
        self.profiles = list(profiles)
        self.credentials = credentials
        self.credential_profile = credential_profile
        self.user_agent = user_agent

    @property
    def active_profiles(self) -> List[str]:
        if self.credentials is not None:
            return [self.credential_profile]
        return self.profiles

    def _base_opts(self) -> Dict[str, Any]:
        opts: Dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
            "socket_timeout": TimeoutConfig.http_stream(),
            "retries": 3,
            "cachedir": False,
            "extractor_args": {"youtube": {"player_client": self.active_profiles}},
        }
        if self.user_agent:
            opts["http_headers"] = {"User-Agent": self.user_agent}
        if self.credentials is not None:
            opts["cookiefile"] = str(self.credentials.cookies_file)
        return opts

    def _extract(self, video_id: str, opts: Dict[str, Any], download: bool) -> Dict[str, Any]:
        try:
            with yt_dlp.YoutubeDL(opts) as ydl:
                info = ydl.extract_info(canonical_url(video_id), download=download)
                if info:
                    info = ydl.sanitize_info(info)
        except (DownloadError, ExtractorError) as e:
            raise ProviderError(str(e), provider=self.name) from e
        if not info:
            raise ProviderError(f"No info returned for {video_id}", provider=self.name)
        return info

    def get_metadata(self, video_id: str) -> VideoMetadata:
        info = self._extract(video_id, self._base_opts(), download=False)
        return VideoMetadata(
            video_id=video_id,
            title=info.get("title") or video_id,
            duration=float(info.get("duration") or 0.0),
            direct_url=info.get("url"),
            source=self.name,
        )

    def download_media(
        self,
        video_id: str,
        dest_dir: Path,
        max_height: int,
        budget: Optional[TransferBudget] = None,
    ) -> Path:
        budget = budget or TransferBudget()
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        opts = self._base_opts()
        opts.update({
            "socket_timeout": budget.cap(TimeoutConfig.http_stream()),
            # yt-dlp lets exceptions raised in progress hooks abort the download
            "progress_hooks": [lambda progress: budget.check()],
            "format": (
                f"bestvideo[height<={max_height}][ext=mp4]+bestaudio[ext=m4a]"
                f"/bestvideo[height<={max_height}]+bestaudio"
                f"/best[height<={max_height}][ext=mp4]/best[height<={max_height}]"
            ),
            "outtmpl": str(dest_dir / f"{SOURCE_BASENAME}.%(ext)s"),
            "merge_output_format": "mp4",
            "overwrites": True,
        })
        try:
            info = self._extract(video_id, opts, download=True)
        except (StageTimeoutError, JobCancelledError):
            for partial in dest_dir.glob(f"{SOURCE_BASENAME}.*"):
                partial.unlink(missing_ok=True)
            raise

        downloads = info.get("requested_downloads") or []
        candidates = [Path(d["filepath"]) for d in downloads if d.get("filepath")]
        candidates.append(dest_dir / f"{SOURCE_BASENAME}.mp4")
        for path in candidates:
            if path.exists() and path.stat().st_size > 0:
                return path
        raise ProviderError(f"Download reported success but no file for {video_id}", provider=self.name)

    def download_captions(self, video_id: str, dest_dir: Path, languages: List[str]) -> Optional[Path]:
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        opts = self._base_opts()
        opts.update({
            "skip_download": True,
            "writesubtitles": True,
            "writeautomaticsub": True,
            "subtitleslangs": list(languages),
            "subtitlesformat": "srt/vtt/best",
            "outtmpl": str(dest_dir / f"{CAPTIONS_BASENAME}.%(ext)s"),
        })
        info = self._extract(video_id, opts, download=True)

        requested = info.get("requested_subtitles") or {}
        for lang in languages:
            entry = requested.get(lang)
            if entry and entry.get("filepath") and Path(entry["filepath"]).exists():
                return Path(entry["filepath"])
        return None


# =============================================================================
# Mirrors (Invidious API)
# =============================================================================

QUALITY_RE = re.compile(r"(\d{3,4})p")


def _quality_height(stream: Dict[str, Any]) -> int:
    match = QUALITY_RE.search(str(stream.get("qualityLabel") or stream.get("resolution") or ""))
    return int(match.group(1)) if match else 0


def pick_stream(streams: List[Dict[str, Any]], max_height: int) -> Optional[Dict[str, Any]]:
    """
    Best muxed stream at or below max_height.

    Falls back to the smallest stream when nothing fits under the cap.
    """
    usable = [s for s in streams if s.get("url")]
    if not usable:
        return None
    fitting = [s for s in usable if _quality_height(s) <= max_height]
    if fitting:
        return max(fitting, key=_quality_height)
    return min(usable, key=_quality_height)


class MirrorProvider(MediaProvider):
    """Invidious-compatible mirror: GET {base}/api/v1/videos/{id}."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
        max_height: int = 720,
    ):
        self.base_url = base_url.rstrip("/")
        self.name = self.base_url
        self.max_height = max_height
        self.session = session or requests.Session()
        if user_agent:
            self.session.headers.update({"User-Agent": user_agent})

    def _url(self, path: str) -> str:
        # stream and caption URLs may come back relative to the mirror
        return urljoin(self.base_url + "/", path)

    def _get(self, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", TimeoutConfig.http_default())
        try:
            response = self.session.get(url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"{type(e).__name__}: {e}", provider=self.name) from e
        if response.status_code >= 400:
            body = (response.text or "")[:200]
            response.close()
            raise ProviderError(f"HTTP {response.status_code} from {self.name}: {body}", provider=self.name)
        return response

    def _video_info(self, video_id: str) -> Dict[str, Any]:
        response = self._get(self._url(f"api/v1/videos/{video_id}"))
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from {self.name}", provider=self.name) from e
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected payload from {self.name}", provider=self.name)
        if data.get("error"):
            raise ProviderError(str(data["error"]), provider=self.name)
        return data

    def get_metadata(self, video_id: str) -> VideoMetadata:
        data = self._video_info(video_id)
        stream = pick_stream(data.get("formatStreams") or [], self.max_height)
        return VideoMetadata(
            video_id=video_id,
            title=data.get("title") or video_id,
            duration=float(data.get("lengthSeconds") or 0.0),
            direct_url=self._url(stream["url"]) if stream else None,
            source=self.name,
        )

    def download_media(
        self,
        video_id: str,
        dest_dir: Path,
        max_height: int,
        budget: Optional[TransferBudget] = None,
    ) -> Path:
        budget = budget or TransferBudget()
        data = self._video_info(video_id)
        stream = pick_stream(data.get("formatStreams") or [], max_height)
        if stream is None:
            raise ProviderError(f"No muxed stream for {video_id} on {self.name}", provider=self.name)

        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        output_path = dest_dir / f"{SOURCE_BASENAME}.mp4"
        temp_path = dest_dir / f"{SOURCE_BASENAME}.mp4.part"

        logger.debug(f"Streaming {stream.get('qualityLabel', '?')} from {self.name}")
        budget.check()
        response = self._get(
            self._url(stream["url"]), stream=True, timeout=budget.cap(TimeoutConfig.http_stream())
        )
        completed = False
        try:
            with open(temp_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=1024 * 1024):
                    if chunk:
                        f.write(chunk)
                    budget.check()
            completed = True
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Stream interrupted: {e}", provider=self.name) from e
        finally:
            response.close()
            if not completed:
                temp_path.unlink(missing_ok=True)

        if temp_path.stat().st_size == 0:
            temp_path.unlink(missing_ok=True)
            raise ProviderError(f"Empty stream for {video_id} from {self.name}", provider=self.name)
        os.replace(temp_path, output_path)
        return output_path

    def download_captions(self, video_id: str, dest_dir: Path, languages: List[str]) -> Optional[Path]:
        data = self._video_info(video_id)
        tracks = data.get("captions") or []
        for lang in languages:
            track = next(
                (t for t in tracks
                 if t.get("url") and (t.get("languageCode") == lang
                                      or str(t.get("languageCode", "")).startswith(lang + "-"))),
                None,
            )
            if track is None:
                continue
            response = self._get(self._url(track["url"]))
            dest_dir = Path(dest_dir)
            dest_dir.mkdir(parents=True, exist_ok=True)
            path = dest_dir / f"{CAPTIONS_BASENAME}.{lang}.vtt"
            path.write_text(response.text, encoding="utf-8")
            return path
        return None
