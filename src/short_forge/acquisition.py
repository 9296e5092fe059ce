"""
Acquisition Fallback Chain

Fetches metadata, media and captions for a video from an ordered list of
candidate providers: the primary upstream first, then each configured mirror
in priority order. Candidates are tried one at a time and the first success
wins; nothing is raced.

When every candidate fails, the primary provider's last error text is
classified through FAILURE_PATTERNS so the caller learns *why* the upstream
refused (bot check, region block, ...) rather than whichever mirror happened
to fail last.

Usage:
    chain = AcquisitionChain.from_settings(get_settings())
    metadata = chain.resolve_metadata(video_id)
    source = chain.download_media(video_id, job_dir)
    subtitles = chain.fetch_captions(video_id, job_dir)  # [] means transcribe
"""

import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from .config import Settings
from .exceptions import (
    AcquisitionError,
    AcquisitionFailure,
    JobCancelledError,
    ShortForgeError,
    StageTimeoutError,
)
from .logger import logger
from .providers import (
    CredentialBundle,
    MediaProvider,
    MirrorProvider,
    ProviderError,
    TransferBudget,
    VideoMetadata,
    YtDlpProvider,
)
from .subtitle_parser import Subtitle, parse_caption_file

T = TypeVar("T")

# Ordered, case-insensitive substring table. First match wins, so the more
# specific phrases come before the generic ones ("Video unavailable. The
# uploader has not made this video available in your country" is a region
# block, not a removal).
FAILURE_PATTERNS: List[Tuple[str, AcquisitionFailure]] = [
    ("not made this video available in your country", AcquisitionFailure.REGION_BLOCKED),
    ("not available in your country", AcquisitionFailure.REGION_BLOCKED),
    ("sign in to confirm your age", AcquisitionFailure.AGE_RESTRICTED),
    ("age-restricted", AcquisitionFailure.AGE_RESTRICTED),
    ("sign in to confirm you're not a bot", AcquisitionFailure.BOT_DETECTION),
    ("sign in to confirm you’re not a bot", AcquisitionFailure.BOT_DETECTION),
    ("video unavailable", AcquisitionFailure.UNAVAILABLE),
    ("private video", AcquisitionFailure.UNAVAILABLE),
    ("has been removed", AcquisitionFailure.UNAVAILABLE),
    ("http error 429", AcquisitionFailure.BOT_DETECTION),
    ("too many requests", AcquisitionFailure.BOT_DETECTION),
    ("bot", AcquisitionFailure.BOT_DETECTION),
]


def classify_failure(text: Optional[str]) -> AcquisitionFailure:
    """Map raw upstream error text to an AcquisitionFailure."""
    lowered = (text or "").lower()
    for needle, failure in FAILURE_PATTERNS:
        if needle in lowered:
            return failure
    return AcquisitionFailure.UNKNOWN


class _CandidateSkipped(ProviderError):
    """A candidate answered but had nothing usable (no caption track)."""


class AcquisitionChain:
    """Sequential primary-then-mirrors fallback with attempt and time bounds."""

    def __init__(
        self,
        primary: MediaProvider,
        mirrors: Optional[Sequence[MediaProvider]] = None,
        max_attempts: int = 8,
        deadline_seconds: float = 900.0,
        max_height: int = 720,
        caption_languages: Optional[Sequence[str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.primary = primary
        self.mirrors = list(mirrors or [])
        self.max_attempts = max_attempts
        self.deadline_seconds = deadline_seconds
        self.max_height = max_height
        self.caption_languages = list(caption_languages or ["pt", "en"])
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "AcquisitionChain":
        acq = settings.acquisition
        credentials = CredentialBundle(acq.cookies_file) if acq.has_credentials else None
        primary = YtDlpProvider(
            profiles=acq.client_profiles,
            credentials=credentials,
            credential_profile=acq.credential_client_profile,
            user_agent=acq.user_agent,
        )
        mirrors = [
            MirrorProvider(url, user_agent=acq.user_agent, max_height=acq.max_video_height)
            for url in acq.mirror_endpoints
        ]
        return cls(
            primary,
            mirrors,
            max_attempts=acq.max_attempts,
            deadline_seconds=acq.deadline_seconds,
            max_height=acq.max_video_height,
            caption_languages=acq.caption_languages,
        )

    @property
    def candidates(self) -> List[MediaProvider]:
        return [self.primary] + self.mirrors

    def _run(
        self,
        operation: str,
        call: Callable[[MediaProvider, TransferBudget], T],
        cancel_event: Optional[threading.Event] = None,
    ) -> T:
        started = self._clock()
        budget = TransferBudget(operation, started + self.deadline_seconds, cancel_event, self._clock)
        attempts = 0
        primary_error: Optional[str] = None
        last_error: Optional[str] = None

        for provider in self.candidates:
            if cancel_event is not None and cancel_event.is_set():
                raise JobCancelledError(f"Cancelled during {operation}")
            if attempts >= self.max_attempts:
                raise StageTimeoutError(
                    f"{operation}: attempt bound ({self.max_attempts}) reached", stage="acquisition"
                )
            elapsed = self._clock() - started
            if elapsed > self.deadline_seconds:
                raise StageTimeoutError(
                    f"{operation}: deadline of {self.deadline_seconds:.0f}s exceeded after {elapsed:.0f}s",
                    stage="acquisition",
                )

            attempts += 1
            logger.info(f"   ↳ {operation} attempt {attempts} via {provider.name}")
            try:
                result = call(provider, budget)
            except (ProviderError, OSError) as e:
                text = e.text if isinstance(e, ProviderError) else f"{type(e).__name__}: {e}"
                logger.warning(f"   ⚠️ {operation} failed via {provider.name}: {text.splitlines()[0] if text else text}")
                if provider is self.primary:
                    primary_error = text
                last_error = text
                continue

            logger.info(f"   ✅ {operation} succeeded via {provider.name}")
            return result

        error_text = primary_error if primary_error is not None else (last_error or "")
        failure = classify_failure(error_text)
        raise AcquisitionError(
            f"{operation} failed on all {attempts} candidate(s) [{failure.value}]: {error_text}",
            failure=failure,
        )

    def resolve_metadata(self, video_id: str, cancel_event: Optional[threading.Event] = None) -> VideoMetadata:
        """
        Title, duration and direct media pointer from the first answering candidate.

        Raises:
            AcquisitionError: every candidate failed
            StageTimeoutError: attempt bound or deadline reached first
        """
        return self._run("metadata", lambda p, budget: p.get_metadata(video_id), cancel_event)

    def download_media(
        self,
        video_id: str,
        dest_dir: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        """
        Download the source media. Same failure semantics as resolve_metadata.

        The deadline and cancel_event also hold while a candidate is
        transferring, not only between candidates.
        """
        return self._run(
            "download",
            lambda p, budget: p.download_media(video_id, Path(dest_dir), self.max_height, budget=budget),
            cancel_event,
        )

    def fetch_captions(
        self,
        video_id: str,
        dest_dir: Path,
        languages: Optional[Sequence[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Subtitle]:
        """
        Caption cues from the first candidate that has a usable track.

        Never raises for upstream problems: an empty list tells the caller to
        fall back to transcription.
        """
        langs = list(languages or self.caption_languages)

        def _fetch(provider: MediaProvider, budget: TransferBudget) -> List[Subtitle]:
            path = provider.download_captions(video_id, Path(dest_dir), langs)
            if path is None:
                raise _CandidateSkipped(f"no caption track in {','.join(langs)}", provider=provider.name)
            subtitles = parse_caption_file(path)
            if not subtitles:
                raise _CandidateSkipped(f"caption track {path.name} has no usable cues", provider=provider.name)
            return subtitles

        try:
            subtitles = self._run("captions", _fetch, cancel_event)
        except JobCancelledError:
            raise
        except ShortForgeError as e:
            logger.warning(f"   ⚠️ No captions available ({e}); transcription fallback required")
            return []

        logger.info(f"   📝 {len(subtitles)} caption cues")
        return subtitles
