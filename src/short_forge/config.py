"""
Centralized Configuration for Short Forge

Single Source of Truth for paths, upstream endpoints, encoding settings and
the timing constants of the assembly pipeline.

Usage:
    from short_forge.config import get_settings

    settings = get_settings()
    work_dir = settings.paths.work_dir
    mirrors = settings.acquisition.mirror_endpoints
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .config_parser import ConfigParser


# =============================================================================
# Path Configuration
# =============================================================================
@dataclass
class PathConfig:
    """Filesystem locations used by jobs."""

    work_dir: Path = field(default_factory=ConfigParser.make_path_parser("WORK_DIR", "./tmp"))
    output_dir: Path = field(default_factory=ConfigParser.make_path_parser("OUTPUT_DIR", "./output"))

    def ensure_directories(self) -> None:
        for path in [self.work_dir, self.output_dir]:
            path.mkdir(parents=True, exist_ok=True)

    def job_dir(self, job_id: str) -> Path:
        """Working directory owned by a single job."""
        return self.work_dir / job_id


# =============================================================================
# Acquisition Configuration
# =============================================================================
DEFAULT_CLIENT_PROFILES = ["default", "web_safari", "android", "ios"]


@dataclass
class AcquisitionConfig:
    """
    Upstream endpoints and negotiation settings.

    The primary provider is always tried first; mirrors follow in the order
    given here. When a cookies file is configured, the primary provider is
    limited to the single credential-compatible client profile.
    """

    mirror_endpoints: List[str] = field(default_factory=ConfigParser.make_list_parser("MIRROR_ENDPOINTS", []))
    cookies_file: Optional[Path] = field(default_factory=ConfigParser.make_optional_path_parser("YOUTUBE_COOKIES_FILE"))
    client_profiles: List[str] = field(
        default_factory=ConfigParser.make_list_parser("PRIMARY_CLIENT_PROFILES", DEFAULT_CLIENT_PROFILES)
    )
    credential_client_profile: str = field(default_factory=ConfigParser.make_str_parser("CREDENTIAL_CLIENT_PROFILE", "web"))
    caption_languages: List[str] = field(default_factory=ConfigParser.make_list_parser("CAPTION_LANGUAGES", ["pt", "en"]))
    max_video_height: int = field(default_factory=ConfigParser.make_int_parser("MAX_VIDEO_HEIGHT", 720))
    max_attempts: int = field(default_factory=ConfigParser.make_int_parser("ACQUISITION_MAX_ATTEMPTS", 8))
    deadline_seconds: float = field(default_factory=ConfigParser.make_float_parser("ACQUISITION_DEADLINE", 900.0))
    user_agent: str = field(default_factory=ConfigParser.make_str_parser(
        "ACQUISITION_USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    ))

    @property
    def has_credentials(self) -> bool:
        return self.cookies_file is not None


# =============================================================================
# Encoding Configuration
# =============================================================================
@dataclass
class EncodingConfig:
    """FFmpeg and video encoding settings."""

    codec: str = field(default_factory=ConfigParser.make_str_parser("OUTPUT_CODEC", "libx264"))
    preset: str = field(default_factory=ConfigParser.make_str_parser("FFMPEG_PRESET", "fast"))
    crf: int = field(default_factory=ConfigParser.make_int_parser("FINAL_CRF", 23))
    pix_fmt: str = field(default_factory=ConfigParser.make_str_parser("OUTPUT_PIX_FMT", "yuv420p"))
    audio_codec: str = field(default_factory=ConfigParser.make_str_parser("OUTPUT_AUDIO_CODEC", "aac"))
    audio_bitrate: str = field(default_factory=ConfigParser.make_str_parser("OUTPUT_AUDIO_BITRATE", "192k"))
    frame_width: int = 1080
    frame_height: int = 1920


# =============================================================================
# Timing Configuration
# =============================================================================
@dataclass
class TimingConfig:
    """
    Constants of the timing arithmetic.

    Spoken duration is estimated at words_per_minute; clips get clip_padding
    on top and are bounded to [min_clip_seconds, max_clip_seconds].
    """

    words_per_minute: float = 150.0
    clip_padding: float = 1.1
    min_clip_seconds: float = 2.0
    max_clip_seconds: float = 8.0
    min_scene_seconds: float = 2.0
    scene_start_margin: float = 5.0
    speed_tolerance: float = 0.1
    max_output_seconds: float = 61.0
    fallback_target_seconds: float = 55.0
    fallback_min_jump: float = 15.0
    fallback_jump_factor: float = 3.0
    default_source_seconds: float = 300.0
    default_wrap_cursor: float = 60.0
    min_caption_seconds: float = 2.0
    caption_wrap_chars: int = 40


# =============================================================================
# Processing Configuration
# =============================================================================
@dataclass
class ProcessingConfig:
    """Worker pool sizing."""

    extract_workers: int = field(default_factory=ConfigParser.make_int_parser(
        "EXTRACT_WORKERS", max(1, min(4, (os.cpu_count() or 2) // 2))
    ))
    max_concurrent_jobs: int = field(default_factory=ConfigParser.make_int_parser("MAX_CONCURRENT_JOBS", 2))
    keep_failed_artifacts: bool = field(default_factory=ConfigParser.make_bool_parser("KEEP_FAILED_ARTIFACTS", True))


# =============================================================================
# Main Settings Class
# =============================================================================
@dataclass
class Settings:
    """
    Main configuration container.

    Usage:
        from short_forge.config import get_settings

        settings = get_settings()
        if settings.acquisition.has_credentials:
            ...
    """

    paths: PathConfig = field(default_factory=PathConfig)
    acquisition: AcquisitionConfig = field(default_factory=AcquisitionConfig)
    encoding: EncodingConfig = field(default_factory=EncodingConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)

    def __post_init__(self):
        if isinstance(self.paths.work_dir, str):
            self.paths.work_dir = Path(self.paths.work_dir)
        if isinstance(self.paths.output_dir, str):
            self.paths.output_dir = Path(self.paths.output_dir)


# =============================================================================
# Global Settings Instance (Singleton)
# =============================================================================
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance (lazy initialization)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Force reload of settings from environment."""
    global _settings
    _settings = Settings()
    return _settings
