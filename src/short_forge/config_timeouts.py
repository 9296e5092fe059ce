"""
Centralized Timeout Configuration - Single Source of Truth

All subprocess, HTTP, download and encoding timeouts defined here.
Supports env var overrides for different environments.

Usage:
    from short_forge.config_timeouts import TimeoutConfig

    timeout = TimeoutConfig.probe()                  # 30 seconds
    timeout = TimeoutConfig.encoding_for(42.0)       # scales with media length

Environment Variables:
    TIMEOUT_PROBE=30                   # ffprobe duration queries
    TIMEOUT_HTTP_DEFAULT=10            # Mirror API calls
    TIMEOUT_HTTP_STREAM=60             # Per-read timeout while streaming media
    TIMEOUT_DOWNLOAD=600               # Source audio extraction for transcription
    TIMEOUT_ENCODING_BASE=60           # Fixed part of an encoding budget
    TIMEOUT_ENCODING_PER_SECOND=10     # Added per second of media processed

Encoding steps are CPU/IO bound rather than network bound, so their budget
is proportional to the length of media they process instead of fixed.
"""

import os


class TimeoutConfig:
    """
    Centralized timeout configuration with environment variable support.

    All methods support env var overrides using TIMEOUT_<NAME> pattern.
    """

    # =========================================================================
    # Probing
    # =========================================================================

    @staticmethod
    def probe() -> int:
        """ffprobe duration/stream queries. Default: 30 seconds"""
        return int(os.getenv("TIMEOUT_PROBE", "30"))

    # =========================================================================
    # HTTP/Network Operations
    # =========================================================================

    @staticmethod
    def http_default() -> int:
        """
        Standard HTTP request timeout.

        Used for: mirror metadata and caption lookups
        Default: 10 seconds
        """
        return int(os.getenv("TIMEOUT_HTTP_DEFAULT", "10"))

    @staticmethod
    def http_stream() -> int:
        """Read timeout while streaming media bytes from a mirror. Default: 60 seconds"""
        return int(os.getenv("TIMEOUT_HTTP_STREAM", "60"))

    @staticmethod
    def download() -> int:
        """
        Upper bound for extracting the full source audio track.

        Used for: the transcription fallback, which re-reads the whole download
        Default: 600 seconds
        """
        return int(os.getenv("TIMEOUT_DOWNLOAD", "600"))

    # =========================================================================
    # Encoding (Local ffmpeg)
    # =========================================================================

    @staticmethod
    def encoding_base() -> int:
        return int(os.getenv("TIMEOUT_ENCODING_BASE", "60"))

    @staticmethod
    def encoding_per_second() -> float:
        return float(os.getenv("TIMEOUT_ENCODING_PER_SECOND", "10"))

    @staticmethod
    def encoding_for(media_seconds: float) -> int:
        """
        Encoding timeout proportional to the media length being processed.

        Args:
            media_seconds: Duration of the input (or output) media in seconds

        Returns:
            base + per_second * media_seconds, rounded up to whole seconds
        """
        seconds = max(0.0, float(media_seconds or 0.0))
        budget = TimeoutConfig.encoding_base() + TimeoutConfig.encoding_per_second() * seconds
        return int(budget) + (0 if budget == int(budget) else 1)

