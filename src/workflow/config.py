"""Configuration for the job queue and pipeline orchestrator.

Provides environment-based configuration for concurrency, retry policy,
admission limits and stage progress bands.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _get_int_env(
    name: str,
    default: int,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """Parse an integer from an environment variable with validation.

    Args:
        name: Environment variable name.
        default: Default value if env var is not set.
        min_val: Minimum allowed value (inclusive), or None for no minimum.
        max_val: Maximum allowed value (inclusive), or None for no maximum.

    Returns:
        The parsed and validated integer value.

    Raises:
        ValueError: If the value cannot be parsed as an integer or is out of range.
    """
    raw = os.getenv(name)
    if raw is None:
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid value for {name}: '{raw}' is not a valid integer"
        )

    if min_val is not None and value < min_val:
        raise ValueError(
            f"Invalid value for {name}: {value} must be >= {min_val}"
        )

    if max_val is not None and value > max_val:
        raise ValueError(
            f"Invalid value for {name}: {value} must be <= {max_val}"
        )

    return value


def _get_float_env(name: str, default: float, min_val: Optional[float] = None) -> float:
    """Parse a float from an environment variable with validation.

    Raises:
        ValueError: If the value cannot be parsed as a float or is below min_val.
    """
    raw = os.getenv(name)
    if raw is None:
        return default

    try:
        value = float(raw)
    except ValueError:
        raise ValueError(
            f"Invalid value for {name}: '{raw}' is not a valid number"
        )

    if min_val is not None and value < min_val:
        raise ValueError(
            f"Invalid value for {name}: {value} must be >= {min_val}"
        )

    return value


@dataclass
class QueueConfig:
    """Configuration for the job queue dispatcher.

    All settings can be overridden via environment variables.
    """

    concurrency_limit: int = 4  # Max jobs holding status=active at once
    max_attempts: int = 3  # Failed attempts before a job is terminally failed
    max_queue_size: int = 100  # waiting + active admission cap

    # Retry delay before a failed job re-enters the waiting list.
    # 0 requeues immediately.
    retry_delay_seconds: float = 0.0
    retry_backoff_multiplier: float = 1.0

    # Completed/failed records older than this are pruned
    retention_seconds: int = 86400  # 24 hours
    prune_interval_seconds: int = 3600

    def retry_delay_for(self, attempts: int) -> float:
        """Delay before requeueing a job that has failed `attempts` times."""
        if self.retry_delay_seconds <= 0:
            return 0.0
        exponent = max(attempts - 1, 0)
        return self.retry_delay_seconds * (self.retry_backoff_multiplier ** exponent)

    @classmethod
    def from_env(cls) -> "QueueConfig":
        """Create configuration from environment variables.

        Returns:
            QueueConfig instance with values from environment or defaults.

        Raises:
            ValueError: If any environment variable has an invalid value.
        """
        concurrency_limit = _get_int_env("MAX_CONCURRENT_JOBS", 4, min_val=1)
        max_attempts = _get_int_env("JOB_MAX_ATTEMPTS", 3, min_val=1)
        max_queue_size = _get_int_env("MAX_QUEUE_SIZE", 100, min_val=1)
        retry_delay_seconds = _get_float_env(
            "JOB_RETRY_DELAY_SECONDS", 0.0, min_val=0.0
        )
        retry_backoff_multiplier = _get_float_env(
            "JOB_RETRY_BACKOFF_MULTIPLIER", 1.0, min_val=1.0
        )
        retention_seconds = _get_int_env("JOB_RETENTION_SECONDS", 86400, min_val=0)
        prune_interval_seconds = _get_int_env(
            "JOB_PRUNE_INTERVAL_SECONDS", 3600, min_val=1
        )

        # Cross-field validation
        if max_queue_size < concurrency_limit:
            raise ValueError(
                f"Invalid configuration: MAX_QUEUE_SIZE ({max_queue_size}) "
                f"must be >= MAX_CONCURRENT_JOBS ({concurrency_limit})"
            )

        return cls(
            concurrency_limit=concurrency_limit,
            max_attempts=max_attempts,
            max_queue_size=max_queue_size,
            retry_delay_seconds=retry_delay_seconds,
            retry_backoff_multiplier=retry_backoff_multiplier,
            retention_seconds=retention_seconds,
            prune_interval_seconds=prune_interval_seconds,
        )


@dataclass(frozen=True)
class StageBand:
    """Progress range [start, end] owned by one pipeline stage."""

    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start <= self.end <= 100:
            raise ValueError(f"Invalid progress band: {self.start}-{self.end}")

    def interpolate(self, fraction: float) -> int:
        """Map a completion fraction in [0, 1] into this band."""
        fraction = min(max(fraction, 0.0), 1.0)
        return round(self.start + (self.end - self.start) * fraction)


@dataclass(frozen=True)
class ProgressBands:
    """Progress bands for each stage, in pipeline order."""

    metadata: StageBand = StageBand(5, 15)
    download: StageBand = StageBand(15, 40)
    audio: StageBand = StageBand(40, 50)
    transcription: StageBand = StageBand(50, 70)
    analysis: StageBand = StageBand(70, 90)
    assembly: StageBand = StageBand(90, 95)
    webhook: StageBand = StageBand(95, 100)


@dataclass
class PipelineConfig:
    """Configuration for the per-job pipeline orchestrator."""

    temp_dir: str = "./temp"
    max_video_duration: int = 600  # seconds
    bands: ProgressBands = field(default_factory=ProgressBands)

    @classmethod
    def from_config(cls, config) -> "PipelineConfig":
        """Build from the application Config."""
        return cls(
            temp_dir=config.TEMP_DIR,
            max_video_duration=config.MAX_VIDEO_DURATION,
        )
