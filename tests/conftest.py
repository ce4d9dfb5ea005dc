"""
Pytest configuration and fixtures for media-analysis-service tests.

This module runs before any test imports, setting up the test environment.
Environment variables are explicitly set to ensure deterministic test behavior
regardless of external environment configuration.
"""

import os
import tempfile

# No real analysis backend, auth or rate limiting during tests
os.environ["GEMINI_API_KEY"] = ""
os.environ["API_KEYS"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"

# Pin tool and backend selection
os.environ["TRANSCRIPTION_BACKEND"] = "whisper-cli"
os.environ["MAX_VIDEO_DURATION"] = "600"

# Module-level app construction must not write into the working tree
os.environ["TEMP_DIR"] = os.path.join(tempfile.gettempdir(), "media-analysis-tests")

# Queue defaults
for name in (
    "MAX_CONCURRENT_JOBS",
    "JOB_MAX_ATTEMPTS",
    "MAX_QUEUE_SIZE",
    "JOB_RETRY_DELAY_SECONDS",
    "JOB_RETRY_BACKOFF_MULTIPLIER",
    "JOB_RETENTION_SECONDS",
    "JOB_PRUNE_INTERVAL_SECONDS",
    "TOOL_TIMEOUT",
):
    os.environ.pop(name, None)
