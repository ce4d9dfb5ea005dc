import os

from dotenv import load_dotenv

# Placeholder values shipped in example .env files; treated as "not configured"
_PLACEHOLDER_API_KEYS = {"", "your_api_key_here", "your-gemini-api-key-here"}


class Config:
    def __init__(self, env_file=None):
        """
        Initialize configuration by loading environment variables and setting default attributes.

        Loads environment variables from the provided .env file path when `env_file` is given; otherwise loads from the default environment. After loading, sets configuration attributes (workspace paths, external tool locations, transcription and analysis backends, webhook delivery, web service settings) using environment values with sensible defaults.
        Parameters:
            env_file (str | None): Optional path to a .env file to load environment variables from. If omitted, the default environment or default .env discovery is used.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        # Per-session scratch space (downloads, audio, transcripts)
        self.TEMP_DIR = os.getenv("TEMP_DIR", "./temp")

        # Media longer than this (seconds) is rejected before download
        self.MAX_VIDEO_DURATION = int(os.getenv("MAX_VIDEO_DURATION", "600"))

        # External tools
        self.YTDLP_PATH = os.getenv("YTDLP_PATH", "yt-dlp")
        self.YTDLP_FORMAT = os.getenv("YTDLP_FORMAT", "best[height<=720]/best")
        self.FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
        self.WHISPER_PATH = os.getenv("WHISPER_PATH", "whisper")
        self.METADATA_TIMEOUT = int(os.getenv("METADATA_TIMEOUT", "30"))
        # No timeout by default: a stuck tool keeps its slot until it exits
        tool_timeout = os.getenv("TOOL_TIMEOUT", "")
        self.TOOL_TIMEOUT = int(tool_timeout) if tool_timeout else None

        # Transcription configuration
        # Backends: "whisper-cli" (openai-whisper executable) or "faster-whisper" (in-process)
        self.TRANSCRIPTION_BACKEND = os.getenv("TRANSCRIPTION_BACKEND", "whisper-cli")
        if self.TRANSCRIPTION_BACKEND not in ("whisper-cli", "faster-whisper"):
            raise ValueError(
                f"TRANSCRIPTION_BACKEND must be 'whisper-cli' or 'faster-whisper', "
                f"got: {self.TRANSCRIPTION_BACKEND}"
            )
        # Model options: tiny, base, small, medium, large-v3
        self.WHISPER_MODEL = os.getenv("WHISPER_MODEL", "base")
        self.WHISPER_LANGUAGE = os.getenv("WHISPER_LANGUAGE", "auto")
        self.WHISPER_DEVICE = os.getenv("WHISPER_DEVICE", "cpu")
        # Compute type: float16 (GPU), int8 (CPU), float32
        self.WHISPER_COMPUTE_TYPE = os.getenv("WHISPER_COMPUTE_TYPE", "int8")

        # Analysis model configuration
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        self.ANALYSIS_MAX_TRANSCRIPT_CHARS = int(
            os.getenv("ANALYSIS_MAX_TRANSCRIPT_CHARS", "3000")
        )

        # Prompts configuration
        base_dir = os.path.dirname(__file__)
        default_prompts_dir = os.path.join(base_dir, "../prompts")
        self.PROMPTS_DIR = os.getenv("PROMPTS_DIR", default_prompts_dir)

        # Webhook delivery
        self.WEBHOOK_TIMEOUT = float(os.getenv("WEBHOOK_TIMEOUT", "10"))
        self.WEBHOOK_USER_AGENT = os.getenv("WEBHOOK_USER_AGENT", "media-analysis-service/1.0")

        # Web application configuration
        self.WEB_ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*")
        self.WEB_RATE_LIMIT = os.getenv("RATE_LIMIT", "30/minute")
        self.WEB_RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
        self.WEB_PORT = int(os.getenv("PORT", "8080"))
        self.WEB_HOST = os.getenv("HOST", "0.0.0.0")

        # API keys accepted in the X-API-Key header; empty disables the check
        self.API_KEYS = [
            key.strip() for key in os.getenv("API_KEYS", "").split(",") if key.strip()
        ]

        # Upstream result cache
        self.RESULT_CACHE_TTL = int(os.getenv("RESULT_CACHE_TTL", "3600"))

    @property
    def analysis_configured(self) -> bool:
        """Whether a usable analysis API key is present."""
        return self.GEMINI_API_KEY.strip() not in _PLACEHOLDER_API_KEYS

    def tool_paths(self) -> dict:
        """External executables keyed by tool name."""
        tools = {
            "ytdlp": self.YTDLP_PATH,
            "ffmpeg": self.FFMPEG_PATH,
        }
        if self.TRANSCRIPTION_BACKEND == "whisper-cli":
            tools["whisper"] = self.WHISPER_PATH
        return tools
