"""Data classes for media metadata and transcripts."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class MediaMetadata:
    """Metadata for a remote media item, as reported by the platform adapter."""

    id: str
    title: str
    duration: float = 0  # seconds
    creator: str = "Unknown"
    description: str = ""
    upload_date: Optional[str] = None  # YYYYMMDD
    view_count: int = 0
    like_count: int = 0
    thumbnail: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    format: str = "unknown"
    resolution: str = "0x0"
    fps: float = 0
    original_url: str = ""

    @classmethod
    def from_ytdlp_info(cls, info: Dict[str, Any], url: str) -> "MediaMetadata":
        """Build from a `yt-dlp --dump-json` document."""
        return cls(
            id=str(info.get("id") or ""),
            title=info.get("title") or "Unknown Title",
            duration=info.get("duration") or 0,
            creator=info.get("uploader") or info.get("channel") or "Unknown",
            description=info.get("description") or "",
            upload_date=info.get("upload_date"),
            view_count=info.get("view_count") or 0,
            like_count=info.get("like_count") or 0,
            thumbnail=info.get("thumbnail"),
            tags=list(info.get("tags") or []),
            categories=list(info.get("categories") or []),
            format=info.get("format") or "unknown",
            resolution=f"{info.get('width') or 0}x{info.get('height') or 0}",
            fps=info.get("fps") or 0,
            original_url=url,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.original_url,
            "title": self.title,
            "duration": self.duration,
            "creator": self.creator,
            "uploadDate": self.upload_date,
            "viewCount": self.view_count,
            "likeCount": self.like_count,
            "description": self.description,
            "thumbnail": self.thumbnail,
            "tags": self.tags,
            "categories": self.categories,
            "format": self.format,
            "resolution": self.resolution,
            "fps": self.fps,
        }


@dataclass
class TranscriptSegment:
    """A timed span of transcribed speech."""

    start: float
    end: float
    text: str
    avg_logprob: Optional[float] = None


@dataclass
class Transcript:
    """Transcription output: full text plus optional segment timing."""

    text: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    language: str = "unknown"

    @property
    def duration(self) -> float:
        """End of the last segment, in seconds."""
        if not self.segments:
            return 0.0
        return max(segment.end for segment in self.segments)

    @property
    def confidence(self) -> float:
        """Mean segment log-probability (0 when unavailable)."""
        if not self.segments:
            return 0.0
        return sum(s.avg_logprob or 0.0 for s in self.segments) / len(self.segments)

    @classmethod
    def from_whisper_json(cls, data: Dict[str, Any]) -> "Transcript":
        """Build from whisper's `--output_format json` document."""
        segments = [
            TranscriptSegment(
                start=float(segment.get("start", 0)),
                end=float(segment.get("end", 0)),
                text=(segment.get("text") or "").strip(),
                avg_logprob=segment.get("avg_logprob"),
            )
            for segment in data.get("segments") or []
        ]
        return cls(
            text=(data.get("text") or "").strip(),
            segments=segments,
            language=data.get("language") or "unknown",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "segments": [asdict(segment) for segment in self.segments],
            "language": self.language,
            "duration": self.duration,
            "confidence": self.confidence,
        }
