"""External post-processing steps run against a finished capture."""

from .audio_extractor import AudioExtractor
from .subtitle_extractor import SubtitleExtractor
from .tools import ExtractionError, ToolNotFoundError

__all__ = ["AudioExtractor", "SubtitleExtractor", "ExtractionError", "ToolNotFoundError"]
