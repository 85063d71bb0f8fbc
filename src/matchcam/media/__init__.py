"""Media processing: clip extraction and frame sampling."""

from matchcam.media.ffmpeg import FFmpegRunner
from matchcam.media.clips import ClipPipeline, ExtractedClip, prioritize
from matchcam.media.frames import FrameExtractor, FrameSample

__all__ = [
    "FFmpegRunner",
    "ClipPipeline",
    "ExtractedClip",
    "prioritize",
    "FrameExtractor",
    "FrameSample",
]
