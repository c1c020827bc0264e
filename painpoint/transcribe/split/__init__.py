from .core import Segment, segment_audio
from .probe import AudioInfo, probe

__all__ = ["AudioInfo", "Segment", "probe", "segment_audio"]
