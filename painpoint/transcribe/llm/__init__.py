from .transcribe_segments import OpenAITranscriber, SegmentResult, transcribe_segments

__all__ = ["OpenAITranscriber", "SegmentResult", "transcribe_segments"]
