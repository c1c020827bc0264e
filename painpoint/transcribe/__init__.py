"""Long-recording transcription: download, split, transcribe in parallel, stitch."""
