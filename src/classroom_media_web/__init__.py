"""HTTP boundary for classroom video uploads and playback."""
