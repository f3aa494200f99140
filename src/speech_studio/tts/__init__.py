"""
Speech Pipeline Components.

    - chunker.py: Grapheme-safe text splitting
    - client.py: Upstream TTS API client with one retry
    - dispatcher.py: Parallel per-chunk synthesis with ordered join
    - merger.py: Byte-level audio concatenation
    - storage.py: Artifact stores, request timestamps and listing
    - video.py: ffmpeg-backed static-image video rendering
"""
