"""
Command-Line Interface for speech-studio.

Runs the same pipeline as the HTTP API without a server: the artifact is
stored under ``{storage.base_dir}/{user}/{timestamp}/`` exactly as an API
request would store it, and optionally copied to ``--out``.

Usage Examples:
    # Synthesize text
    speech-studio --text "Hello there." --out hello.mp3

    # Positional text, render a video too
    speech-studio "Hello there." --video --out hello.mp4

    # Read a long text from a file
    speech-studio --file chapter1.txt --user alice

    # Dry-run: show how the text would be chunked, no API calls
    speech-studio --file chapter1.txt --dry-run --json --max-graphemes 500

Environment Variables:
    OPENAI_API_KEY: Upstream API key
    SPEECH_STUDIO_SETTINGS: Settings file (default config/settings.yaml)
    SPEECH_STUDIO_USER: Default user id (default "cli")
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from speech_studio.core.config import ConfigValidationError, Settings, load_settings
from speech_studio.core.logging import configure_logging, get_logger, info, set_request_id
from speech_studio.services.speech_service import ServiceError, SpeechService
from speech_studio.tts.chunker import count_graphemes


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="speech-studio CLI (serverless synth)")

    # Input options
    parser.add_argument("text_pos", nargs="?", help="Text to synthesize (positional)")
    parser.add_argument("--text", help="Text to synthesize")
    parser.add_argument("--file", help="Read the text to synthesize from a file")

    # Output options
    parser.add_argument("--out", help="Also copy the artifact to this path")
    parser.add_argument("--user", help="User id owning the artifact")
    parser.add_argument("--settings", help="Settings file path")

    # Synthesis overrides
    parser.add_argument("--voice", help="Voice override")
    parser.add_argument("--max-graphemes", type=int, help="Chunk size override")

    # Execution modes
    parser.add_argument("--video", action="store_true", help="Render an MP4 as well")
    parser.add_argument("--dry-run", action="store_true",
                        help="Validate and chunk only, no synthesis")
    parser.add_argument("--json", action="store_true",
                        help="Print results as JSON")

    return parser.parse_args(argv)


def _load_text(args: argparse.Namespace) -> str:
    """
    Raises:
        SystemExit: If no input is given or options conflict.
    """
    text = args.text or args.text_pos

    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        return Path(args.file).read_text(encoding="utf-8")

    if not text:
        raise SystemExit("Provide --text, a positional text or --file.")
    return text


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.max_graphemes is None:
        return settings
    raw = dict(settings.raw)
    raw["chunking"] = {**(raw.get("chunking") or {}), "max_graphemes": args.max_graphemes}
    return Settings(raw=raw)


def _emit(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        0 on success, 1 on a service or input error, 2 on bad configuration.
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("speech-studio.cli")
    rid = str(uuid4())[:12]
    set_request_id(rid)

    settings_path = args.settings or os.getenv("SPEECH_STUDIO_SETTINGS", "config/settings.yaml")
    try:
        settings = _apply_overrides(load_settings(settings_path), args)
        service = SpeechService(settings)
    except (FileNotFoundError, ConfigValidationError) as e:
        _emit({"ok": False, "error": "CONFIGURATION_ERROR", "message": str(e)}, args.json)
        return 2

    try:
        text = _load_text(args)
    except (OSError, UnicodeDecodeError) as e:
        _emit({"ok": False, "error": "INVALID_INPUT", "message": f"Cannot read --file: {e}"}, args.json)
        return 1

    user_id = args.user or os.getenv("SPEECH_STUDIO_USER", "cli")

    try:
        if args.dry_run:
            chunks = service.preview_chunks(text)
            payload = {
                "ok": True,
                "dry_run": True,
                "chars": len(text),
                "chunks": len(chunks),
                "graphemes": [count_graphemes(c.text) for c in chunks],
            }
            info(log, "dry_run", chunks=len(chunks))
            _emit(payload, args.json)
            print("DRY_RUN_OK")
            return 0

        result = service.synthesize_audio(user_id, text, request_id=rid, voice=args.voice)
        payload = {
            "ok": True,
            "dry_run": False,
            "user": result.user_id,
            "dir_name": result.dir_name,
            "chunks": result.chunks,
            "audio": result.file_path,
            "bytes": len(result.audio_bytes),
        }
        data = result.audio_bytes

        if args.video:
            video = service.get_video(result.user_id, result.dir_name)
            payload["video"] = video.file_path
            payload["video_bytes"] = len(video.data)
            data = video.data

    except ServiceError as e:
        _emit(e.to_dict(), args.json)
        return 1

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(data)
        payload["out"] = str(out_path)

    _emit(payload, args.json)
    print("CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
