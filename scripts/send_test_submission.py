#!/usr/bin/env python3
"""
Dev helper: send a test contact / voice-message submission to the local
backend.

Posts either a multipart form to /upload (default) or a JSON body with a
base64 recording to /send-message. A short silent WAV is generated when no
audio file is given.

Usage
-----
# Text + generated audio, multipart, targeting localhost:8000
python scripts/send_test_submission.py

# Send a real recording
python scripts/send_test_submission.py --file recording.webm

# Text only
python scripts/send_test_submission.py --no-audio --message "Bonjour"

# JSON / base64 endpoint
python scripts/send_test_submission.py --json

# List what the backend has logged (uses ADMIN_TOKEN from .env if set)
python scripts/send_test_submission.py --list
"""

import argparse
import base64
import io
import json
import mimetypes
import os
import sys
import textwrap
import wave
from pathlib import Path

import httpx
from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Sample audio
# ---------------------------------------------------------------------------

def _make_sample_wav(seconds: float = 0.5, rate: int = 8000) -> bytes:
    """Return a mono 16-bit silent WAV file as bytes."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(b"\x00\x00" * int(seconds * rate))
    return buf.getvalue()


def _detect_content_type(filename: str) -> str:
    ext = Path(filename).suffix.lower()
    # Browser recorders label webm as video/webm
    if ext == ".webm":
        return "video/webm"
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2, ensure_ascii=False))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    # scripts/ lives one level below the project root
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_submission.py",
        description="Send a test contact / voice-message submission to the backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_submission.py
              python scripts/send_test_submission.py --file recording.webm
              python scripts/send_test_submission.py --json --name Alice
              python scripts/send_test_submission.py --list
        """),
    )
    parser.add_argument("--url", default="http://localhost:8000", help="Backend base URL")
    parser.add_argument("--name", default="Test Visitor")
    parser.add_argument("--email", default="visitor@example.com")
    parser.add_argument("--message", default="Bonjour,\nceci est un message de test.")
    parser.add_argument("--file", default=None, metavar="PATH", help="Audio file to attach")
    parser.add_argument("--no-audio", action="store_true", help="Send text fields only")
    parser.add_argument("--json", action="store_true", help="Use POST /send-message (base64 audio)")
    parser.add_argument("--list", action="store_true", help="GET /messages instead of submitting")
    args = parser.parse_args()

    base_url = args.url.rstrip("/")

    try:
        if args.list:
            headers = {}
            if os.getenv("ADMIN_TOKEN"):
                headers["X-Admin-Token"] = os.getenv("ADMIN_TOKEN")
            response = httpx.get(f"{base_url}/messages", headers=headers, timeout=30)
            _print_response(response)
            return 0 if response.status_code == 200 else 1

        audio = None
        if not args.no_audio:
            if args.file:
                path = Path(args.file)
                if not path.exists():
                    print(f"ERROR: File not found: {path}", file=sys.stderr)
                    return 1
                audio = (path.name, path.read_bytes(), _detect_content_type(path.name))
                print(f"Attaching file: {path} ({len(audio[1]):,} bytes)")
            else:
                audio = ("sample.wav", _make_sample_wav(), "audio/wav")
                print(f"No --file specified; using generated silent WAV ({len(audio[1])} bytes)")

        fields = {"name": args.name, "email": args.email, "message": args.message}

        if args.json:
            body = dict(fields)
            if audio:
                body["audio"] = base64.b64encode(audio[1]).decode()
                body["audioName"] = audio[0]
            response = httpx.post(f"{base_url}/send-message", json=body, timeout=30)
        else:
            files = {"audioFile": audio} if audio else None
            response = httpx.post(f"{base_url}/upload", data=fields, files=files, timeout=30)

        _print_response(response)
        return 0 if response.status_code == 200 else 1
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {base_url}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && uvicorn contact_intake.main:app --reload",
            file=sys.stderr,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
