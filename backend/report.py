"""Plain-text export of a finished job, in the WhisperLens report layout."""

from datetime import datetime
from typing import Optional

from domain.models import Result, SpeakerShare

RULE = "=" * 40


def _section(title: str, body: str) -> str:
    return f"{RULE}\n{title}\n{RULE}\n{body}"


def _speaker_name(share: SpeakerShare) -> str:
    if share.accent:
        return f"{share.label} (Detected accent: {share.accent})"
    return share.label


def render_report(result: Result, filename: str, generated: Optional[datetime] = None) -> str:
    """Concatenate every result field into the downloadable report."""
    generated = generated or datetime.now()
    speakers = "\n".join(f"{_speaker_name(s)}: {s.percentage:g}%" for s in result.speakers)
    highlights = "\n".join(f"• {h}" for h in result.highlights)

    header = (
        "WHISPERLENS TRANSCRIPTION REPORT\n"
        f"Generated: {generated.strftime('%Y-%m-%d %H:%M:%S')}\n"
        f"File: {filename}"
    )
    return "\n\n".join([
        header,
        _section("FULL TRANSCRIPT", result.full_text),
        _section("CLEAN SUMMARY", result.summary),
        _section("SPEAKERS DETECTED", speakers),
        _section("KEY HIGHLIGHTS", highlights),
        _section("ACCENT ANALYSIS", result.accent.description),
    ])


def report_filename(generated: Optional[datetime] = None) -> str:
    generated = generated or datetime.now()
    return f"WhisperLens-{int(generated.timestamp() * 1000)}.txt"
