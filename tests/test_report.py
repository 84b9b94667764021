from dataclasses import replace
from datetime import datetime

from domain.models import AccentAnnotation, Result, SpeakerShare, Transcript
from report import render_report, report_filename

RESULT = Result(
    transcript=Transcript(),
    full_text="[00:00] Speaker 1: Good morning.\n\n[00:15] Speaker 2: Thanks.",
    summary="Meeting Summary:\n\n• Good morning.",
    highlights=("Revenue up", "Retention at 94%"),
    speakers=(SpeakerShare("Speaker 1", 55.0), SpeakerShare("Speaker 2", 44.9)),
    accent=AccentAnnotation("en", 0.97, "Detected language: English. Confidence: 97%"),
)


def test_report_layout():
    text = render_report(RESULT, "meeting.wav", generated=datetime(2024, 5, 1, 9, 30, 0))

    assert text.startswith(
        "WHISPERLENS TRANSCRIPTION REPORT\nGenerated: 2024-05-01 09:30:00\nFile: meeting.wav\n\n"
    )
    rule = "=" * 40
    for title in ("FULL TRANSCRIPT", "CLEAN SUMMARY", "SPEAKERS DETECTED", "KEY HIGHLIGHTS", "ACCENT ANALYSIS"):
        assert f"{rule}\n{title}\n{rule}\n" in text
    assert "Speaker 1: 55%\nSpeaker 2: 44.9%" in text
    assert "• Revenue up\n• Retention at 94%" in text
    assert text.endswith("Detected language: English. Confidence: 97%")


def test_report_filename_uses_epoch_millis():
    generated = datetime(2024, 5, 1, 9, 30, 0)

    assert report_filename(generated) == f"WhisperLens-{int(generated.timestamp() * 1000)}.txt"


def test_speaker_lines_carry_detected_accent():
    result = replace(RESULT, speakers=(SpeakerShare("Speaker 1", 100.0, accent="Hindi"),))

    text = render_report(result, "meeting.wav")

    assert "Speaker 1 (Detected accent: Hindi): 100%" in text
