from domain.models import DiarizationResult, DiarizationSegment, TranscriptSegment
from ports.diarization import DiarizationPort


class StaticDiarization(DiarizationPort):
    def load(self, **kwargs) -> None:
        pass

    def diarize(self, audio_path, num_speakers=None, min_speakers=None, max_speakers=None):
        return DiarizationResult()

    def is_loaded(self) -> bool:
        return True


def test_assign_speaker_by_largest_overlap():
    turns = DiarizationResult(
        segments=[DiarizationSegment(0.0, 1.0, "SPEAKER_01"), DiarizationSegment(1.0, 4.0, "SPEAKER_00")],
        num_speakers=2,
    )
    segments = [TranscriptSegment(0.0, 4.0, "hello")]

    merged = StaticDiarization().merge_with_transcription(turns, segments)

    assert merged[0].speaker == "SPEAKER_00"
    assert segments[0].speaker is None


def test_unattributed_segment_is_unknown():
    turns = DiarizationResult(segments=[DiarizationSegment(0.0, 1.0, "SPEAKER_00")], num_speakers=1)

    merged = StaticDiarization().merge_with_transcription(turns, [TranscriptSegment(5.0, 6.0, "silence")])

    assert merged[0].speaker == "unknown"


def test_no_turns_leaves_segments_untouched():
    segments = [TranscriptSegment(0.0, 1.0, "hi")]

    assert StaticDiarization().merge_with_transcription(DiarizationResult(), segments) is segments
