"""Reviewer edits applied on top of machine transcripts."""

from __future__ import annotations

from collections.abc import Sequence

from app.schemas.job import Transcript, TranscriptSegment


def join_segment_text(segments: Sequence[TranscriptSegment]) -> str:
    return " ".join(segment.text for segment in segments)


def normalize_transcript(transcript: Transcript) -> Transcript:
    """Fill in the concatenated text when the backend left it empty."""
    if transcript.text:
        return transcript
    return transcript.model_copy(update={"text": join_segment_text(transcript.segments)})


def merge_edited_segments(
    original: Transcript,
    edited_segments: Sequence[TranscriptSegment],
) -> Transcript:
    """Build the edited transcript; the original is returned untouched.

    Each original segment is replaced by the edited segment with the same id,
    otherwise kept as-is. Edited ids that do not exist in the original are ignored.
    """
    edits_by_id = {segment.id: segment for segment in edited_segments}
    merged = [
        edits_by_id[segment.id].model_copy(deep=True) if segment.id in edits_by_id else segment.model_copy(deep=True)
        for segment in original.segments
    ]
    return Transcript(
        duration=original.duration,
        language=original.language,
        text=join_segment_text(merged),
        segments=merged,
    )


def unknown_segment_ids(original: Transcript, edited_segments: Sequence[TranscriptSegment]) -> list[int]:
    known = {segment.id for segment in original.segments}
    return sorted({segment.id for segment in edited_segments if segment.id not in known})
