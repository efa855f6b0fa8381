from coaching_assistant.dialogue import DialogueBuffer
from coaching_assistant.models import Speaker, TranscriptFragment

import pytest


class _Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _frag(text: str, speaker: Speaker, at: float) -> TranscriptFragment:
    return TranscriptFragment(text=text, speaker=speaker, captured_at=at)


def test_recent_merges_speakers_by_capture_time():
    clock = _Clock()
    buf = DialogueBuffer(retention_horizon=300, clock=clock)
    buf.append(_frag("first", Speaker.A, 990))
    buf.append(_frag("third", Speaker.A, 998))
    buf.append(_frag("second", Speaker.B, 995))

    assert [f.text for f in buf.recent(10)] == ["first", "second", "third"]
    assert [f.text for f in buf.recent(2)] == ["second", "third"]
    assert buf.recent(0) == []


def test_expired_fragments_are_never_returned():
    clock = _Clock()
    buf = DialogueBuffer(retention_horizon=60, clock=clock)
    buf.append(_frag("old", Speaker.A, 950))
    buf.append(_frag("fresh", Speaker.B, 990))

    clock.now = 1015  # "old" is now 65s old
    assert [f.text for f in buf.recent(5)] == ["fresh"]
    assert len(buf) == 1

    clock.now = 2000
    assert buf.recent(5) == []
    assert buf.window() == []


def test_out_of_order_arrival_across_speakers_still_respects_horizon():
    clock = _Clock()
    buf = DialogueBuffer(retention_horizon=60, clock=clock)
    buf.append(_frag("b-new", Speaker.B, 995))
    buf.append(_frag("a-stale", Speaker.A, 930))

    assert [f.text for f in buf.recent(5)] == ["b-new"]


def test_clear_only_drops_one_speaker():
    clock = _Clock()
    buf = DialogueBuffer(clock=clock)
    buf.append(_frag("coach", Speaker.A, 999))
    buf.append(_frag("coachee", Speaker.B, 999.5))

    buf.clear(Speaker.A)

    assert buf.speaker_view(Speaker.A) == []
    assert [f.text for f in buf.speaker_view(Speaker.B)] == ["coachee"]


def test_fragments_must_come_from_a_dialogue_speaker():
    with pytest.raises(ValueError):
        TranscriptFragment(text="hi", speaker=Speaker.COMBINED)
