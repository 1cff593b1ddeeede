"""Unit tests for block rendering."""

import xml.etree.ElementTree as ET

import pytest

from numsphere_core.flows.blocks import (
    BlockInterpreter,
    Continuation,
    NO_INPUT_MESSAGE,
    RenderContext,
    SayRenderer,
)
from numsphere_core.flows.models import Block, BlockType, CallContext
from numsphere_core.telephony.twiml import render_voice_document


@pytest.fixture
def interpreter() -> BlockInterpreter:
    return BlockInterpreter()


@pytest.fixture
def ctx() -> RenderContext:
    return RenderContext(
        call=CallContext(
            call_sid="CA_test_123",
            caller="+15557770000",
            called="+15550001111",
            callback_base_url="https://voice.example.com/webhooks/twilio",
        ),
        voice="alice",
    )


def render(interpreter, ctx, block_type, config=None, connections=()):
    block = Block.model_validate({
        "id": "blk",
        "type": block_type,
        "config": config or {},
        "connections": list(connections),
    })
    outcome = interpreter.render(block, ctx)
    root = ET.fromstring(render_voice_document(outcome.verbs))
    return outcome, list(root)


class TestInterpreterRegistry:
    """Tests for the renderer registry."""

    def test_every_block_type_has_a_renderer(self, interpreter):
        """Test the default registry covers every block type."""
        for block_type in BlockType:
            assert interpreter.renderer_for(block_type).block_type == block_type

    def test_missing_renderer_is_rejected(self):
        """Test an interpreter without a renderer for every type is rejected."""
        with pytest.raises(ValueError, match="gather"):
            BlockInterpreter([SayRenderer()])


class TestSay:
    """Tests for say blocks."""

    def test_say_with_default_rate(self, interpreter, ctx):
        """Test say renders with the default rate."""
        outcome, verbs = render(interpreter, ctx, "say", {"text": "Hello"})

        assert outcome.continuation == Continuation.NEXT
        assert verbs[0].tag == "Say"
        assert verbs[0].text == "Hello"
        assert verbs[0].get("voice") == "alice"
        assert verbs[0].get("rate") == "1"

    @pytest.mark.parametrize("speed,rate", [(5, "2"), (0.1, "0.5"), (1.25, "1.25"), ("fast", "1")])
    def test_speed_is_clamped(self, interpreter, ctx, speed, rate):
        """Test say speed is clamped to the supported range."""
        _, verbs = render(interpreter, ctx, "say", {"text": "Hello", "speed": speed})

        assert verbs[0].get("rate") == rate

    def test_missing_text_renders_nothing(self, interpreter, ctx):
        """Test say without text contributes nothing."""
        outcome, verbs = render(interpreter, ctx, "say", {})

        assert verbs == []
        assert outcome.continuation == Continuation.NEXT

    def test_reserved_characters_are_escaped(self, interpreter, ctx):
        """Test XML reserved characters in text are escaped."""
        outcome, _ = render(interpreter, ctx, "say", {"text": "<A&B>"})

        twiml = render_voice_document(outcome.verbs)

        assert "&lt;A&amp;B&gt;" in twiml
        assert "<A&B>" not in twiml

    def test_quotes_in_text_round_trip(self, interpreter, ctx):
        """Test quotes and apostrophes survive parsing unchanged."""
        text = "He said \"hi\" & it's <ok>"

        _, verbs = render(interpreter, ctx, "say", {"text": text})

        assert verbs[0].text == text


class TestPauseAndPlay:
    """Tests for pause and play blocks."""

    def test_pause_default_duration(self, interpreter, ctx):
        """Test pause default duration."""
        _, verbs = render(interpreter, ctx, "pause")

        assert verbs[0].tag == "Pause"
        assert verbs[0].get("length") == "2"

    def test_pause_invalid_duration_uses_default(self, interpreter, ctx):
        """Test an invalid pause duration falls back to the default."""
        _, verbs = render(interpreter, ctx, "pause", {"duration": "soon"})

        assert verbs[0].get("length") == "2"

    @pytest.mark.parametrize("duration,length", [(0.5, "1"), (1.5, "2"), (3, "3")])
    def test_pause_fractional_duration_rounds_up(self, interpreter, ctx, duration, length):
        """Test fractional pause durations round up to whole seconds."""
        _, verbs = render(interpreter, ctx, "pause", {"duration": duration})

        assert verbs[0].get("length") == length

    def test_play(self, interpreter, ctx):
        """Test play block."""
        _, verbs = render(interpreter, ctx, "play", {"url": "https://cdn.example.com/a.mp3"})

        assert verbs[0].tag == "Play"
        assert verbs[0].text == "https://cdn.example.com/a.mp3"

    def test_play_without_url(self, interpreter, ctx):
        """Test play without a URL contributes nothing."""
        _, verbs = render(interpreter, ctx, "play")

        assert verbs == []


class TestGather:
    """Tests for gather blocks."""

    def test_gather_markup(self, interpreter, ctx):
        """Test gather markup and callback URL."""
        outcome, verbs = render(interpreter, ctx, "gather", {"prompt": "Press 1."}, connections=["next"])

        assert outcome.continuation == Continuation.AWAIT_INPUT
        assert [v.tag for v in verbs] == ["Gather", "Say", "Hangup"]

        gather = verbs[0]
        assert gather.get("input") == "dtmf"
        assert gather.get("numDigits") == "1"
        assert gather.get("timeout") == "10"
        assert gather.get("method") == "POST"
        assert gather.get("action") == "https://voice.example.com/webhooks/twilio/gather?blockId=blk"
        assert gather.find("Say").text == "Press 1."
        assert verbs[1].text == NO_INPUT_MESSAGE

    def test_gather_without_prompt_still_halts(self, interpreter, ctx):
        """Test gather halts even without a prompt."""
        outcome, verbs = render(interpreter, ctx, "gather", {}, connections=["next"])

        assert verbs == []
        assert outcome.continuation == Continuation.AWAIT_INPUT


class TestForward:
    """Tests for forward blocks."""

    def test_forward_defaults(self, interpreter, ctx):
        """Test forward with default timeout and status callback."""
        _, verbs = render(interpreter, ctx, "forward", {"number": "+15559990000"})

        dial = verbs[0]
        assert dial.tag == "Dial"
        assert dial.get("timeout") == "30"

        number = dial.find("Number")
        assert number.text == "+15559990000"
        assert number.get("statusCallback") == "https://voice.example.com/webhooks/twilio/status?callSid=CA_test_123"

    def test_forward_with_hold_music(self, interpreter, ctx):
        """Test hold music is played ahead of the number."""
        _, verbs = render(
            interpreter,
            ctx,
            "forward",
            {"number": "+15559990000", "timeout": 15, "holdMusicUrl": "https://cdn.example.com/hold.mp3"},
        )

        dial = verbs[0]
        assert dial.get("timeout") == "15"
        assert [child.tag for child in dial] == ["Play", "Number"]
        assert dial.find("Play").get("loop") == "10"

    def test_forward_without_number(self, interpreter, ctx):
        """Test forward without a number contributes nothing."""
        _, verbs = render(interpreter, ctx, "forward", {"timeout": 10})

        assert verbs == []


class TestRecordAndSms:
    """Tests for record and sms blocks."""

    def test_record_defaults(self, interpreter, ctx):
        """Test record defaults."""
        _, verbs = render(interpreter, ctx, "record")

        record = verbs[0]
        assert record.tag == "Record"
        assert record.get("maxLength") == "300"
        assert record.get("finishOnKey") == "#"
        assert record.get("transcribe") == "true"

    def test_record_with_prompt(self, interpreter, ctx):
        """Test record speaks its prompt first."""
        _, verbs = render(interpreter, ctx, "record", {"prompt": "Leave a message.", "maxLength": 60})

        assert [v.tag for v in verbs] == ["Say", "Record"]
        assert verbs[1].get("maxLength") == "60"

    def test_sms_defaults_to_caller(self, interpreter, ctx):
        """Test SMS is sent to the caller by default."""
        _, verbs = render(interpreter, ctx, "sms", {"message": "Thanks for calling"})

        assert verbs[0].tag == "Sms"
        assert verbs[0].get("to") == "+15557770000"
        assert verbs[0].text == "Thanks for calling"

    def test_sms_explicit_recipient(self, interpreter, ctx):
        """Test SMS with an explicit recipient."""
        _, verbs = render(interpreter, ctx, "sms", {"message": "Hi", "to": "+15551112222"})

        assert verbs[0].get("to") == "+15551112222"


class TestHangup:
    """Tests for hangup blocks."""

    def test_hangup_always_stops(self, interpreter, ctx):
        """Test hangup always stops traversal."""
        outcome, verbs = render(interpreter, ctx, "hangup", connections=["more"])

        assert outcome.continuation == Continuation.STOP
        assert [v.tag for v in verbs] == ["Hangup"]


class TestMultiForward:
    """Tests for multi-forward blocks."""

    def test_simultaneous_from_comma_string(self, interpreter, ctx):
        """Test multi-forward numbers given as a comma string."""
        _, verbs = render(interpreter, ctx, "multi_forward", {"numbers": "+15550000001, +15550000002"})

        assert [v.tag for v in verbs] == ["Say", "Dial"]
        assert [n.text for n in verbs[1].findall("Number")] == ["+15550000001", "+15550000002"]

    def test_no_numbers(self, interpreter, ctx):
        """Test multi-forward without numbers contributes nothing."""
        _, verbs = render(interpreter, ctx, "multi_forward", {"numbers": []})

        assert verbs == []
