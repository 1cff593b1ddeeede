"""Unit tests for the response envelope."""

from unittest.mock import MagicMock

import pytest

from numsphere_core.flows.compiler import FlowCompiler, StopReason
from numsphere_core.flows.envelope import Fallback, FlowResponseBuilder
from numsphere_core.flows.models import FlowFormat
from numsphere_core.telephony.twiml import (
    CONFIGURATION_ERROR_MESSAGE,
    DEFAULT_GREETING,
    DEFAULT_GREETING_FOLLOWUP,
    TECHNICAL_DIFFICULTIES_MESSAGE,
)


@pytest.fixture
def builder() -> FlowResponseBuilder:
    return FlowResponseBuilder()


def says(root):
    return [say.text for say in root.findall("Say")]


class TestFallbacks:
    """Tests for the fixed documents."""

    def test_no_flow_gets_default_greeting(self, builder, call_context, parse_twiml):
        """Test a missing flow gets the default greeting."""
        rendered = builder.build_with_details(None, call_context)

        root = parse_twiml(rendered.twiml)
        assert rendered.fallback == Fallback.DEFAULT_GREETING
        assert says(root) == [DEFAULT_GREETING, DEFAULT_GREETING_FOLLOWUP]
        assert [v.tag for v in root] == ["Say", "Pause", "Say", "Hangup"]
        assert root.find("Pause").get("length") == "1"

    def test_empty_blocks_get_default_greeting(self, builder, call_context, parse_twiml):
        """Test an empty block list gets the default greeting."""
        rendered = builder.build_with_details({"blocks": []}, call_context)

        assert rendered.fallback == Fallback.DEFAULT_GREETING
        assert says(parse_twiml(rendered.twiml))[0] == DEFAULT_GREETING

    def test_blocks_without_config_get_default_greeting(self, builder, call_context, parse_twiml):
        """Test a flow that renders nothing gets the default greeting."""
        flow = {"blocks": [{"id": "a", "type": "say", "config": {}}]}

        rendered = builder.build_with_details(flow, call_context)

        assert rendered.fallback == Fallback.DEFAULT_GREETING
        assert rendered.visited == ["a"]

    def test_malformed_json_gets_configuration_error(self, builder, call_context, parse_twiml):
        """Test malformed JSON gets the configuration error document."""
        twiml = builder.build("{not json", call_context)

        root = parse_twiml(twiml)
        assert says(root) == [CONFIGURATION_ERROR_MESSAGE]
        assert list(root)[-1].tag == "Hangup"

    def test_unknown_block_type_gets_configuration_error(self, builder, call_context):
        """Test an unknown block type gets the configuration error document."""
        rendered = builder.build_with_details({"blocks": [{"id": "a", "type": "warp"}]}, call_context)

        assert rendered.fallback == Fallback.CONFIGURATION_ERROR

    def test_null_connection_is_not_a_configuration_error(self, builder, call_context, parse_twiml):
        """Test a null connection entry still renders the flow."""
        flow = {"blocks": [{"id": "a", "type": "say", "config": {"text": "hi"}, "connections": [None]}]}

        rendered = builder.build_with_details(flow, call_context)

        assert rendered.fallback == Fallback.NONE
        assert rendered.stopped_by == StopReason.DANGLING_CONNECTION
        assert says(parse_twiml(rendered.twiml)) == ["hi"]

    def test_unexpected_error_gets_technical_difficulties(self, call_context, parse_twiml):
        """Test unexpected errors get the technical difficulties document."""
        compiler = MagicMock(spec=FlowCompiler)
        compiler.compile.side_effect = RuntimeError("boom")
        builder = FlowResponseBuilder(compiler)

        rendered = builder.build_with_details(
            {"blocks": [{"id": "a", "type": "say", "config": {"text": "hi"}}]},
            call_context,
        )

        assert rendered.fallback == Fallback.TECHNICAL_DIFFICULTIES
        assert says(parse_twiml(rendered.twiml)) == [TECHNICAL_DIFFICULTIES_MESSAGE]


class TestCompiledDocuments:
    """Tests for compiled flows."""

    def test_graph_flow(self, builder, call_context, menu_flow, parse_twiml):
        """Test building a graph flow."""
        rendered = builder.build_with_details(menu_flow, call_context)

        root = parse_twiml(rendered.twiml)
        assert rendered.flow_format == FlowFormat.GRAPH
        assert rendered.visited == ["welcome", "menu"]
        assert rendered.stopped_by == StopReason.AWAITING_INPUT
        assert [v.tag for v in root] == ["Say", "Gather", "Say", "Hangup"]

    def test_legacy_flow(self, builder, call_context, parse_twiml):
        """Test building a legacy flow."""
        rendered = builder.build_with_details({"greeting": "Hello there"}, call_context)

        assert rendered.flow_format == FlowFormat.LEGACY
        assert says(parse_twiml(rendered.twiml)) == ["Hello there"]

    def test_flow_voice_is_used(self, builder, call_context, parse_twiml):
        """Test the flow voice is used."""
        flow = {"voice": "Polly.Amy", "blocks": [{"id": "a", "type": "say", "config": {"text": "hi"}}]}

        root = parse_twiml(builder.build(flow, call_context))

        assert root.find("Say").get("voice") == "Polly.Amy"

    def test_document_has_xml_declaration(self, builder, call_context, menu_flow):
        """Test the document starts with an XML declaration."""
        assert builder.build(menu_flow, call_context).startswith("<?xml")
