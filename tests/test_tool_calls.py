import pytest

from chat_gateway.agent.chat_model import ToolCallDelta
from chat_gateway.agent.tool_calls import AccumulatorState, ToolCall, ToolCallAccumulator


def test_fragments_accumulate_into_one_call():
    accumulator = ToolCallAccumulator()
    assert accumulator.state is AccumulatorState.IDLE
    
    accumulator.feed(ToolCallDelta(id="call_1", name="serverA__", arguments=""))
    accumulator.feed(ToolCallDelta(name="search", arguments='{"que'))
    accumulator.feed(ToolCallDelta(arguments='ry": "x"}'))
    assert accumulator.state is AccumulatorState.ACCUMULATING
    
    calls = accumulator.finish()
    
    assert accumulator.state is AccumulatorState.FLUSHED
    assert calls == [ToolCall(id="call_1", name="serverA__search", arguments='{"query": "x"}')]
    assert calls[0].parsed_arguments() == {"query": "x"}


def test_new_call_id_flushes_previous_call_in_order():
    accumulator = ToolCallAccumulator()
    accumulator.feed(ToolCallDelta(index=0, id="a", name="s__one", arguments="{}"))
    accumulator.feed(ToolCallDelta(index=1, id="b", name="s__two"))
    accumulator.feed(ToolCallDelta(index=1, arguments='{"n": 2}'))
    
    calls = accumulator.finish()
    
    assert [(call.id, call.name, call.arguments) for call in calls] == [
        ("a", "s__one", "{}"),
        ("b", "s__two", '{"n": 2}'),
    ]


def test_repeated_id_continues_the_open_call():
    accumulator = ToolCallAccumulator()
    accumulator.feed(ToolCallDelta(id="a", name="s__t", arguments='{"k":'))
    accumulator.feed(ToolCallDelta(id="a", arguments=' 1}'))
    
    assert accumulator.finish() == [ToolCall(id="a", name="s__t", arguments='{"k": 1}')]


def test_fragment_without_open_call_is_dropped():
    accumulator = ToolCallAccumulator()
    accumulator.feed(ToolCallDelta(arguments='{"orphan": true}'))
    
    assert accumulator.state is AccumulatorState.IDLE
    assert accumulator.finish() == []


def test_feed_after_finish_raises():
    accumulator = ToolCallAccumulator()
    accumulator.finish()
    
    with pytest.raises(RuntimeError):
        accumulator.feed(ToolCallDelta(id="late"))


def test_parsed_arguments():
    assert ToolCall(id="1", name="s__t").parsed_arguments() == {}
    assert ToolCall(id="1", name="s__t", arguments="  ").parsed_arguments() == {}
    with pytest.raises(ValueError):
        ToolCall(id="1", name="s__t", arguments="[1, 2]").parsed_arguments()
    with pytest.raises(ValueError):
        ToolCall(id="1", name="s__t", arguments="{broken").parsed_arguments()


def test_to_message_dict():
    assert ToolCall(id="c", name="s__t", arguments="{}").to_message_dict() == {
        "id": "c",
        "type": "function",
        "function": {"name": "s__t", "arguments": "{}"},
    }
