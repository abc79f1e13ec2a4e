"""Property tests: any JSON-compatible payload survives storage."""

import asyncio

from hypothesis import given, settings
from hypothesis import strategies as st

from taskstore import TaskStore

json_values = st.recursive(
    st.none()
    | st.booleans()
    | st.integers(min_value=-(2**53), max_value=2**53)
    | st.floats(allow_nan=False, allow_infinity=False)
    | st.text(),
    lambda children: st.lists(children, max_size=5) | st.dictionaries(st.text(), children, max_size=5),
    max_leaves=20,
)


async def _round_trip(payload):
    async with TaskStore() as store:
        run = await store.create_task_run("prop", input=payload)
        frame = await store.create_stack_run(run.id, "op", result=payload)
        await store.set_keystore("prop", payload)
        return (
            (await store.get_task_run(run.id)).input,
            (await store.get_stack_run(frame.id)).result,
            await store.get_keystore("prop"),
        )


class TestPayloadRoundTrip:
    """Payload columns and keystore values keep their structure."""

    @settings(max_examples=50, deadline=None)
    @given(json_values)
    def test_payload_round_trip(self, payload):
        """What goes in comes out unchanged."""
        task_input, stack_result, keystore_value = asyncio.run(_round_trip(payload))
        assert task_input == payload
        assert stack_result == payload
        assert keystore_value == payload
