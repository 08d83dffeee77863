import pytest
from ui.rich_display import RichDisplayManager

from models import NodeAction


class Counter:
    request_count = 3


@pytest.mark.asyncio
async def test_counts_and_step_are_tracked_without_live_panel():
    display = RichDisplayManager(request_counter=Counter())
    display.start()
    display.update(name_list="NAME", step="NAME > a (processing)")
    display.record(NodeAction.GENERATE)
    display.record(NodeAction.GENERATE)
    display.record(NodeAction.FAILED)
    await display.stop()

    assert display.live is None
    assert display.status_text_name_list.plain == "Name List: NAME"
    assert display.status_text_current_step.plain == "Current Step: NAME > a (processing)"
    assert "Generated: 2" in display.status_text_counts.plain
    assert "Failed: 1" in display.status_text_counts.plain
