import pytest

from phub_backend.features.index.models import ScanPhase
from phub_backend.features.index.scan_streaming import _ProgressChannel, stream_scan


async def _collect(agen) -> list:
    return [update async for update in agen]


@pytest.mark.asyncio
async def test_stream_ends_with_completed_statistics(services, library, make_image):
    make_image(library / "a.png")
    make_image(library / "sub" / "b.png", color=(1, 2, 3))

    updates = await _collect(stream_scan(services["synchronizer"]))

    assert updates[0].percentage == 0
    assert all(not u.completed for u in updates[:-1])
    final = updates[-1]
    assert final.completed is True
    assert final.phase == ScanPhase.COMPLETED
    assert final.statistics.new_files == 2
    assert await services["catalog"].count_assets() == 2


@pytest.mark.asyncio
async def test_stream_failure_still_completes(services, library):
    updates = await _collect(stream_scan(services["synchronizer"], library / "missing"))

    final = updates[-1]
    assert final.completed is True
    assert final.phase == ScanPhase.FAILED
    assert final.statistics is None
    assert "does not exist" in final.message


@pytest.mark.asyncio
async def test_bounded_queue_still_delivers_final_event(services, library, make_image):
    for i in range(12):
        make_image(library / f"img_{i:02d}.png", color=(i * 10, 0, 0))

    updates = await _collect(stream_scan(services["synchronizer"], queue_size=1))

    assert updates[-1].completed is True
    assert updates[-1].statistics.new_files == 12


@pytest.mark.asyncio
async def test_closing_stream_early_cancels_scan(services, library, make_image):
    make_image(library / "a.png")
    agen = stream_scan(services["synchronizer"])

    first = await agen.__anext__()
    assert first.completed is False
    await agen.aclose()

    assert not services["synchronizer"].is_running
    assert await services["catalog"].count_assets() == 0


def test_channel_drops_intermediate_events_when_full():
    from phub_backend.features.index.models import IndexProgressUpdate

    channel = _ProgressChannel(1)
    channel(IndexProgressUpdate("a", 1.0))
    channel(IndexProgressUpdate("b", 2.0))
    channel(IndexProgressUpdate("done", 100.0, completed=True))
    assert channel.queue.qsize() == 1
    assert channel.dropped == 1
    assert channel.final.message == "done"
    assert channel.last_percentage == 100.0
