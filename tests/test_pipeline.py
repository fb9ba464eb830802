"""Tests for the streaming pipeline."""

import asyncio

import pytest

from neurofit_monitor.models import Reading
from neurofit_monitor.streaming.pipeline import StreamPipeline


@pytest.mark.asyncio
async def test_pipeline_publish_and_consume():
    """Readings published to the pipeline reach registered consumers."""
    received: list[Reading] = []

    async def consumer(reading: Reading) -> None:
        received.append(reading)

    pipeline = StreamPipeline()
    pipeline.add_consumer(consumer)

    task = asyncio.create_task(pipeline.start())

    await pipeline.publish(Reading(heart_rate=80.0, spo2=97.0))
    await asyncio.wait_for(pipeline.drain(), timeout=5)
    await pipeline.stop()
    await asyncio.wait_for(task, timeout=5)

    assert len(received) == 1
    assert received[0].heart_rate == 80.0
    assert pipeline.processed_total == 1


@pytest.mark.asyncio
async def test_pipeline_batch_keeps_order():
    received: list[Reading] = []

    async def consumer(reading: Reading) -> None:
        received.append(reading)

    pipeline = StreamPipeline()
    pipeline.add_consumer(consumer)
    task = asyncio.create_task(pipeline.start())

    readings = [Reading(heart_rate=float(70 + i)) for i in range(5)]
    await pipeline.publish_batch(readings)

    await asyncio.wait_for(pipeline.drain(), timeout=5)
    await pipeline.stop()
    await asyncio.wait_for(task, timeout=5)

    assert [r.heart_rate for r in received] == [70.0, 71.0, 72.0, 73.0, 74.0]


@pytest.mark.asyncio
async def test_consumer_error_is_isolated():
    received: list[Reading] = []

    async def broken(reading: Reading) -> None:
        raise RuntimeError("consumer bug")

    async def consumer(reading: Reading) -> None:
        received.append(reading)

    pipeline = StreamPipeline()
    pipeline.add_consumer(broken)
    pipeline.add_consumer(consumer)
    task = asyncio.create_task(pipeline.start())

    await pipeline.publish_batch([Reading(heart_rate=60.0), Reading(heart_rate=61.0)])
    await asyncio.wait_for(pipeline.drain(), timeout=5)
    assert pipeline.running
    await pipeline.stop()
    await asyncio.wait_for(task, timeout=5)

    assert len(received) == 2
    assert pipeline.pending == 0


@pytest.mark.asyncio
async def test_full_buffer_drops_oldest():
    received: list[Reading] = []

    async def consumer(reading: Reading) -> None:
        received.append(reading)

    pipeline = StreamPipeline(maxsize=2)
    pipeline.add_consumer(consumer)
    await pipeline.publish_batch([Reading(heart_rate=float(60 + i)) for i in range(3)])
    assert pipeline.pending == 2
    assert pipeline.dropped_total == 1

    task = asyncio.create_task(pipeline.start())
    await asyncio.wait_for(pipeline.drain(), timeout=5)
    await pipeline.stop()
    await asyncio.wait_for(task, timeout=5)

    assert [r.heart_rate for r in received] == [61.0, 62.0]
    assert pipeline.stats()["dropped_total"] == 1


@pytest.mark.asyncio
async def test_stop_finishes_queued_readings():
    received: list[Reading] = []

    async def consumer(reading: Reading) -> None:
        await asyncio.sleep(0)
        received.append(reading)

    pipeline = StreamPipeline()
    pipeline.add_consumer(consumer)
    task = asyncio.create_task(pipeline.start())
    await asyncio.sleep(0)

    await pipeline.publish_batch([Reading(heart_rate=70.0), Reading(heart_rate=71.0)])
    await pipeline.stop()
    await asyncio.wait_for(task, timeout=5)

    assert len(received) == 2
    assert not pipeline.running


@pytest.mark.asyncio
async def test_stop_on_full_buffer_keeps_every_reading():
    received: list[Reading] = []
    release = asyncio.Event()

    async def consumer(reading: Reading) -> None:
        await release.wait()
        received.append(reading)

    pipeline = StreamPipeline(maxsize=2)
    pipeline.add_consumer(consumer)
    task = asyncio.create_task(pipeline.start())

    await pipeline.publish(Reading(heart_rate=60.0))
    await asyncio.sleep(0)  # consumer picks it up and waits
    await pipeline.publish_batch([Reading(heart_rate=61.0), Reading(heart_rate=62.0)])
    assert pipeline.pending == 2

    await pipeline.stop()
    assert pipeline.dropped_total == 0
    assert pipeline.pending == 2

    release.set()
    await asyncio.wait_for(task, timeout=5)

    assert [r.heart_rate for r in received] == [60.0, 61.0, 62.0]
    assert pipeline.pending == 0
    assert not pipeline.running


@pytest.mark.asyncio
async def test_pipeline_feeds_session(controller, tachycardia_reading):
    from neurofit_monitor.classification import MoodClassifier
    from neurofit_monitor.monitors.thresholds import ThresholdEngine
    from neurofit_monitor.session import MonitoringSession

    session = MonitoringSession(MoodClassifier(), ThresholdEngine(), controller)
    pipeline = StreamPipeline()
    pipeline.add_consumer(session.process_reading)
    task = asyncio.create_task(pipeline.start())

    await pipeline.publish(tachycardia_reading)
    await asyncio.wait_for(pipeline.drain(), timeout=5)
    await pipeline.stop()
    await asyncio.wait_for(task, timeout=5)

    assert len(session.classifier.history) == 1
    assert len(session.alert_history()) == 1
