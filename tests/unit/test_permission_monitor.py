# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
from typing import Any, Callable

import pytest

from adapters.permission.monitor import PermissionMonitor
from orchestrator.enums.permission import PermissionState


MIC = {"name": "Built-in Microphone", "max_input_channels": 1}


class FakeHost:
    def __init__(self, devices: list[dict[str, Any]] | None = None) -> None:
        self.devices = [MIC] if devices is None else devices
        self.query_error: Exception | None = None
        self.probe_error: Exception | None = None
        self.probes = 0

    def device_query(self) -> list[dict[str, Any]]:
        if self.query_error is not None:
            raise self.query_error
        return list(self.devices)

    def probe(self) -> None:
        self.probes += 1
        if self.probe_error is not None:
            raise self.probe_error


def make_monitor(host: FakeHost, **kwargs: Any) -> PermissionMonitor:
    return PermissionMonitor(
        support_check=kwargs.pop("support_check", lambda: None),
        device_query=host.device_query,
        probe=host.probe,
        **kwargs,
    )


async def wait_for(predicate: Callable[[], bool], timeout_s: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s
    while not predicate():
        assert loop.time() < deadline, "condition not reached"
        await asyncio.sleep(0.01)


def test_check_support_reports_missing_audio_stack() -> None:
    def broken() -> None:
        raise AttributeError("Could not find PyAudio")

    supported = make_monitor(FakeHost()).check_support()
    unsupported = make_monitor(FakeHost(), support_check=broken).check_support()

    assert supported.supported is True
    assert unsupported.supported is False
    assert "PyAudio" in (unsupported.reason or "")


@pytest.mark.asyncio
async def test_query_permission_states() -> None:
    host = FakeHost()
    monitor = make_monitor(host)

    assert await monitor.query_permission() is PermissionState.PROMPT

    host.devices = []
    assert await monitor.query_permission() is PermissionState.NO_MICROPHONE

    host.query_error = OSError("PortAudio not initialized")
    assert await monitor.query_permission() is PermissionState.UNKNOWN


@pytest.mark.asyncio
async def test_request_access_granted_is_remembered() -> None:
    host = FakeHost()
    monitor = make_monitor(host)

    assert await monitor.request_access() is PermissionState.GRANTED
    assert host.probes == 1
    assert await monitor.query_permission() is PermissionState.GRANTED


@pytest.mark.asyncio
async def test_request_access_denied_when_probe_fails() -> None:
    host = FakeHost()
    host.probe_error = PermissionError("access denied")
    monitor = make_monitor(host)

    assert await monitor.request_access() is PermissionState.DENIED
    assert await monitor.query_permission() is PermissionState.DENIED


@pytest.mark.asyncio
async def test_request_access_without_devices_skips_probe() -> None:
    host = FakeHost(devices=[])
    monitor = make_monitor(host)

    assert await monitor.request_access() is PermissionState.NO_MICROPHONE
    assert host.probes == 0


@pytest.mark.asyncio
async def test_poll_notifies_only_on_transition() -> None:
    host = FakeHost()
    monitor = make_monitor(host)
    seen: list[PermissionState] = []

    async def on_change(permission: PermissionState) -> None:
        seen.append(permission)

    monitor._subscribers.append(on_change)  # pylint: disable=protected-access
    await monitor.poll_once()  # baseline
    await monitor.poll_once()
    host.devices = []
    await monitor.poll_once()
    await monitor.poll_once()

    assert seen == [PermissionState.NO_MICROPHONE]
    await monitor.aclose()


@pytest.mark.asyncio
async def test_watch_task_delivers_changes_until_closed() -> None:
    host = FakeHost()
    seen: list[PermissionState] = []

    async def fast_sleep(_: float) -> None:
        await asyncio.sleep(0.01)

    monitor = make_monitor(host, sleep=fast_sleep)

    async def on_change(permission: PermissionState) -> None:
        seen.append(permission)

    monitor.subscribe(on_change)
    await asyncio.sleep(0.05)
    host.devices = []
    await wait_for(lambda: bool(seen))

    assert seen[0] is PermissionState.NO_MICROPHONE
    await monitor.aclose()


@pytest.mark.asyncio
async def test_failing_subscriber_is_isolated() -> None:
    host = FakeHost()
    monitor = make_monitor(host)
    seen: list[PermissionState] = []

    async def broken(_: PermissionState) -> None:
        raise RuntimeError("boom")

    async def healthy(permission: PermissionState) -> None:
        seen.append(permission)

    monitor._subscribers.extend([broken, healthy])  # pylint: disable=protected-access
    await monitor.poll_once()
    host.devices = []
    await monitor.poll_once()

    assert seen == [PermissionState.NO_MICROPHONE]
