import logging
import threading
import time
from typing import List, Optional

import pytest

from livestream_viewer.commands import PlayerCommand
from livestream_viewer.config import ViewerConfig
from livestream_viewer.state import ViewerState
from livestream_viewer.viewer import LivestreamViewer

LIVE_URL = "rtmp://stream.example.test/live/key"
TEST_URL = "https://connectivity.example.test/"


class FakeMonitor:
    def __init__(self, *results: bool) -> None:
        self.results = list(results)
        self.urls: List[str] = []
        self.error: Optional[Exception] = None

    def is_healthy(self, url: str, stop_event: Optional[threading.Event] = None) -> bool:
        if self.error is not None:
            raise self.error
        self.urls.append(url)
        return self.results.pop(0) if self.results else False


class RecordingSupervisor:
    def __init__(self) -> None:
        self.events: List[tuple] = []
        self.alive = False

    @property
    def tracked_alive(self) -> bool:
        return self.alive

    def start_tracked(self, command: PlayerCommand) -> object:
        self.events.append(("stop", None))
        self.events.append(("start", command))
        self.alive = True
        return object()

    def stop_tracked(self) -> None:
        self.events.append(("stop", None))
        self.alive = False

    @property
    def started(self) -> List[PlayerCommand]:
        return [payload for kind, payload in self.events if kind == "start"]


class Reachability:
    def __init__(self, result: bool = True, error: Optional[Exception] = None) -> None:
        self.result = result
        self.error = error
        self.calls: List[tuple] = []

    def __call__(self, url: str, timeout: float) -> bool:
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture()
def config() -> ViewerConfig:
    return ViewerConfig(
        livestream_url=LIVE_URL,
        internet_test_url=TEST_URL,
        health_check_delay=30,
        request_timeout=3,
    )


def make_viewer(
    config: ViewerConfig,
    monitor: FakeMonitor,
    supervisor: Optional[RecordingSupervisor] = None,
    reachability: Optional[Reachability] = None,
    url_resolver=None,
) -> LivestreamViewer:
    return LivestreamViewer(
        config=config,
        monitor=monitor,  # type: ignore[arg-type]
        supervisor=supervisor or RecordingSupervisor(),  # type: ignore[arg-type]
        reachability=reachability or Reachability(),
        url_resolver=url_resolver,
    )


def test_unhealthy_stream_with_internet_is_off_air(config: ViewerConfig) -> None:
    reachability = Reachability(result=True)
    viewer = make_viewer(config, FakeMonitor(False), reachability=reachability)

    assert viewer.process_once() is ViewerState.OFF_AIR
    assert reachability.calls == [(TEST_URL, 3)]


def test_connectivity_error_means_offline(
    config: ViewerConfig, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.ERROR, logger="livestream_viewer.viewer")
    reachability = Reachability(error=RuntimeError("dns exploded"))
    viewer = make_viewer(config, FakeMonitor(False), reachability=reachability)

    assert viewer.process_once() is ViewerState.OFFLINE
    assert "dns exploded" in caplog.text


def test_unreachable_internet_means_offline(config: ViewerConfig) -> None:
    viewer = make_viewer(config, FakeMonitor(False), reachability=Reachability(False))

    assert viewer.process_once() is ViewerState.OFFLINE


def test_healthy_stream_plays_resolved_url(config: ViewerConfig) -> None:
    resolved = "rtmp://edge.example.test/live/key"
    monitor = FakeMonitor(True)
    supervisor = RecordingSupervisor()
    reachability = Reachability()
    viewer = make_viewer(
        config, monitor, supervisor, reachability, url_resolver=lambda _cfg: resolved
    )

    assert viewer.process_once() is ViewerState.LIVESTREAM
    assert monitor.urls == [resolved]
    assert supervisor.started[-1].media == resolved
    assert supervisor.started[-1].loop is False
    assert reachability.calls == []


def test_same_state_with_live_player_is_left_alone(config: ViewerConfig) -> None:
    supervisor = RecordingSupervisor()
    viewer = make_viewer(config, FakeMonitor(False, False), supervisor)

    viewer.process_once()
    viewer.process_once()

    assert len(supervisor.started) == 1
    assert viewer.transition(ViewerState.OFF_AIR) is False


def test_dead_player_is_restarted(
    config: ViewerConfig, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING, logger="livestream_viewer.viewer")
    supervisor = RecordingSupervisor()
    viewer = make_viewer(config, FakeMonitor(True, True), supervisor)

    viewer.process_once()
    supervisor.alive = False
    viewer.process_once()

    assert [command.media for command in supervisor.started] == [LIVE_URL, LIVE_URL]
    assert "no longer running" in caplog.text


def test_state_change_stops_before_starting(config: ViewerConfig) -> None:
    supervisor = RecordingSupervisor()
    viewer = make_viewer(config, FakeMonitor(True, False), supervisor)

    viewer.process_once()
    viewer.process_once()

    kinds = [kind for kind, _payload in supervisor.events]
    assert kinds == ["stop", "start", "stop", "start"]
    assert supervisor.started[0].media == LIVE_URL
    assert supervisor.started[1].media == "video/OffAir.mp4"
    assert viewer.state is ViewerState.OFF_AIR


def test_url_resolver_failure_falls_back_to_configured_url(config: ViewerConfig) -> None:
    monitor = FakeMonitor(True)

    def broken_resolver(_config: ViewerConfig) -> str:
        raise ValueError("no redirect")

    viewer = make_viewer(config, monitor, url_resolver=broken_resolver)

    viewer.process_once()

    assert monitor.urls == [LIVE_URL]


def test_stop_during_probe_keeps_current_state(config: ViewerConfig) -> None:
    supervisor = RecordingSupervisor()
    viewer = make_viewer(config, FakeMonitor(), supervisor)

    class StoppingMonitor(FakeMonitor):
        def is_healthy(self, url, stop_event=None):
            viewer.stop()
            return False

    viewer._monitor = StoppingMonitor()  # type: ignore[assignment]

    assert viewer.process_once() is ViewerState.UNSET
    assert supervisor.started == []


def test_run_starts_off_air_and_stops_promptly(config: ViewerConfig) -> None:
    supervisor = RecordingSupervisor()
    monitor = FakeMonitor(True)
    viewer = make_viewer(config, monitor, supervisor)

    thread = threading.Thread(target=viewer.run, daemon=True)
    started = time.monotonic()
    thread.start()
    deadline = time.monotonic() + 2
    while len(supervisor.started) < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    viewer.stop()
    thread.join(timeout=2)

    assert not thread.is_alive()
    assert time.monotonic() - started < 5
    assert supervisor.started[0].media == "video/OffAir.mp4"
    assert supervisor.started[1].media == LIVE_URL
    assert supervisor.events[-1] == ("stop", None)
    assert supervisor.alive is False


def test_iteration_errors_do_not_end_the_loop(
    config: ViewerConfig, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.ERROR, logger="livestream_viewer.viewer")
    quick = ViewerConfig(livestream_url=LIVE_URL, health_check_delay=0.01)
    monitor = FakeMonitor()
    monitor.error = RuntimeError("probe crashed")
    viewer = make_viewer(quick, monitor)

    thread = threading.Thread(target=viewer.run, daemon=True)
    thread.start()
    deadline = time.monotonic() + 2
    while caplog.text.count("probe crashed") < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    viewer.stop()
    thread.join(timeout=2)

    assert not thread.is_alive()
    assert caplog.text.count("probe crashed") >= 2
    assert viewer.state is ViewerState.OFF_AIR
