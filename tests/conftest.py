import threading
import time
from pathlib import Path

import pytest

from inkmic.audio.backends import CaptureBackend, CaptureHandle
from inkmic.audio.models import CaptureConfig
from inkmic.config import ConfigManager, MicConfig
from inkmic.errors import InvalidCaptureParameters
from inkmic.system.path_resolver import PathResolver


class FakeCaptureHandle(CaptureHandle):
    """Capture handle that replays scripted reads.

    Each script entry is either bytes (copied into the caller's buffer) or a
    negative status code. Once the script is exhausted reads return 0, and
    ``script_done`` is set on the first such read, after every scripted frame
    has been delivered.
    """

    def __init__(self, config: CaptureConfig, script=(), initialized: bool = True):
        self.config = config
        self.script = list(script)
        self._initialized = initialized
        self.started = False
        self.stopped = False
        self.released = False
        self.reads = 0
        self.script_done = threading.Event()
        if not self.script:
            self.script_done.set()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def start(self) -> None:
        self.started = True

    def read_into(self, buffer: bytearray) -> int:
        if self.released:
            raise AssertionError("read after release")
        self.reads += 1
        if not self.script:
            self.script_done.set()
            time.sleep(0.002)
            return 0
        item = self.script.pop(0)
        if isinstance(item, int):
            return item
        chunk = item[: len(buffer)]
        buffer[: len(chunk)] = chunk
        return len(chunk)

    def stop(self) -> None:
        self.stopped = True

    def release(self) -> None:
        self.released = True


class FakeCaptureBackend(CaptureBackend):
    """Backend whose behaviour per sample rate and source is configurable.

    ``rejected`` holds (source, sample_rate) pairs whose buffer-size query
    fails; ``uninitialized`` holds pairs whose handle never initializes.
    """

    def __init__(self, min_buffer: int = 512, script=()):
        self.min_buffer = min_buffer
        self.script = list(script)
        self.rejected: set = set()
        self.uninitialized: set = set()
        self.opened: list[FakeCaptureHandle] = []

    def min_buffer_size(self, config: CaptureConfig) -> int:
        if (config.source, config.sample_rate) in self.rejected:
            raise InvalidCaptureParameters("unsupported rate")
        return self.min_buffer

    def open(self, config: CaptureConfig) -> FakeCaptureHandle:
        initialized = (config.source, config.sample_rate) not in self.uninitialized
        handle = FakeCaptureHandle(config, self.script if initialized else (), initialized)
        self.opened.append(handle)
        return handle


class FakeZeroconf:
    """Records DNS-SD registrations instead of touching the network."""

    instances: list["FakeZeroconf"] = []

    def __init__(self, fail_register: bool = False):
        self.fail_register = fail_register
        self.registered = []
        self.unregistered = []
        self.closed = False
        FakeZeroconf.instances.append(self)

    def register_service(self, info) -> None:
        if self.fail_register:
            raise OSError("mDNS unavailable")
        self.registered.append(info)

    def unregister_service(self, info) -> None:
        self.unregistered.append(info)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def path_resolver(tmp_path: Path, monkeypatch) -> PathResolver:
    """Provide a PathResolver rooted in a temporary directory."""
    monkeypatch.delenv("INKMIC_CONFIG", raising=False)
    monkeypatch.setenv("INKMIC_DATA", str(tmp_path / "data"))
    return PathResolver()


@pytest.fixture
def test_config(path_resolver: PathResolver) -> MicConfig:
    """Should load test configuration, creating defaults on first use."""
    return ConfigManager(path_resolver).load()


@pytest.fixture
def fake_backend() -> FakeCaptureBackend:
    """Provide a capture backend that never touches audio hardware."""
    return FakeCaptureBackend()


@pytest.fixture
def fake_zeroconf():
    """Provide a factory for fake zeroconf instances and reset its registry."""
    FakeZeroconf.instances = []
    yield FakeZeroconf
    FakeZeroconf.instances = []
