import pytest

from livewheel.history import HistoryPublisher
from livewheel.playback import PlaybackMachine
from tests._support.surfaces import SurfaceFactory, make_segments


@pytest.fixture
def segments():
    return make_segments(5)


@pytest.fixture
def factory():
    return SurfaceFactory()


@pytest.fixture
def publisher():
    return HistoryPublisher(capacity=5)


@pytest.fixture
def machine(publisher, factory, segments):
    machine = PlaybackMachine(publisher, factory)
    machine.configure_segments(segments)
    return machine
