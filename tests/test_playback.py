from livewheel.history import HistoryPublisher, PlaybackState
from livewheel.models import LandedSegment, SegmentRef
from livewheel.playback import PlaybackMachine, target_slot
from tests._support.surfaces import SurfaceFactory, make_request, make_segments


def test_request_while_idle_starts_spinning(machine, factory):
    machine.submit(make_request("u1", segment_index=0))

    assert machine.state is PlaybackState.SPINNING
    assert factory.current.spins == [1]
    assert len(machine.queue) == 0


def test_requests_during_spin_wait_in_order(machine, factory, publisher):
    for name in ["a", "b", "c"]:
        machine.submit(make_request(name))

    surface = factory.current
    # only one spin command until the first completes
    assert len(surface.spins) == 1
    assert publisher.status()["pending"] == 2

    surface.complete()
    assert len(surface.spins) == 2
    surface.complete()
    surface.complete()

    assert [o.username for o in publisher.history()] == ["c", "b", "a"]
    assert machine.state is PlaybackState.IDLE


def test_never_two_animations_in_flight(publisher, segments):
    in_flight = []
    overlaps = []

    class Watching(SurfaceFactory):
        def __call__(self, segs):
            surface = super().__call__(segs)
            original_spin = surface.spin

            def spin(slot, on_finished):
                if in_flight:
                    overlaps.append(slot)
                in_flight.append(slot)

                def done(landed):
                    in_flight.pop()
                    on_finished(landed)

                original_spin(slot, done)

            surface.spin = spin
            return surface

    factory = Watching()
    machine = PlaybackMachine(publisher, factory)
    machine.configure_segments(segments)

    for i in range(6):
        machine.submit(make_request(f"u{i}", segment_index=i % 5))
    while factory.current.pending:
        factory.current.complete()

    assert overlaps == []
    assert len(factory.current.spins) == 6


def test_index_mapping_and_echo(machine, factory, publisher, segments):
    machine.submit(make_request("u1", segment_index=2))

    assert factory.current.spins == [3]
    factory.current.complete()

    outcome = publisher.last_outcome
    assert outcome.segment_index == 2
    assert outcome.text == segments[2].text
    assert outcome.segment.color == segments[2].color


def test_missing_index_targets_first_segment(machine, factory, publisher):
    machine.submit(make_request("u1"))

    assert factory.current.spins == [1]
    factory.current.complete()
    assert publisher.last_outcome.segment_index == 0
    assert publisher.last_outcome.segment.id == "seg_1"


def test_out_of_range_index_spins_to_first_segment_and_echoes_index(machine, factory, publisher):
    machine.submit(make_request("u1", segment_index=9, segment=SegmentRef(id="X", text="Declared")))

    assert factory.current.spins == [1]
    factory.current.complete()

    outcome = publisher.last_outcome
    assert outcome.segment_index == 9
    assert outcome.segment.id == "X"
    assert outcome.text == "Gift1"


def test_target_slot():
    assert target_slot(make_request(segment_index=0), 3) == 1
    assert target_slot(make_request(segment_index=2), 3) == 3
    assert target_slot(make_request(segment_index=3), 3) == 1
    assert target_slot(make_request(segment_index=-1), 3) == 1
    assert target_slot(make_request(), 3) == 1


def test_outcome_timestamp_is_completion_time(machine, factory, publisher, monkeypatch):
    machine.submit(make_request("u1"))
    factory.current.complete()
    first = publisher.last_outcome.timestamp

    machine.submit(make_request("u2"))
    factory.current.complete()
    assert publisher.last_outcome.timestamp >= first


def test_surface_reset_before_each_spin_swallows_abort_errors(machine, factory):
    machine.submit(make_request("u1"))
    surface = factory.current

    # nothing was animating, so abort raised and was ignored
    assert surface.abort_calls == 1
    assert surface.reset_calls == 1
    assert machine.state is PlaybackState.SPINNING

    surface.complete()
    machine.submit(make_request("u2"))
    assert surface.abort_calls == 2
    assert surface.reset_calls == 2


def test_not_ready_surface_drops_request(publisher, factory):
    machine = PlaybackMachine(publisher, factory)
    errors = []
    publisher.subscribe(lambda event, payload: errors.append(payload) if event == "error" else None)

    machine.configure_segments([])
    machine.submit(make_request("lost"))

    assert machine.state is PlaybackState.IDLE
    assert factory.current.spins == []
    assert publisher.history() == []
    assert errors and errors[0]["error_type"] == "not_ready"

    # the next request plays once segments exist
    machine.configure_segments(make_segments(3))
    machine.submit(make_request("kept"))
    factory.current.complete()
    assert [o.username for o in publisher.history()] == ["kept"]


def test_request_before_any_segments_is_dropped(publisher, factory):
    machine = PlaybackMachine(publisher, factory)
    machine.submit(make_request("early"))

    assert machine.state is PlaybackState.IDLE
    assert len(machine.queue) == 0
    assert factory.built == []


def test_surface_failing_to_start_reverts_to_idle(publisher, segments):
    class Exploding(SurfaceFactory):
        def __call__(self, segs):
            surface = super().__call__(segs)
            original_spin = surface.spin
            calls = []

            def spin(slot, on_finished):
                calls.append(slot)
                if len(calls) == 1:
                    raise RuntimeError("canvas gone")
                original_spin(slot, on_finished)

            surface.spin = spin
            return surface

    factory = Exploding()
    machine = PlaybackMachine(publisher, factory)
    machine.configure_segments(segments)

    machine.submit(make_request("first"))
    machine.submit(make_request("second"))

    # first was lost, second plays right away
    assert machine.state is PlaybackState.SPINNING
    factory.current.complete()
    assert [o.username for o in publisher.history()] == ["second"]


def test_synchronous_surface_drains_whole_queue_in_order(publisher, segments):
    factory = SurfaceFactory(auto_complete=True)
    machine = PlaybackMachine(publisher, factory)
    machine.configure_segments(segments)

    # the first submit plays immediately; the rest play as they arrive
    for i in range(50):
        machine.submit(make_request(f"u{i}", segment_index=i % 5))

    assert machine.state is PlaybackState.IDLE
    assert len(factory.current.spins) == 50
    assert publisher.history()[0].username == "u49"


def test_duplicate_completion_is_ignored(machine, factory, publisher):
    machine.submit(make_request("u1"))
    machine.submit(make_request("u2"))
    callback = factory.current.complete()

    callback(LandedSegment(text="again"))

    assert [o.username for o in publisher.history()] == ["u1"]
    assert machine.state is PlaybackState.SPINNING


def test_stuck_spin_stays_spinning_until_forced(machine, factory, publisher):
    machine.submit(make_request("stuck"))
    machine.submit(make_request("next"))
    stuck_callback = factory.current.pending[0][1]

    assert machine.state is PlaybackState.SPINNING
    assert machine.force_idle("test") is True

    # next request started; the stuck spin was aborted and yields no outcome
    assert factory.current.spins == [1, 1]
    stuck_callback(LandedSegment(text="late"))
    assert publisher.history() == []

    factory.current.complete()
    assert [o.username for o in publisher.history()] == ["next"]
    assert machine.force_idle() is False


def test_segment_change_mid_spin_keeps_the_spin(machine, factory, publisher):
    machine.submit(make_request("u1"))
    machine.submit(make_request("u2"))
    old_surface = factory.current

    machine.configure_segments(make_segments(2))
    assert factory.current is not old_surface
    assert machine.state is PlaybackState.SPINNING

    old_surface.complete()
    assert publisher.last_outcome.username == "u1"
    assert factory.current.spins == [1]


def test_force_idle_aborts_the_surface_that_is_spinning(machine, factory, publisher):
    machine.submit(make_request("u1"))
    spinning = factory.current

    machine.configure_segments(make_segments(2))
    fresh = factory.current
    assert machine.force_idle("segments changed") is True

    assert spinning.pending == []
    assert spinning.abort_calls == 2
    assert fresh.abort_calls == 0
    assert machine.state is PlaybackState.IDLE


def test_history_bound_after_seven_spins(machine, factory, publisher):
    for i in range(7):
        machine.submit(make_request(f"u{i}"))
    while factory.current.pending:
        factory.current.complete()

    assert [o.username for o in publisher.history()] == ["u6", "u5", "u4", "u3", "u2"]


def test_declared_segment_metadata_survives_playback(machine, factory, publisher):
    request = make_request("u1", sku="rosa", segment_index=1, segment=SegmentRef(id="rosa", text="Rosa"))
    machine.submit(request)
    factory.current.complete(landed=None)

    outcome = publisher.last_outcome
    assert outcome.segment.id == "rosa"
    assert outcome.text == "Rosa"
    assert outcome.sku == "rosa"
    assert outcome.segment.color == "#cccccc"


def test_status_follows_transitions(machine, factory, publisher):
    states = []
    publisher.subscribe(lambda event, payload: states.append(payload["state"]) if event == "status" else None)

    machine.submit(make_request("u1"))
    factory.current.complete()

    assert "spinning" in states
    assert states[-1] == "idle"
    assert publisher.status()["segments"] == 5


def test_machine_publisher_defaults():
    machine = PlaybackMachine(HistoryPublisher(), SurfaceFactory())
    assert machine.state is PlaybackState.IDLE
    assert not machine.is_spinning
