import json
import os

import pytest

from livewheel.errors import RelayError, SegmentValidationError
from livewheel.registry import DEFAULT_SEGMENTS, SegmentRegistry, normalize_segments
from livewheel.storage import load_json_file, save_json_file


def test_normalize_fills_missing_ids_and_colors():
    segments = normalize_segments(
        [{"text": " Rosa "}, {"id": "gg", "text": "GG", "color": "not-a-color"}],
        color_factory=lambda: "#010203",
    )

    assert segments[0].text == "Rosa"
    assert segments[0].id.startswith("seg_")
    assert segments[0].color == "#010203"
    assert segments[1].id == "gg"
    assert segments[1].color == "#010203"


def test_normalize_replaces_duplicate_ids():
    segments = normalize_segments([{"id": "a", "text": "A", "color": "#fff"},
                                   {"id": "a", "text": "B", "color": "#000"}])
    assert segments[0].id == "a"
    assert segments[1].id != "a"


def test_normalize_accepts_wrapped_list():
    segments = normalize_segments({"segments": [{"id": "a", "text": "A", "color": "#ffffff"}]})
    assert segments[0].to_dict() == {"id": "a", "text": "A", "color": "#ffffff"}


@pytest.mark.parametrize("payload", [None, "rosa", {"text": "A"}, [1], [{"text": "  "}], [{"text": 3}]])
def test_normalize_rejects_malformed_payloads(payload):
    with pytest.raises(SegmentValidationError):
        normalize_segments(payload)


def test_load_creates_file_with_defaults(tmp_path):
    path = tmp_path / "segments.json"
    registry = SegmentRegistry(str(path))

    segments = registry.load()

    assert [s.id for s in segments] == [d["id"] for d in DEFAULT_SEGMENTS]
    assert json.loads(path.read_text(encoding="utf-8")) == DEFAULT_SEGMENTS


def test_save_persists_and_backs_up(tmp_path):
    path = tmp_path / "segments.json"
    registry = SegmentRegistry(str(path))
    registry.load()

    saved = registry.save([{"id": "x", "text": "X", "color": "#123456"}])

    assert [s.id for s in saved] == ["x"]
    assert [s.id for s in registry.segments] == ["x"]
    assert json.loads(path.read_text(encoding="utf-8")) == [{"id": "x", "text": "X", "color": "#123456"}]
    assert any(name.endswith(".bak") for name in os.listdir(tmp_path))


def test_save_failure_raises_relay_error(tmp_path, monkeypatch):
    registry = SegmentRegistry(str(tmp_path / "segments.json"))
    registry.load()
    monkeypatch.setattr("livewheel.registry.save_json_file", lambda *args, **kwargs: False)

    with pytest.raises(RelayError):
        registry.save([{"text": "X"}])
    assert len(registry.segments) == len(DEFAULT_SEGMENTS)


def test_corrupted_file_is_backed_up_and_reset(tmp_path):
    path = tmp_path / "segments.json"
    path.write_text("{not json", encoding="utf-8")

    segments = SegmentRegistry(str(path)).load()

    assert len(segments) == len(DEFAULT_SEGMENTS)
    assert any(name.endswith(".bak") for name in os.listdir(tmp_path))


def test_wrong_top_level_type_is_treated_as_corrupt(tmp_path):
    path = tmp_path / "data.json"
    path.write_text('{"a": 1}', encoding="utf-8")
    assert load_json_file(str(path), [], expected_type=list) == []


def test_save_json_file_rejects_unserializable(tmp_path):
    path = tmp_path / "bad.json"
    assert save_json_file(str(path), {"x": object()}) is False
    assert not path.exists()
    assert not (tmp_path / "bad.json.tmp").exists()


def test_find_by_id_then_text(tmp_path):
    registry = SegmentRegistry(str(tmp_path / "segments.json"))
    registry.load()

    assert registry.find("gg") == 1
    assert registry.find("PERFUME") == 3
    assert registry.find("unknown") is None
    assert registry.find(None) is None
