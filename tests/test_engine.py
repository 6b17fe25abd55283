from __future__ import annotations

import csv
import json
from pathlib import Path

import pytest

from looper_os import engine as engine_module
from looper_os.config_service import ProvisionSettings
from looper_os.engine import LooperOSEngine
from looper_os.errors import CapacityExceeded, InvalidPolicy, IOFailure, PathUnavailable
from looper_os.layout_service import CapacityPolicy, DeviceLayout, LayoutService
from looper_os.manifest_service import MANIFEST_HEADER

DEMAND = DeviceLayout("JamManSoloXT", "JamManSoloXT", CapacityPolicy.DEMAND, None)


def _engine(source: Path, target: Path, layout: DeviceLayout = DEMAND, **kwargs) -> LooperOSEngine:
    return LooperOSEngine(source_dir=source, target_root=target, layout=layout, **kwargs)


def _manifest_rows(target: Path) -> list:
    return list(csv.reader((target / "songs.csv").read_text(encoding="utf-8").splitlines()))


def test_example_scenario(make_source, target_root: Path) -> None:
    source = make_source(["kick.wav", "snare.wav"])
    report = _engine(source, target_root).run(existing_tree_policy=None, log_to_console=False)

    root = target_root / "JamManSoloXT"
    assert (root / "Patch01" / "PhraseA" / "kick.wav").read_bytes() == (source / "kick.wav").read_bytes()
    assert (root / "Patch02" / "PhraseA" / "snare.wav").read_bytes() == (source / "snare.wav").read_bytes()
    assert sorted(p.name for p in root.iterdir()) == ["Patch01", "Patch02"]
    assert "<ID>patch-1</ID>" in (root / "Patch01" / "patch.xml").read_text(encoding="utf-8")
    assert "<ID>phrase-1</ID>" in (root / "Patch01" / "PhraseA" / "phrase.xml").read_text(encoding="utf-8")
    assert "<ID>patch-2</ID>" in (root / "Patch02" / "patch.xml").read_text(encoding="utf-8")
    assert "<ID>phrase-2</ID>" in (root / "Patch02" / "PhraseA" / "phrase.xml").read_text(encoding="utf-8")

    rows = _manifest_rows(target_root)
    assert rows[0] == MANIFEST_HEADER
    assert [r[5] for r in rows[1:]] == ["Patch01", "Patch02"]
    assert [r[0] for r in rows[1:]] == ["kick.wav", "snare.wav"]
    assert rows[1][6] == str((source / "kick.wav").resolve())
    assert report["files_placed"] == 2
    assert report["slots_created"] == 2


def test_fixed_layout_precreates_all_slots(make_source, target_root: Path) -> None:
    source = make_source(["kick.wav", "snare.wav"])
    layout = LayoutService().resolve("JamManStereo")
    _engine(source, target_root, layout).run(log_to_console=False)
    root = target_root / "JamManStereo"
    slots = sorted(p.name for p in root.iterdir())
    assert len(slots) == 99
    assert slots[0] == "Patch01" and slots[-1] == "Patch99"
    assert not (root / "Patch03" / "patch.xml").exists()
    assert (root / "Patch99" / "PhraseA").is_dir()


def test_append_twice_gives_single_header(make_source, target_root: Path) -> None:
    source = make_source(["a.wav", "b.wav", "c.wav"])
    engine = _engine(source, target_root)
    engine.run(log_to_console=False)
    engine.run(existing_tree_policy="append", log_to_console=False)

    lines = (target_root / "songs.csv").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2 * 3 + 1
    assert lines.count(",".join(MANIFEST_HEADER)) == 1


def test_overwrite_drops_previous_run(make_source, target_root: Path) -> None:
    source = make_source(["a.wav", "b.wav", "c.wav"])
    _engine(source, target_root).run(log_to_console=False)
    root = target_root / "JamManSoloXT"
    (root / "Patch03" / "PhraseA" / "c.wav").unlink()
    (source / "c.wav").unlink()
    (root / "stray.txt").write_text("left over", encoding="utf-8")

    _engine(source, target_root).run(existing_tree_policy="overwrite", log_to_console=False)
    assert sorted(p.name for p in root.iterdir()) == ["Patch01", "Patch02"]
    placed = sorted(p.name for p in root.rglob("*.wav"))
    assert placed == ["a.wav", "b.wav"]
    # the manifest lives outside the device root and keeps its history
    assert len(_manifest_rows(target_root)) == 1 + 3 + 2


def test_capacity_exceeded_creates_nothing(make_source, target_root: Path) -> None:
    source = make_source(["a.wav", "b.wav", "c.wav"])
    layout = DeviceLayout("Tiny", "Tiny", CapacityPolicy.FIXED, 2)
    with pytest.raises(CapacityExceeded):
        _engine(source, target_root, layout).run(log_to_console=False)
    assert not (target_root / "Tiny" / "Patch03").exists()
    assert not (target_root / "songs.csv").exists()


def test_existing_root_without_policy(make_source, target_root: Path) -> None:
    source = make_source(["a.wav"])
    (target_root / "JamManSoloXT").mkdir()
    with pytest.raises(InvalidPolicy):
        _engine(source, target_root).run(log_to_console=False)
    assert list((target_root / "JamManSoloXT").iterdir()) == []


def test_invalid_policy_rejected_before_any_write(make_source, target_root: Path) -> None:
    source = make_source(["a.wav"])
    with pytest.raises(InvalidPolicy):
        _engine(source, target_root).run(existing_tree_policy="merge", log_to_console=False)
    assert list(target_root.iterdir()) == []


def test_missing_paths(make_source, tmp_path: Path, target_root: Path) -> None:
    source = make_source(["a.wav"])
    with pytest.raises(PathUnavailable):
        _engine(source, tmp_path / "no-card").run(log_to_console=False)
    with pytest.raises(PathUnavailable):
        _engine(tmp_path / "no-loops", target_root).run(log_to_console=False)


def test_mid_run_failure_is_resumable(make_source, target_root: Path, monkeypatch) -> None:
    source = make_source(["a.wav", "b.wav", "c.wav"])
    original_place = engine_module.place_file

    def _fail_on_second(binding):
        if binding.slot_index == 2:
            raise IOFailure("Simulated copy failure", path=binding.destination_file_path, slot_index=2)
        return original_place(binding)

    monkeypatch.setattr(engine_module, "place_file", _fail_on_second)
    with pytest.raises(IOFailure) as excinfo:
        _engine(source, target_root).run(log_to_console=False)
    assert excinfo.value.slot_index == 2

    root = target_root / "JamManSoloXT"
    assert (root / "Patch01" / "patch.xml").exists()
    assert not (root / "Patch02" / "patch.xml").exists()
    rows = _manifest_rows(target_root)
    assert [r[5] for r in rows[1:]] == ["Patch01"]

    monkeypatch.setattr(engine_module, "place_file", original_place)
    _engine(source, target_root).run(existing_tree_policy="append", log_to_console=False)
    rows = _manifest_rows(target_root)
    assert [r[5] for r in rows[1:]] == ["Patch01", "Patch01", "Patch02", "Patch03"]
    assert (root / "Patch03" / "PhraseA" / "c.wav").exists()


def test_canonical_naming(make_source, target_root: Path) -> None:
    source = make_source(["kick.wav", "snare.wav"])
    settings = ProvisionSettings.from_config({"naming_policy": "canonicalize"})
    _engine(source, target_root, settings=settings).run(log_to_console=False)
    root = target_root / "JamManSoloXT"
    assert (root / "Patch01" / "PhraseA" / "phrase.wav").read_bytes() == (source / "kick.wav").read_bytes()
    assert (root / "Patch02" / "PhraseA" / "phrase.wav").read_bytes() == (source / "snare.wav").read_bytes()
    assert "<PatchName>kick.wav</PatchName>" in (root / "Patch01" / "patch.xml").read_text(encoding="utf-8")


def test_descriptors_identical_across_runs(make_source, target_root: Path) -> None:
    source = make_source(["kick.wav"])
    engine = _engine(source, target_root)
    engine.run(log_to_console=False)
    patch = target_root / "JamManSoloXT" / "Patch01" / "patch.xml"
    phrase = target_root / "JamManSoloXT" / "Patch01" / "PhraseA" / "phrase.xml"
    before = (patch.read_bytes(), phrase.read_bytes())
    engine.run(existing_tree_policy="append", log_to_console=False)
    assert (patch.read_bytes(), phrase.read_bytes()) == before


def test_plan_does_not_touch_target(make_source, target_root: Path) -> None:
    source = make_source(["kick.wav", "snare.wav"])
    bindings = _engine(source, target_root).plan()
    assert [b.slot_dir_name for b in bindings] == ["Patch01", "Patch02"]
    assert list(target_root.iterdir()) == []


def test_run_log_and_report(make_source, target_root: Path, tmp_path: Path) -> None:
    source = make_source(["kick.wav"])
    messages = []
    logs = tmp_path / "logs"
    report = _engine(source, target_root, log_dir=logs).run(log_callback=messages.append, log_to_console=False)

    run_dir = logs / report["run_id"]
    saved = json.loads((run_dir / "run_report.json").read_text(encoding="utf-8"))
    assert saved["files_placed"] == 1
    assert saved["bindings"][0]["slot_dir"] == "Patch01"
    log_text = (run_dir / "run_log.txt").read_text(encoding="utf-8")
    assert "Processed file: kick.wav" in log_text
    assert any(m.startswith("Processed file: kick.wav") for m in messages)


def test_failed_run_still_writes_report(make_source, target_root: Path, tmp_path: Path) -> None:
    source = make_source(["a.wav"])
    (target_root / "JamManSoloXT").mkdir()
    logs = tmp_path / "logs"
    with pytest.raises(InvalidPolicy):
        _engine(source, target_root, log_dir=logs).run(log_to_console=False)
    (run_dir,) = list(logs.iterdir())
    saved = json.loads((run_dir / "run_report.json").read_text(encoding="utf-8"))
    assert saved["error"]["type"] == "InvalidPolicy"


def test_unwritable_log_dir_raises_io_failure(make_source, target_root: Path, tmp_path: Path) -> None:
    source = make_source(["kick.wav"])
    logs = tmp_path / "logs"
    logs.write_text("not a directory", encoding="utf-8")
    with pytest.raises(IOFailure) as excinfo:
        _engine(source, target_root, log_dir=logs).run(log_to_console=False)
    assert excinfo.value.path is not None and excinfo.value.path.parent == logs
    assert list(target_root.iterdir()) == []
