import json

import pytest

from models import ErrorKind, SourceManager
from sources import (
    APPLICATION_EXPORTS,
    BackupManagedAppSource,
    first_existing_dir,
    load_export_file,
    parse_export_payload,
)


def _write(path, payload) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_parse_export_payload_shapes() -> None:
    flat = parse_export_payload([{"Name": "git"}, {"name": "7zip"}, {"Version": "1"}], SourceManager.SCOOP)
    assert [app.name for app in flat] == ["git", "7zip"]
    assert all(app.source is SourceManager.SCOOP for app in flat)

    single = parse_export_payload({"Name": "Steam", "Version": "3.0"}, SourceManager.WINGET)
    assert [app.name for app in single] == ["Steam"]

    wrapped = parse_export_payload({"Games": [{"Name": "Portal 2"}, "Half-Life"]}, SourceManager.STEAM)
    assert [app.name for app in wrapped] == ["Portal 2", "Half-Life"]

    assert parse_export_payload(None, SourceManager.EPIC) == []


def test_parse_winget_export_format() -> None:
    payload = {
        "$schema": "https://aka.ms/winget-packages.schema.2.0.json",
        "Sources": [
            {
                "Packages": [
                    {"PackageIdentifier": "Valve.Steam", "Version": "3.0"},
                    {"PackageIdentifier": "Microsoft.VisualStudioCode"},
                ]
            }
        ],
    }
    apps = parse_export_payload(payload, SourceManager.WINGET)
    assert [app.name for app in apps] == ["Steam", "VisualStudioCode"]


def test_parse_export_payload_rejects_scalars() -> None:
    with pytest.raises(ValueError):
        parse_export_payload(42, SourceManager.STORE)


def test_parse_export_payload_dedupes_names() -> None:
    apps = parse_export_payload([{"Name": "git"}, {"Name": "Git"}], SourceManager.SCOOP)
    assert [app.name for app in apps] == ["git"]


def test_load_export_file_handles_bom_and_blank(tmp_path) -> None:
    bom = tmp_path / "bom.json"
    bom.write_bytes(b"\xef\xbb\xbf" + json.dumps([{"Name": "git"}]).encode("utf-8"))
    assert [app.name for app in load_export_file(str(bom), SourceManager.SCOOP)] == ["git"]
    blank = tmp_path / "blank.json"
    blank.write_text("  \n", encoding="utf-8")
    assert load_export_file(str(blank), SourceManager.SCOOP) == []


def test_first_existing_dir(tmp_path) -> None:
    present = tmp_path / "present"
    present.mkdir()
    assert first_existing_dir([str(tmp_path / "missing"), str(present)]) == str(present)
    assert first_existing_dir(["", str(tmp_path / "missing")]) is None


def test_machine_backup_wins_over_shared(tmp_path) -> None:
    machine = tmp_path / "machine"
    shared = tmp_path / "shared"
    _write(machine / "Applications" / "scoop-applications.json", [{"Name": "git"}])
    _write(shared / "Applications" / "scoop-applications.json", [{"Name": "shared-only"}])
    _write(shared / "GameManagers" / "steam-games.json", [{"Name": "Portal 2"}])

    source = BackupManagedAppSource(str(machine), str(shared))
    apps = source.read_managed()

    names = {(app.name, app.source) for app in apps}
    assert ("git", SourceManager.SCOOP) in names
    assert ("shared-only", SourceManager.SCOOP) not in names
    assert ("Portal 2", SourceManager.STEAM) in names
    missing = [err for err in source.errors if err.kind is ErrorKind.MISSING_SOURCE]
    # Three application exports and five game exports are absent.
    assert len(missing) == len(APPLICATION_EXPORTS) - 1 + 5


def test_malformed_export_is_recorded(tmp_path) -> None:
    apps_dir = tmp_path / "Applications"
    apps_dir.mkdir()
    (apps_dir / "winget-applications.json").write_text("{not json", encoding="utf-8")
    _write(apps_dir / "store-applications.json", [{"Name": "Spotify"}])

    source = BackupManagedAppSource(str(tmp_path), "")
    apps = source.read_managed()

    assert [app.name for app in apps] == ["Spotify"]
    parse_errors = [err for err in source.errors if err.kind is ErrorKind.PARSE_FAILURE]
    assert len(parse_errors) == 1
    assert parse_errors[0].source.endswith("winget-applications.json")
    assert any(err.source == "GameManagers" for err in source.errors)
