import json

import pytest

import cli
import store
from models import InstalledApplication


@pytest.fixture
def backup_tree(monkeypatch, tmp_path):
    for name in (store.ENV_BACKUP_ROOT, store.ENV_MACHINE_BACKUP, store.ENV_SHARED_BACKUP):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(store, "config_path", lambda: str(tmp_path / "config.json"))
    root = tmp_path / "backup"
    machine = root / "PC"
    shared = root / "shared"
    (machine / "Applications").mkdir(parents=True)
    shared.mkdir()
    (machine / "Applications" / "scoop-applications.json").write_text(
        json.dumps([{"Name": "git"}]), encoding="utf-8"
    )
    return root, machine, shared


def _args(root, machine, shared, *extra):
    return [
        "--backup-root",
        str(root),
        "--machine-backup",
        str(machine),
        "--shared-backup",
        str(shared),
        *extra,
    ]


def test_what_if_analyze_writes_nothing(backup_tree, capsys) -> None:
    root, machine, shared = backup_tree
    code = cli.main(["analyze", *_args(root, machine, shared, "--what-if")])
    out = capsys.readouterr().out
    assert code == cli.EXIT_OK
    assert "Would scan installed applications from the registry" in out
    assert "Would write" in out
    assert not (machine / "UnmanagedApps").exists()


def test_what_if_post_restore_bootstraps(backup_tree, capsys) -> None:
    root, machine, shared = backup_tree
    code = cli.main(["post-restore", *_args(root, machine, shared, "--what-if")])
    out = capsys.readouterr().out
    assert code == cli.EXIT_OK
    assert out.startswith("No prior analysis found")


def test_unparseable_prior_report_exits_with_failure(backup_tree, capsys) -> None:
    root, machine, shared = backup_tree
    (machine / "UnmanagedApps").mkdir()
    (machine / "UnmanagedApps" / "unmanaged-analysis.json").write_text("nope", encoding="utf-8")
    code = cli.main(["post-restore", *_args(root, machine, shared, "--what-if")])
    assert code == cli.EXIT_FAILED
    assert "cannot load prior analysis" in capsys.readouterr().out


def test_missing_directory_is_fatal(backup_tree, capsys) -> None:
    root, machine, _shared = backup_tree
    code = cli.main(["analyze", *_args(root, machine, root / "missing", "--what-if")])
    assert code == cli.EXIT_PRECONDITION
    assert "Shared backup directory not found" in capsys.readouterr().err


class FakeRegistryReader:
    def __init__(self) -> None:
        self.errors = []

    def read_installed(self):
        return [
            InstalledApplication(name="Git", publisher="The Git Development Community"),
            InstalledApplication(name="Blender"),
        ]


def test_full_run_writes_reports_and_remembers_paths(backup_tree, monkeypatch, capsys) -> None:
    root, machine, shared = backup_tree
    monkeypatch.setattr(cli, "RegistryInventoryReader", FakeRegistryReader)
    code = cli.main(["analyze", *_args(root, machine, shared, "--remember")])
    assert code == cli.EXIT_OK
    report = json.loads((machine / "UnmanagedApps" / "unmanaged-analysis.json").read_text(encoding="utf-8"))
    assert report["Summary"]["TotalManaged"] == 1
    assert [app["Name"] for app in report["UnmanagedApplications"]] == ["Blender"]
    assert (shared / "UnmanagedApps" / "unmanaged-apps.csv").exists()
    assert store.load_config()["machine_backup"] == str(machine)
    assert "issue(s)" in capsys.readouterr().out


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_force_creates_missing_shared_backup(backup_tree, monkeypatch) -> None:
    root, machine, _shared = backup_tree
    monkeypatch.setattr(cli, "RegistryInventoryReader", FakeRegistryReader)
    shared = root / "elsewhere"
    code = cli.main(["analyze", *_args(root, machine, shared, "--force")])
    assert code == cli.EXIT_OK
    assert (shared / "UnmanagedApps" / "unmanaged-analysis.json").exists()
