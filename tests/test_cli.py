import json
import sys

import pytest

from relmigrate import cli

from conftest import write_csv


def _job(tmp_path, **extra):
    data = {
        "source": {"media": "file"},
        "target": {"media": "file"},
        "objects": [{"name": "Contact", "externalId": "Email", "fields": ["Email", "Phone"]}],
    }
    data.update(extra)
    path = tmp_path / "job.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_parser_reads_run_options(tmp_path):
    args = cli.build_parser().parse_args(
        ["run", "job.json", "--validate-only", "--yes", "--iterative", "--base-path", str(tmp_path)])

    assert args.command == "run"
    assert args.validate_only and args.yes and args.iterative
    assert args.base_path == tmp_path


def test_validate_only_run_exits_cleanly(tmp_path, monkeypatch):
    write_csv(tmp_path, "Contact.csv", [{"Id": "", "Email": "c@x", "Phone": "1"}])
    job = _job(tmp_path)
    monkeypatch.setattr(sys, "argv", ["relmigrate", "run", str(job), "--validate-only", "--yes"])

    cli.main()

    assert (tmp_path / "Contact.csv").read_text(encoding="utf-8").splitlines()[1].startswith(
        "ID0000000000000001")
    assert not (tmp_path / "target").exists()


def test_abort_exits_with_code_2(tmp_path, monkeypatch):
    write_csv(tmp_path, "Contact.csv", [{"Id": "C1", "Email": "c@x"}])
    job = _job(tmp_path)
    monkeypatch.setattr(sys, "argv", ["relmigrate", "run", str(job)])
    monkeypatch.setattr("builtins.input", lambda _: "n")

    with pytest.raises(SystemExit) as excinfo:
        cli.main()

    assert excinfo.value.code == 2


def test_bad_job_exits_with_code_1(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, "argv", ["relmigrate", "run", str(tmp_path / "missing.json")])

    with pytest.raises(SystemExit) as excinfo:
        cli.main()

    assert excinfo.value.code == 1
