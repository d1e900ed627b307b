import logging

import pytest

from relmigrate.core.updater import UpdateOrchestrator
from relmigrate.errors import JobAbortedError, TransportError
from relmigrate.models import EntityDescriptor, Media, Operation, Side
from relmigrate.prompts import MISSING_PARENT_LOOKUPS, StaticPrompter
from relmigrate.transformer import RecordTransformer

from conftest import MemoryExecutor, make_context, read_csv


def _missing_parent_context(tmp_path, **kwargs):
    parent = EntityDescriptor(name="P", external_id="Name", fields=["Name"], fetch_all_records=True)
    x = EntityDescriptor(name="X", external_id="Code", fields=["Code"], lookups={"PId": "P"})
    y = EntityDescriptor(name="Y", external_id="Code", fields=["Code"], lookups={"PId": "P"})
    context = make_context(tmp_path, [parent, x, y], source=Media.ORG, target=Media.ORG, **kwargs)
    for i in (1, 2):
        context.get_task("X").add_record(Side.SOURCE, {"Id": f"x{i}", "Code": f"X{i}", "PId": f"p{i}"})
    for i in (3, 4, 5):
        context.get_task("Y").add_record(Side.SOURCE, {"Id": f"y{i}", "Code": f"Y{i}", "PId": f"p{i}"})
    return context


def _orchestrator(context, executor, prompter):
    return UpdateOrchestrator(context, executor, RecordTransformer(context), prompter)


def test_missing_lookups_prompt_once_and_report_everything(tmp_path):
    context = _missing_parent_context(tmp_path)
    prompter = StaticPrompter(True)
    executor = MemoryExecutor()

    processed = _orchestrator(context, executor, prompter).update()

    assert processed == 5
    assert len(prompter.asked) == 1
    reason, message = prompter.asked[0]
    assert reason == MISSING_PARENT_LOOKUPS
    assert message.startswith("X: 2 missing")
    report = read_csv(tmp_path / "MissingParentLookupRecords.csv")
    assert len(report) == 5
    assert [r["Missing parent ExternalId value"] for r in report] == ["p1", "p2", "p3", "p4", "p5"]
    assert {r["Child lookup object"] for r in report} == {"X", "Y"}


def test_abort_saves_report_before_raising(tmp_path):
    context = _missing_parent_context(tmp_path)
    executor = MemoryExecutor()

    with pytest.raises(JobAbortedError) as excinfo:
        _orchestrator(context, executor, StaticPrompter(False)).update()

    assert excinfo.value.reason == MISSING_PARENT_LOOKUPS
    assert executor.writes == []
    report = read_csv(tmp_path / "MissingParentLookupRecords.csv")
    assert [r["Child lookup object"] for r in report] == ["X", "X"]


def test_prompt_can_be_disabled(tmp_path):
    context = _missing_parent_context(tmp_path, prompt_on_missing_parent_objects=False)
    prompter = StaticPrompter(False)

    _orchestrator(context, MemoryExecutor(), prompter).update()

    assert prompter.asked == []
    assert len(context.missing_parent_lookups) == 5


def test_backward_pass_fills_self_lookups(tmp_path):
    contact = EntityDescriptor(name="Contact", external_id="Email", fields=["Email"],
                               lookups={"ReportsToId": "Contact"})
    context = make_context(tmp_path, [contact], source=Media.ORG, target=Media.ORG)
    task = context.get_task("Contact")
    task.add_record(Side.SOURCE, {"Id": "c1", "Email": "boss@x", "ReportsToId": ""})
    task.add_record(Side.SOURCE, {"Id": "c2", "Email": "dev@x", "ReportsToId": "c1"})
    executor = MemoryExecutor()

    _orchestrator(context, executor, StaticPrompter()).update()

    assert [(op, name) for op, name, _ in executor.writes] == [
        (Operation.INSERT, "Contact"),
        (Operation.UPDATE, "Contact"),
    ]
    assert executor.writes[1][2] == [{"ReportsToId": "T001", "Id": "T002"}]
    assert task.source_to_target == {"c1": "T001", "c2": "T002"}
    assert task.target.ext_id_map == {"boss@x": "T001", "dev@x": "T002"}


def test_file_target_skips_backward_pass(tmp_path):
    contact = EntityDescriptor(name="Contact", external_id="Email", fields=["Email"],
                               lookups={"ReportsToId": "Contact"})
    context = make_context(tmp_path, [contact], source=Media.ORG, target=Media.FILE)
    task = context.get_task("Contact")
    task.add_record(Side.SOURCE, {"Id": "c1", "Email": "boss@x", "ReportsToId": ""})
    task.add_record(Side.SOURCE, {"Id": "c2", "Email": "dev@x", "ReportsToId": "c1"})
    executor = MemoryExecutor()

    _orchestrator(context, executor, StaticPrompter()).update()

    assert [op for op, _, _ in executor.writes] == [Operation.INSERT]


class _RejectingExecutor(MemoryExecutor):
    def __init__(self, rows):
        super().__init__()
        self.rows = rows

    def write(self, side, operation, entity, records):
        return list(self.rows)


def test_failed_rows_are_not_mapped(tmp_path):
    account = EntityDescriptor(name="Account", external_id="Name", fields=["Name"])
    context = make_context(tmp_path, [account], source=Media.ORG, target=Media.ORG)
    task = context.get_task("Account")
    task.add_record(Side.SOURCE, {"Id": "a1", "Name": "Acme"})
    task.add_record(Side.SOURCE, {"Id": "a2", "Name": "Globex"})
    executor = _RejectingExecutor([{"Id": "T1"}, {"Id": "", "Error": "duplicate value"}])

    processed = _orchestrator(context, executor, StaticPrompter()).update_task(task, "forwards")

    assert processed == 1
    assert task.source_to_target == {"a1": "T1"}


def test_result_count_mismatch_is_a_transport_error(tmp_path):
    account = EntityDescriptor(name="Account", external_id="Name", fields=["Name"])
    context = make_context(tmp_path, [account], source=Media.ORG, target=Media.ORG)
    task = context.get_task("Account")
    task.add_record(Side.SOURCE, {"Id": "a1", "Name": "Acme"})
    executor = _RejectingExecutor([])

    with pytest.raises(TransportError):
        _orchestrator(context, executor, StaticPrompter()).update_task(task, "forwards")


def test_report_is_saved_when_a_write_fails(tmp_path):
    context = _missing_parent_context(tmp_path)
    executor = _RejectingExecutor([])

    with pytest.raises(TransportError):
        _orchestrator(context, executor, StaticPrompter(True)).update()

    report = read_csv(tmp_path / "MissingParentLookupRecords.csv")
    assert [r["Missing parent ExternalId value"] for r in report] == ["p1", "p2"]


def test_backward_pass_warns_after_forward_prompt(tmp_path, caplog):
    # Z is placed before X because of the lookup cycle; X is update-only and never written
    parent = EntityDescriptor(name="P", external_id="Name", fields=["Name"])
    x = EntityDescriptor(name="X", external_id="Code", fields=["Code"],
                         operation=Operation.UPDATE, lookups={"ZId": "Z"})
    z = EntityDescriptor(name="Z", external_id="Code", fields=["Code"],
                         lookups={"PId": "P", "XId": "X"})
    context = make_context(tmp_path, [parent, x, z], source=Media.ORG, target=Media.ORG)
    assert [t.name for t in context.tasks] == ["P", "Z", "X"]
    context.get_task("Z").add_record(Side.SOURCE, {"Id": "z1", "Code": "Z1", "PId": "p1", "XId": "x1"})
    context.get_task("X").add_record(Side.SOURCE, {"Id": "x1", "Code": "X1", "ZId": ""})
    prompter = StaticPrompter(True)

    with caplog.at_level(logging.WARNING):
        _orchestrator(context, MemoryExecutor(), prompter).update()

    assert len(prompter.asked) == 1
    assert prompter.asked[0][1].startswith("Z: 1 missing")
    assert "Z: 1 missing parent lookup" in caplog.text
    report = read_csv(tmp_path / "MissingParentLookupRecords.csv")
    assert [(r["Child lookup field"], r["Missing parent ExternalId value"]) for r in report] == [
        ("PId", "p1"), ("XId", "X1")]
