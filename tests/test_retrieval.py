import logging

from relmigrate.config import RetrievalMode
from relmigrate.core.retrieval import RetrievalCoordinator
from relmigrate.models import EntityDescriptor, Media
from relmigrate.transformer import BACKWARDS, FORWARDS, TARGET, RecordTransformer

from conftest import MemoryExecutor, make_context


def _coordinator(context, executor, **kwargs):
    return RetrievalCoordinator(context, executor, RecordTransformer(context), **kwargs)


def test_fixed_sequence_and_forward_filtering(tmp_path, account_contact):
    context = make_context(tmp_path, list(account_contact), source=Media.ORG, target=Media.ORG)
    executor = MemoryExecutor(
        source={
            "Account": [{"Id": "a1", "Name": "Acme"}, {"Id": "a2", "Name": "Globex"}],
            "Contact": [{"Id": "c1", "Email": "c@x", "AccountId": "a1"},
                        {"Id": "c2", "Email": "d@x", "AccountId": "a2"},
                        {"Id": "c3", "Email": "e@x", "AccountId": "a9"}],
        },
        target={
            "Account": [{"Id": "T1", "Name": "Acme"}],
            "Contact": [{"Id": "T5", "Email": "c@x"}, {"Id": "T6", "Email": "z@x"}],
        },
    )
    retrieval = _coordinator(context, executor)

    retrieved = retrieval.retrieve()

    assert retrieval.passes == [
        (FORWARDS, False),
        (BACKWARDS, False),
        (BACKWARDS, False),
        (FORWARDS, True),
        (FORWARDS, True),
        (TARGET, False),
    ]
    assert retrieved == {"Account": True, "Contact": True}
    contact = context.get_task("Contact")
    assert sorted(contact.source.id_map) == ["c1", "c2"]
    assert list(contact.target.id_map) == ["T5"]
    assert list(context.get_task("Account").target.ext_id_map) == ["Acme"]


def test_backward_pass_fetches_referenced_parents(tmp_path):
    account = EntityDescriptor(name="Account", external_id="Name", fields=["Name"])
    contact = EntityDescriptor(name="Contact", external_id="Email", fields=["Email"],
                               lookups={"AccountId": "Account"}, fetch_all_records=True)
    context = make_context(tmp_path, [account, contact], source=Media.ORG, target=Media.ORG)
    executor = MemoryExecutor(source={
        "Account": [{"Id": "a1", "Name": "Acme"}, {"Id": "a2", "Name": "Globex"}],
        "Contact": [{"Id": "c1", "Email": "c@x", "AccountId": "a1"}],
    })

    _coordinator(context, executor).retrieve()

    assert list(context.get_task("Account").source.id_map) == ["a1"]


def test_iterative_mode_stops_when_nothing_new(tmp_path):
    account = EntityDescriptor(name="Account", external_id="Name", fields=["Name"])
    contact = EntityDescriptor(name="Contact", external_id="Email", fields=["Email"],
                               lookups={"AccountId": "Account"}, fetch_all_records=True)
    context = make_context(tmp_path, [account, contact], source=Media.ORG, target=Media.ORG)
    executor = MemoryExecutor(source={
        "Account": [{"Id": "a1", "Name": "Acme"}],
        "Contact": [{"Id": "c1", "Email": "c@x", "AccountId": "a1"}],
    })
    retrieval = _coordinator(context, executor, mode=RetrievalMode.ITERATIVE)

    retrieval.retrieve()

    assert retrieval.passes == [
        (FORWARDS, False),
        (BACKWARDS, False),
        (FORWARDS, True),
        (BACKWARDS, False),
        (FORWARDS, True),
        (TARGET, False),
    ]
    assert list(context.get_task("Account").source.id_map) == ["a1"]


def test_iterative_mode_warns_at_round_cap(tmp_path, caplog):
    account = EntityDescriptor(name="Account", external_id="Name", fields=["Name"])
    contact = EntityDescriptor(name="Contact", external_id="Email", fields=["Email"],
                               lookups={"AccountId": "Account"}, fetch_all_records=True)
    context = make_context(tmp_path, [account, contact], source=Media.ORG, target=Media.ORG)
    executor = MemoryExecutor(source={
        "Account": [{"Id": "a1", "Name": "Acme"}],
        "Contact": [{"Id": "c1", "Email": "c@x", "AccountId": "a1"}],
    })
    retrieval = _coordinator(context, executor, mode=RetrievalMode.ITERATIVE, max_rounds=1)

    with caplog.at_level(logging.WARNING):
        retrieval.retrieve()

    assert "still being discovered after 1 rounds" in caplog.text


def test_file_target_is_not_queried(tmp_path, account_contact):
    context = make_context(tmp_path, list(account_contact), source=Media.ORG, target=Media.FILE)
    executor = MemoryExecutor(source={"Account": [{"Id": "a1", "Name": "Acme"}]})

    _coordinator(context, executor).retrieve()

    assert all(q.side.value == "source" for q in executor.queries)
