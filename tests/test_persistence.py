import asyncio
import logging

import pytest

from db.client import dispose_engines
from pydantic import TypeAdapter

from statement_ledger.config import config_from_env
from statement_ledger.models import CategoryRule
from statement_ledger.persistence import (
    DebouncedWriter,
    InMemoryStore,
    SqlKeyValueStore,
    ns_key,
    read_json,
    read_model,
    set_with_rev,
    write_model,
)
from tests.helpers.db import bootstrap_sqlite_db

_RULES = TypeAdapter(list[CategoryRule])


def test_ns_key():
    assert ns_key("demo", "stmts.v2") == "demo::stmts.v2"


def test_read_json_falls_back_on_missing_or_corrupt(store, caplog):
    caplog.set_level(logging.WARNING, logger="statement_ledger")
    assert read_json(store, "k", {"empty": True}) == {"empty": True}
    store.set("k", "{oops")
    assert read_json(store, "k", []) == []
    assert "Corrupt JSON" in caplog.text


def test_read_model_falls_back_on_invalid_shape(store):
    store.set("k", '[{"key": "tok:netflix"}]')
    assert read_model(store, "k", _RULES, []) == []


def test_write_model_uses_camel_case_aliases(store):
    write_model(store, "k", _RULES, [CategoryRule(key="tok:netflix", category="Subscriptions")])
    assert store.get("k") == '[{"key":"tok:netflix","category":"Subscriptions","source":"user"}]'
    assert read_model(store, "k", _RULES, [])[0].category == "Subscriptions"


def test_set_with_rev_increments_and_merges(store):
    assert set_with_rev(store, "doc", {"rules": [1]}) == 1
    assert set_with_rev(store, "doc", {"aliases": []}) == 2
    doc = read_json(store, "doc", {})
    assert doc["rev"] == 2
    assert doc["rules"] == [1]
    assert doc["aliases"] == []
    assert "updatedAt" in doc


def test_debounced_writer_coalesces_bursts():
    store = InMemoryStore()
    revs: list[int] = []

    async def scenario() -> None:
        writer = DebouncedWriter(store, "doc", delay=0.01, on_write=revs.append)
        for n in range(3):
            writer.schedule({"n": n})
        assert writer.pending
        await asyncio.sleep(0.1)
        assert not writer.pending

    asyncio.run(scenario())
    assert revs == [1]
    assert read_json(store, "doc", {})["n"] == 2


def test_debounced_writer_flush_writes_now():
    store = InMemoryStore()

    async def scenario() -> None:
        writer = DebouncedWriter(store, "doc", delay=60)
        writer.schedule({"n": 1})
        await writer.flush()

    asyncio.run(scenario())
    assert read_json(store, "doc", {})["rev"] == 1


def test_debounced_writer_exit_cancels_pending_write():
    store = InMemoryStore()

    async def scenario() -> None:
        async with DebouncedWriter(store, "doc", delay=60) as writer:
            writer.schedule({"n": 1})

    asyncio.run(scenario())
    assert store.writes == 0


def test_debounced_writer_from_config_uses_env_delay_and_namespace(monkeypatch):
    monkeypatch.setenv("LEDGER_DEBOUNCE_SECONDS", "0.01")
    monkeypatch.setenv("LEDGER_NAMESPACE", "demo")
    store = InMemoryStore()

    async def scenario() -> None:
        writer = DebouncedWriter.from_config(store, "rules", config_from_env())
        assert writer.delay == 0.01
        assert writer.key == ns_key("demo", "rules")
        writer.schedule({"rules": []})
        await asyncio.sleep(0.1)

    asyncio.run(scenario())
    assert read_json(store, ns_key("demo", "rules"), {})["rev"] == 1


def test_sql_store_round_trip(tmp_path):
    url = bootstrap_sqlite_db(tmp_path / "ledger.db")
    port = SqlKeyValueStore(database_url=url)

    assert port.get("real::profile.v1") is None
    assert port.rev("real::profile.v1") == 0
    port.set("real::profile.v1", '{"a": 1}')
    port.set("real::profile.v1", '{"a": 2}')
    assert port.get("real::profile.v1") == '{"a": 2}'
    assert port.rev("real::profile.v1") == 2

    port.delete("real::profile.v1")
    assert port.get("real::profile.v1") is None
    port.delete("real::missing")
    dispose_engines()


def test_sql_store_needs_a_database_url():
    with pytest.raises(RuntimeError):
        SqlKeyValueStore().get("real::profile.v1")
