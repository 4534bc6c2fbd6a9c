"""Tests for pagewatch.store.kv: the JSON key-value store."""

from __future__ import annotations

import asyncio
import json

from pagewatch.store.kv import ALERTS_KEY, EXTENSIONS_KEY, JsonFileStore


class TestJsonFileStore:
    """Round trips through a file under ``tmp_path``."""

    def test_missing_file_reads_empty(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "absent.json")
        assert asyncio.run(store.get([ALERTS_KEY])) == {}

    def test_set_then_get(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "nested" / "store.json")

        async def scenario() -> dict:
            await store.set({ALERTS_KEY: [{"id": "1"}], EXTENSIONS_KEY: {}})
            return await store.get([ALERTS_KEY, "other"])

        assert asyncio.run(scenario()) == {ALERTS_KEY: [{"id": "1"}]}
        assert json.loads(store.path.read_text(encoding="utf-8"))[EXTENSIONS_KEY] == {}

    def test_set_keeps_other_keys(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "store.json")

        async def scenario() -> dict:
            await store.set({"a": 1})
            await store.set({"b": 2})
            return await store.get(["a", "b"])

        assert asyncio.run(scenario()) == {"a": 1, "b": 2}

    def test_remove(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "store.json")

        async def scenario() -> dict:
            await store.set({"a": 1, "b": 2})
            await store.remove(["a", "missing"])
            return await store.get(["a", "b"])

        assert asyncio.run(scenario()) == {"b": 2}

    def test_corrupt_file_treated_as_empty(self, tmp_path) -> None:
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileStore(path)

        async def scenario() -> dict:
            before = await store.get(["a"])
            await store.set({"a": 1})
            return {"before": before, "after": await store.get(["a"])}

        assert asyncio.run(scenario()) == {"before": {}, "after": {"a": 1}}

    def test_non_object_document_treated_as_empty(self, tmp_path) -> None:
        path = tmp_path / "store.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        assert asyncio.run(JsonFileStore(path).get(["a"])) == {}

    def test_no_temp_files_left(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "store.json")
        asyncio.run(store.set({"a": 1}))
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]

    def test_concurrent_writes_all_land(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "store.json")

        async def scenario() -> dict:
            await asyncio.gather(*(store.set({f"k{i}": i}) for i in range(10)))
            return await store.get([f"k{i}" for i in range(10)])

        assert asyncio.run(scenario()) == {f"k{i}": i for i in range(10)}
