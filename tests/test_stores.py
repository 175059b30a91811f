from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from _fakes import make_snapshot

from api_snapshot.errors import ConfigurationError, StoreError
from api_snapshot.models import ChangeLogEntry, Disposition
from api_snapshot.stores import (
    FileSnapshotStore,
    FileSpaceConfigStore,
    InMemorySnapshotStore,
    JsonlChangeLog,
    latest_baseline,
    latest_current,
    sanitize_name,
)

STAGING_YAML = """\
# staging endpoints
endpoints:
  - name: get-user
    url: https://staging.example.com/users/{userId}
  - name: create-order
    url: https://staging.example.com/orders
    method: post
    timeout: 5000
    body:
      user: "{userId}"
parameters:
  userId: u-1
rules:
  - path: response.body.meta
    ignore: true
"""


class TestFileSpaceConfigStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        (self.root / "staging.yaml").write_text(STAGING_YAML, encoding="utf-8")
        self.store = FileSpaceConfigStore(self.root)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_loads_endpoints_parameters_and_rules(self) -> None:
        endpoints = self.store.load_endpoints("staging")
        self.assertEqual([e.name for e in endpoints], ["get-user", "create-order"])
        self.assertEqual(endpoints[1].method, "POST")
        self.assertEqual(endpoints[1].timeout_ms, 5000)
        self.assertEqual(endpoints[1].body, {"user": "{userId}"})
        self.assertEqual(self.store.load_parameters("staging"), {"userId": "u-1"})
        self.assertEqual(self.store.load_rules("staging"), [{"path": "response.body.meta", "ignore": True}])
        self.assertEqual(self.store.list_spaces(), ["staging"])

    def test_missing_space(self) -> None:
        with self.assertRaises(ConfigurationError):
            self.store.load_endpoints("prod")

    def test_parameter_writes_persist(self) -> None:
        self.store.save_parameter("staging", "orderId", "test-orderId")
        reloaded = FileSpaceConfigStore(self.root)
        self.assertEqual(reloaded.load_parameters("staging"), {"userId": "u-1", "orderId": "test-orderId"})
        self.store.delete_parameter("staging", "userId")
        self.assertEqual(reloaded.load_parameters("staging"), {"orderId": "test-orderId"})
        self.assertEqual(len(reloaded.load_endpoints("staging")), 2)

    def test_json_documents(self) -> None:
        (self.root / "prod.json").write_text(
            json.dumps({"endpoints": [{"name": "health", "url": "https://prod/health"}]}), encoding="utf-8"
        )
        self.assertEqual([e.name for e in self.store.load_endpoints("prod")], ["health"])
        self.store.save_parameter("prod", "userId", "x")
        data = json.loads((self.root / "prod.json").read_text(encoding="utf-8"))
        self.assertEqual(data["parameters"], {"userId": "x"})

    def test_invalid_documents(self) -> None:
        cases = {
            "dupes": "endpoints:\n  - {name: a, url: 'https://x'}\n  - {name: a, url: 'https://y'}\n",
            "nourl": "endpoints:\n  - {name: a}\n",
            "method": "endpoints:\n  - {name: a, url: 'https://x', method: FETCH}\n",
            "notalist": "endpoints: {a: 1}\n",
            "broken": "endpoints: [\n",
        }
        for space, text in cases.items():
            (self.root / f"{space}.yaml").write_text(text, encoding="utf-8")
            with self.subTest(space=space), self.assertRaises(ConfigurationError):
                self.store.load_endpoints(space)

    def test_sanitize_name(self) -> None:
        self.assertEqual(sanitize_name("../etc/passwd"), "___etc_passwd")
        self.assertEqual(sanitize_name("staging-eu_1"), "staging-eu_1")


class _SnapshotStoreContract:
    def make_store(self):
        raise NotImplementedError

    def setUp(self) -> None:
        self.store = self.make_store()

    def _append(self, snapshot_id: str, minute: int, *, baseline: bool = False, endpoint: str = "get-user"):
        snapshot = make_snapshot(
            {"n": minute},
            snapshot_id=snapshot_id,
            timestamp=f"2024-01-01T00:{minute:02d}:00Z",
            baseline=baseline,
            endpoint=endpoint,
        )
        self.store.append("test", endpoint, snapshot)
        return snapshot

    def test_append_list_read(self) -> None:
        self._append("snap_2", 2)
        self._append("snap_1", 1, baseline=True)
        self._append("snap_9", 9, endpoint="get-orders")
        self.assertEqual([s.id for s in self.store.list("test", "get-user")], ["snap_1", "snap_2"])
        self.assertEqual([s.id for s in self.store.list("test")], ["snap_1", "snap_2", "snap_9"])
        self.assertEqual(self.store.read("snap_2").response.body, {"n": 2})
        with self.assertRaises(StoreError):
            self.store.read("snap_missing")
        with self.assertRaises(StoreError):
            self._append("snap_2", 3)

    def test_latest_helpers(self) -> None:
        self._append("snap_1", 1)
        first = self._append("snap_2", 2, baseline=True)
        self.assertIsNone(latest_current(self.store, "test", "get-user", after=first))
        self._append("snap_3", 3)
        self._append("snap_4", 4)
        self.assertEqual(latest_baseline(self.store, "test", "get-user").id, "snap_2")
        self.assertEqual(latest_current(self.store, "test", "get-user", after=first).id, "snap_4")
        self.assertIsNone(latest_baseline(self.store, "test", "get-orders"))

    def test_prune_keeps_newest_and_latest_baseline(self) -> None:
        self._append("snap_1", 1, baseline=True)
        for minute in range(2, 7):
            self._append(f"snap_{minute}", minute)
        removed = self.store.prune("test", "get-user", 2)
        self.assertEqual(removed, 3)
        self.assertEqual([s.id for s in self.store.list("test", "get-user")], ["snap_1", "snap_5", "snap_6"])


class TestInMemorySnapshotStore(_SnapshotStoreContract, unittest.TestCase):
    def make_store(self):
        return InMemorySnapshotStore()


class TestFileSnapshotStore(_SnapshotStoreContract, unittest.TestCase):
    def make_store(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        return FileSnapshotStore(self._tmp.name)

    def test_layout_on_disk(self) -> None:
        self._append("snap_1", 1)
        path = Path(self._tmp.name) / "test" / "get-user" / "snap_1.json"
        self.assertTrue(path.exists())
        self.assertEqual(json.loads(path.read_text(encoding="utf-8"))["status"], "success")
        self.assertEqual(FileSnapshotStore(self._tmp.name).read("snap_1").id, "snap_1")


class TestJsonlChangeLog(unittest.TestCase):
    def test_append_and_filter(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log = JsonlChangeLog(Path(tmp) / "nested" / "changelog.jsonl")
            for space in ("staging", "prod"):
                log.append(
                    ChangeLogEntry(
                        id=f"chg_{space}",
                        space=space,
                        endpoint="get-user",
                        baseline_id="b",
                        current_id="c",
                        disposition=Disposition.APPROVED,
                        timestamp="2024-01-01T00:00:00Z",
                        counts={"breaking": 0, "non-breaking": 1, "informational": 0},
                    )
                )
            self.assertEqual([e.id for e in log.entries()], ["chg_staging", "chg_prod"])
            only = log.entries("prod")
            self.assertEqual(len(only), 1)
            self.assertEqual(only[0].counts["non-breaking"], 1)
            self.assertEqual(len(log.path.read_text(encoding="utf-8").splitlines()), 2)


if __name__ == "__main__":
    unittest.main()
