from __future__ import annotations

import json
import threading
import unittest
from datetime import datetime

from api_snapshot.models import EndpointTemplate, ParameterPattern
from api_snapshot.parameters import (
    ParameterResolver,
    ParameterStore,
    ValueGenerator,
    classify,
    has_unresolved,
    resolve,
    scan,
)
from api_snapshot.stores import InMemorySpaceConfigStore


class TestScan(unittest.TestCase):
    def test_scans_url_headers_and_json_body(self) -> None:
        template = EndpointTemplate(
            name="create-order",
            url="https://api.example.com/users/{userId}/orders",
            method="POST",
            headers={"Authorization": "Bearer {authToken}"},
            body=json.dumps({"order": {"sku": "{productId}", "tags": ["{campaignKey}"]}}),
        )
        self.assertEqual(scan(template), {"userId", "authToken", "productId", "campaignKey"})

    def test_plain_text_body_is_scanned_as_text(self) -> None:
        template = EndpointTemplate(name="echo", url="https://x/", body="hello {firstName}")
        self.assertEqual(scan(template), {"firstName"})

    def test_structured_body_is_walked(self) -> None:
        template = EndpointTemplate(name="echo", url="https://x/", body={"a": [{"b": "{deepId}"}], "n": 3})
        self.assertEqual(scan(template), {"deepId"})


class TestClassify(unittest.TestCase):
    def test_suffix_heuristics(self) -> None:
        cases = {
            "userId": ParameterPattern.ID,
            "sessionUid": ParameterPattern.UUID,
            "requestUuid": ParameterPattern.UUID,
            "createdTm": ParameterPattern.TIMESTAMP,
            "lastTimestamp": ParameterPattern.TIMESTAMP,
            "startDate": ParameterPattern.DATE,
            "startTime": ParameterPattern.TIME,
            "authToken": ParameterPattern.TOKEN,
            "apiKey": ParameterPattern.TOKEN,
            "callbackUrl": ParameterPattern.URL,
            "contactEmail": ParameterPattern.EMAIL,
            "nickname": ParameterPattern.STRING,
        }
        for name, expected in cases.items():
            with self.subTest(name=name):
                self.assertEqual(classify(name), expected)

    def test_case_insensitive(self) -> None:
        self.assertEqual(classify("USERID"), ParameterPattern.ID)
        self.assertEqual(classify("owner_uid"), ParameterPattern.UUID)


class TestResolve(unittest.TestCase):
    def test_substitutes_everywhere_and_keeps_unknown_tokens(self) -> None:
        template = EndpointTemplate(
            name="t",
            url="https://api.example.com/users/{userId}/{missing}",
            method="post",
            headers={"X-Trace": "{traceId}"},
            body=json.dumps({"user": "{userId}"}),
        )
        request = resolve(template, {"userId": "42", "traceId": "t-1"})
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url, "https://api.example.com/users/42/{missing}")
        self.assertEqual(request.headers, {"X-Trace": "t-1"})
        self.assertEqual(json.loads(request.body), {"user": "42"})
        self.assertTrue(has_unresolved(request))

    def test_json_body_without_tokens_is_sent_verbatim(self) -> None:
        body = '{\n  "sku": "a-1",\n  "qty": 2\n}'
        request = resolve(EndpointTemplate(name="t", url="https://x", method="POST", body=body), {"userId": "7"})
        self.assertEqual(request.body, body)

    def test_fully_resolved_request(self) -> None:
        template = EndpointTemplate(name="t", url="https://x/{userId}", body="id={userId}")
        request = resolve(template, {"userId": "7"})
        self.assertEqual(request.body, "id=7")
        self.assertFalse(has_unresolved(request))


class TestValueGenerator(unittest.TestCase):
    def setUp(self) -> None:
        self.now = datetime(2024, 3, 5, 14, 7, 9)
        self.generate = ValueGenerator(now=lambda: self.now)

    def test_generated_shapes(self) -> None:
        self.assertRegex(
            self.generate("sessionUid", ParameterPattern.UUID),
            r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
        )
        self.assertEqual(self.generate("createdTm", ParameterPattern.TIMESTAMP), str(int(self.now.timestamp() * 1000)))
        self.assertEqual(self.generate("startDate", ParameterPattern.DATE), "2024-03-05")
        self.assertEqual(self.generate("startTime", ParameterPattern.TIME), "14:07:09")
        self.assertRegex(self.generate("authToken", ParameterPattern.TOKEN), r"^tk_authtoken_[0-9a-f]{8}$")
        self.assertEqual(self.generate("contactEmail", ParameterPattern.EMAIL), "test@example.com")
        self.assertEqual(self.generate("callbackUrl", ParameterPattern.URL), "https://example.com/test-callbackUrl")
        self.assertEqual(self.generate("userId", ParameterPattern.ID), "test-userId")
        self.assertEqual(self.generate("nickname", ParameterPattern.STRING), "test-nickname")

    def test_unknown_pattern_falls_back_to_string(self) -> None:
        self.assertEqual(self.generate("thing", "bogus"), "test-thing")


class TestParameterStore(unittest.TestCase):
    def test_value_is_stable_within_a_space(self) -> None:
        store = ParameterStore()
        first = store.generate("staging", "sessionUid")
        self.assertEqual(store.generate("staging", "sessionUid"), first)
        self.assertNotEqual(store.generate("prod", "sessionUid"), first)

    def test_reset_invalidates_for_all_references(self) -> None:
        store = ParameterStore()
        resolver = ParameterResolver(store)
        a = EndpointTemplate(name="a", url="https://x/{sessionUid}")
        b = EndpointTemplate(name="b", url="https://y/{sessionUid}")
        before = resolver.resolve_for("s", a).url.rsplit("/", 1)[1]
        self.assertEqual(resolver.resolve_for("s", b).url, f"https://y/{before}")

        self.assertTrue(store.reset("s", "sessionUid"))
        after = resolver.resolve_for("s", b).url.rsplit("/", 1)[1]
        self.assertNotEqual(after, before)
        self.assertEqual(resolver.resolve_for("s", a).url, f"https://x/{after}")
        self.assertFalse(store.reset("s", "neverSet"))

    def test_seeds_from_and_writes_back_to_config_store(self) -> None:
        config = InMemorySpaceConfigStore(parameters={"s": {"userId": "u-99"}})
        store = ParameterStore(config)
        self.assertEqual(store.generate("s", "userId"), "u-99")

        value = store.generate("s", "orderId")
        self.assertEqual(config.load_parameters("s")["orderId"], value)

        store.reset("s", "userId")
        self.assertNotIn("userId", config.load_parameters("s"))

    def test_concurrent_first_use_yields_one_value(self) -> None:
        store = ParameterStore()
        seen: list[str] = []
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            seen.append(store.generate("s", "requestUuid"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(set(seen)), 1)

    def test_definitions_inventory(self) -> None:
        store = ParameterStore()
        resolver = ParameterResolver(store)
        endpoints = [
            EndpointTemplate(name="get-user", url="https://x/users/{userId}"),
            EndpointTemplate(name="get-orders", url="https://x/users/{userId}/orders?since={sinceDate}"),
        ]
        store.set("s", "userId", "u-1")
        definitions = {d.name: d for d in resolver.definitions("s", endpoints)}
        self.assertEqual(set(definitions), {"userId", "sinceDate"})
        self.assertEqual(definitions["userId"].value, "u-1")
        self.assertEqual(definitions["userId"].referenced_by, frozenset({"get-user", "get-orders"}))
        self.assertIsNone(definitions["sinceDate"].value)
        self.assertEqual(definitions["sinceDate"].pattern, ParameterPattern.DATE)


if __name__ == "__main__":
    unittest.main()
