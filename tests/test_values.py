from __future__ import annotations

import unittest

from api_snapshot.values import (
    JsonArray,
    JsonBool,
    JsonNull,
    JsonNumber,
    JsonObject,
    JsonString,
    is_scalar,
    tag_of,
    to_tagged,
)


class TestTaggedValues(unittest.TestCase):
    def test_bool_is_not_a_number(self) -> None:
        self.assertEqual(to_tagged(True), JsonBool(True))
        self.assertEqual(to_tagged(1), JsonNumber(1))
        self.assertNotEqual(to_tagged(True), to_tagged(1))

    def test_object_keeps_insertion_order(self) -> None:
        value = to_tagged({"z": 1, "a": [None, "x"]})
        self.assertIsInstance(value, JsonObject)
        self.assertEqual(value.keys(), ["z", "a"])
        self.assertEqual(value.as_mapping()["a"], JsonArray((JsonNull(), JsonString("x"))))
        self.assertEqual(value.to_plain(), {"z": 1, "a": [None, "x"]})

    def test_tags(self) -> None:
        cases = [
            (None, "null"),
            (False, "boolean"),
            (2.5, "number"),
            ("s", "string"),
            ([], "array"),
            ({}, "object"),
        ]
        for raw, tag in cases:
            with self.subTest(raw=raw):
                self.assertEqual(tag_of(to_tagged(raw)), tag)

    def test_scalars(self) -> None:
        self.assertTrue(is_scalar(to_tagged("x")))
        self.assertFalse(is_scalar(to_tagged([1])))

    def test_unknown_type_raises(self) -> None:
        with self.assertRaises(TypeError):
            to_tagged({"when": object()})


if __name__ == "__main__":
    unittest.main()
