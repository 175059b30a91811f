from __future__ import annotations

import unittest

from api_snapshot.errors import ConfigurationError, ValidationError
from api_snapshot.schemas import ensure_valid, validate

USER_SCHEMA = {
    "type": "object",
    "required": ["id", "name"],
    "properties": {
        "id": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
}


class TestSchemas(unittest.TestCase):
    def test_valid_instance(self) -> None:
        self.assertEqual(validate({"id": "u-1", "name": "Ada"}, USER_SCHEMA), [])
        ensure_valid({"id": "u-1", "name": "Ada"}, USER_SCHEMA)

    def test_messages_carry_json_paths(self) -> None:
        errors = validate({"id": 7, "name": "Ada", "tags": ["a", 3]}, USER_SCHEMA)
        self.assertEqual(len(errors), 2)
        self.assertTrue(errors[0].startswith("$.id: "))
        self.assertTrue(errors[1].startswith("$.tags[1]: "))

    def test_root_errors(self) -> None:
        [error] = validate({"id": "u-1"}, USER_SCHEMA)
        self.assertTrue(error.startswith("$: "))
        self.assertIn("'name' is a required property", error)

    def test_ensure_valid_raises_with_all_errors(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            ensure_valid([], USER_SCHEMA, label="response")
        self.assertEqual(ctx.exception.code, "validation_error")
        self.assertEqual(len(ctx.exception.errors), 1)
        self.assertIn("response", ctx.exception.message)

    def test_invalid_schema(self) -> None:
        with self.assertRaises(ConfigurationError):
            validate({}, {"type": "no-such-type"})


if __name__ == "__main__":
    unittest.main()
