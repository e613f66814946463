# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import unittest

from shared.user import UserRecord
from shared.validation import (
    EMAIL_INVALID,
    EMAIL_REQUIRED,
    NAME_REQUIRED,
    sanitize_input,
    validate_user,
)


class ValidateUserTest(unittest.TestCase):

    def test_valid_pairs(self):
        for name, email in [
            ("Ada", "ada@example.com"),
            ("Grace Hopper", "grace.hopper@navy.mil"),
            (" x ", "a+tag@sub.domain.org"),
        ]:
            with self.subTest(email=email):
                result = validate_user({"name": name, "email": email})
                self.assertTrue(result.is_valid)
                self.assertEqual(result.errors, [])

    def test_missing_fields(self):
        result = validate_user({})
        self.assertFalse(result.is_valid)
        self.assertEqual(result.errors, [NAME_REQUIRED, EMAIL_REQUIRED])

    def test_blank_name(self):
        result = validate_user({"name": "   ", "email": "ada@example.com"})
        self.assertFalse(result.is_valid)
        self.assertEqual(result.errors, [NAME_REQUIRED])

    def test_malformed_email(self):
        for email in ["ada", "ada@example", "ada @example.com", "@example.com"]:
            with self.subTest(email=email):
                result = validate_user({"name": "Ada", "email": email})
                self.assertFalse(result.is_valid)
                self.assertEqual(result.errors, [EMAIL_INVALID])

    def test_as_dict(self):
        self.assertEqual(
            validate_user({"name": "Ada"}).as_dict(),
            {"isValid": False, "errors": [EMAIL_REQUIRED]},
        )


class SanitizeInputTest(unittest.TestCase):

    def test_trims_and_strips_scripts(self):
        self.assertEqual(sanitize_input("  hello  "), "hello")
        self.assertEqual(
            sanitize_input("<SCRIPT>alert('x')</SCRIPT>safe"), "safe"
        )

    def test_non_strings_pass_through(self):
        self.assertIsNone(sanitize_input(None))
        self.assertEqual(sanitize_input(42), 42)


class UserRecordTest(unittest.TestCase):

    def test_create_assigns_id_and_timestamps(self):
        record = UserRecord.create({"name": "Ada", "email": "ada@example.com"})
        self.assertTrue(record.id)
        self.assertTrue(record.created_at)
        self.assertEqual(record.as_dict()["name"], "Ada")

    def test_update_ignores_empty_values(self):
        record = UserRecord.create(
            {"id": "u1", "name": "Ada", "email": "ada@example.com"}
        )
        record.update({"name": "", "email": "lovelace@example.com"})
        self.assertEqual(record.id, "u1")
        self.assertEqual(record.name, "Ada")
        self.assertEqual(record.email, "lovelace@example.com")


if __name__ == "__main__":
    unittest.main()
