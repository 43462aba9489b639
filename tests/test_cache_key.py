# tests/test_cache_key.py

"""
Unit tests for content-addressed cache keys
"""

import hashlib
import unittest

from utils.cache_key import FINGERPRINT_LENGTH, derive_cache_key


class TestDeriveCacheKey(unittest.TestCase):

    def test_deterministic(self):
        self.assertEqual(
            derive_cache_key(42, "Thanks for reaching out!"),
            derive_cache_key(42, "Thanks for reaching out!"),
        )

    def test_content_addressed(self):
        self.assertNotEqual(
            derive_cache_key(42, "Thanks for reaching out!"),
            derive_cache_key(42, "Thanks for reaching out."),
        )

    def test_ticket_scoped(self):
        self.assertNotEqual(derive_cache_key(1, "same"), derive_cache_key(2, "same"))

    def test_shape(self):
        key = derive_cache_key(42, "hello")
        ticket, fingerprint = key.split("_")
        self.assertEqual(ticket, "42")
        self.assertEqual(len(fingerprint), 12)
        self.assertEqual(fingerprint, hashlib.sha256(b"hello").hexdigest()[:12])

    def test_empty_text(self):
        key = derive_cache_key(7, "")
        self.assertEqual(key, "7_" + hashlib.sha256(b"").hexdigest()[:FINGERPRINT_LENGTH])


if __name__ == "__main__":
    unittest.main()
