import unittest

import pytest
from pydantic import ValidationError

from cfnflux.utils.backoff import ExponentialBackoff, KeyedBackoff


class TestExponentialBackoff(unittest.TestCase):
    def test_next_backoff(self):
        boff = ExponentialBackoff()

        self.assertAlmostEqual(boff.next_backoff(), 0.005)
        self.assertAlmostEqual(boff.next_backoff(), 0.01)
        self.assertAlmostEqual(boff.next_backoff(), 0.02)
        self.assertEqual(boff.failures, 3)

    def test_backoff_is_capped(self):
        boff = ExponentialBackoff(initial_interval=1, multiplier=10, max_interval=50)

        self.assertEqual(boff.next_backoff(), 1)
        self.assertEqual(boff.next_backoff(), 10)
        self.assertEqual(boff.next_backoff(), 50)
        self.assertEqual(boff.next_backoff(), 50)

    def test_long_lasting_failures_do_not_overflow(self):
        boff = ExponentialBackoff()

        for _ in range(2000):
            delay = boff.next_backoff()

        self.assertEqual(delay, 1000)

    def test_reset(self):
        boff = ExponentialBackoff(initial_interval=1)
        boff.next_backoff()
        boff.next_backoff()

        boff.reset()

        self.assertEqual(boff.failures, 0)
        self.assertEqual(boff.next_backoff(), 1)

    def test_randomized_backoff_stays_within_bounds(self):
        boff = ExponentialBackoff(initial_interval=1, multiplier=2, randomization_factor=0.5)

        for expected in [1, 2, 4, 8]:
            delay = boff.next_backoff()
            self.assertGreaterEqual(delay, expected * 0.5)
            self.assertLessEqual(delay, expected * 1.5)

    def test_invalid_arguments(self):
        with self.assertRaises(ValidationError):
            ExponentialBackoff(multiplier=1)
        with self.assertRaises(ValidationError):
            ExponentialBackoff(initial_interval=0)
        with self.assertRaises(ValidationError):
            ExponentialBackoff(randomization_factor=2)


class TestKeyedBackoff:
    def test_backoffs_are_tracked_per_key(self):
        backoff = KeyedBackoff(initial_interval=1)

        assert backoff.next_backoff(("default", "a")) == 1
        assert backoff.next_backoff(("default", "a")) == 2
        assert backoff.next_backoff(("default", "b")) == 1
        assert backoff.failures(("default", "a")) == 2
        assert backoff.failures(("default", "c")) == 0

    def test_forget_resets_key(self):
        backoff = KeyedBackoff()
        backoff.next_backoff("key")
        backoff.next_backoff("key")

        backoff.forget("key")
        backoff.forget("unknown")

        assert backoff.failures("key") == 0
        assert backoff.next_backoff("key") == pytest.approx(0.005)
