"""Tests for the poll `wait` parameter."""
import pytest

from auth_broker.errors import ValidationError
from auth_broker.wait_policy import MAX_WAIT_SECONDS, WaitPolicy


@pytest.fixture
def policy():
    return WaitPolicy()


def test_absent_or_empty_is_non_blocking(policy):
    assert policy.deadline(None, 100.0) == 100.0
    assert policy.deadline("", 100.0) == 100.0


def test_true_waits_forever(policy):
    assert policy.deadline("true", 100.0) is None


def test_integer_seconds_from_arrival(policy):
    assert policy.deadline("0", 100.0) == 100.0
    assert policy.deadline("5", 100.0) == 105.0
    assert policy.deadline("5", 250.0) == 255.0


@pytest.mark.parametrize("value", ["-1", "abc", "1.5", "TRUE", "false", " 5", "²"])
def test_invalid_values_rejected(policy, value):
    with pytest.raises(ValidationError):
        policy.deadline(value, 100.0)


def test_leading_zeros_are_plain_integers(policy):
    assert policy.deadline("0005", 100.0) == 105.0
    assert policy.deadline("0" * 5000 + "7", 100.0) == 107.0


def test_wait_at_ceiling_keeps_deadline(policy):
    assert policy.deadline(str(MAX_WAIT_SECONDS), 100.0) == 100.0 + MAX_WAIT_SECONDS


@pytest.mark.parametrize("value", ["99999999999", "9" * 400, "1" + "0" * 5000])
def test_huge_waits_mean_no_deadline(policy, value):
    assert policy.deadline(value, 100.0) is None
