import logging

import pytest

from commandgate.services.command import extract_params, trigger_check


@pytest.mark.parametrize(
    "body",
    [".test", ".test dev something", ".test something", "  .test  ", ".test\nmore", ".test|param"],
)
def test_trigger_found(body):
    assert trigger_check(body, ".test")


@pytest.mark.parametrize("body", [".bad", "I want to .test", ".tester", "", "I want to .ping a website"])
def test_trigger_not_found(body, caplog):
    caplog.set_level(logging.INFO, logger="commandgate")
    assert not trigger_check(body, ".test")
    assert 'Trigger ".test" not found in the comment body' in caplog.text


def test_custom_separator_counts_as_boundary():
    assert trigger_check(".deploy#env=prod", ".deploy", "#")
    assert not trigger_check(".deploy#env=prod", ".deploy", "|")


def test_extract_params(caplog):
    caplog.set_level(logging.INFO, logger="commandgate")
    assert extract_params(".deploy | env=prod  ") == "env=prod"
    assert "🧮 detected parameters in command: env=prod" in caplog.text


def test_extract_params_keeps_later_separators():
    assert extract_params(".deploy | a | b") == "a | b"


@pytest.mark.parametrize("body", [".deploy", ".deploy |", ".deploy |   "])
def test_extract_params_none(body):
    assert extract_params(body) is None


def test_extract_params_custom_separator():
    assert extract_params(".deploy # cpu=2", "#") == "cpu=2"
