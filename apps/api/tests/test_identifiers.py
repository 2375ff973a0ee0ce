"""Tests for external identifier generation."""

import re

import pytest

from radflow.core import identifiers


def test_to_base36():
    assert identifiers.to_base36(0) == "0"
    assert identifiers.to_base36(35) == "Z"
    assert identifiers.to_base36(36) == "10"
    with pytest.raises(ValueError):
        identifiers.to_base36(-1)


def test_report_id_format():
    report_id = identifiers.new_report_id("orga")
    assert re.fullmatch(r"RPT-ORGA-[0-9A-Z]+-[0-9A-F]{8}", report_id)


def test_study_id_scoped_to_tenant_and_lab():
    external_id = identifiers.new_study_external_id("ORGB", " lab 1 ")
    assert external_id.startswith("BP-ORGB-LAB1-")


def test_study_id_without_lab():
    assert identifiers.new_study_external_id("ORGB", None).startswith("BP-ORGB-NOLAB-")


def test_empty_scope_tokens_skipped():
    assert re.fullmatch(r"RPT-[0-9A-Z]+-[0-9A-F]{8}", identifiers.new_report_id(None))


def test_ids_do_not_repeat():
    ids = {identifiers.new_report_id("ORGA") for _ in range(200)}
    assert len(ids) == 200


@pytest.mark.parametrize(
    "value,expected",
    [
        ("RPT-ORGA-LX1-ABCDEF12", True),
        ("", False),
        (None, False),
        ("has space", False),
        ("x" * 200, False),
    ],
)
def test_is_well_formed(value, expected):
    assert identifiers.is_well_formed(value) is expected
