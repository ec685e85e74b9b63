"""Shared fixtures for Clinic-Pivot tests."""

import pytest

from clinic_pivot.domain.facts import TableLayout


@pytest.fixture
def sample_records():
    """The three results from the clinic results collection."""
    return [
        {"patient_id": 1, "field_nm": "a", "field_value": "1", "clinic_id": 1},
        {"patient_id": 1, "field_nm": "b", "field_value": "2", "clinic_id": 1},
        {"patient_id": 3, "field_nm": "a", "field_value": "3", "clinic_id": 1},
    ]


@pytest.fixture
def default_layout():
    """Fields a, b, c for patients 1 to 5, null default."""
    return TableLayout(field_names=["a", "b", "c"], patient_ids=[1, 2, 3, 4, 5], default_value=None)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run with no CP_* variables set and no .env file in the working directory."""
    for name in ("CP_FIELD_NAMES", "CP_PATIENT_IDS", "CP_DEFAULT_VALUE", "CP_SOURCE", "CP_SOURCE_TABLE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
