"""Tests for the Rdatasets download helpers (network calls are monkeypatched)."""

from __future__ import annotations

from pathlib import Path

import pytest
import requests

from multilevel_leakage import datasets
from multilevel_leakage.datasets import (
    KNOWN_DATASETS,
    fetch_rdataset,
    load_known_dataset,
    rdataset_url,
    runs_label,
)

_SLEEPSTUDY_CSV = (
    "rownames,Reaction,Days,Subject\n"
    "1,249.56,0,308\n"
    "2,258.70,1,308\n"
    "3,250.80,2,308\n"
    "4,222.73,0,309\n"
    "5,205.26,1,309\n"
    "6,202.97,2,309\n"
)


class _FakeResponse:
    def __init__(self, text: str, status: int = 200):
        self.content = text.encode("utf-8")
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def test_rdataset_url():
    assert rdataset_url("lme4", "sleepstudy").endswith("/csv/lme4/sleepstudy.csv")


def test_runs_label_names_the_source():
    assert runs_label("simulated") == "simulated cohorts"
    assert runs_label("sleepstudy") == "resampling seeds on sleepstudy"


def test_fetch_downloads_once_then_uses_cache(tmp_path: Path, monkeypatch):
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        return _FakeResponse(_SLEEPSTUDY_CSV)

    monkeypatch.setattr(datasets.requests, "get", fake_get)
    first = fetch_rdataset("lme4", "sleepstudy", tmp_path)
    second = fetch_rdataset("lme4", "sleepstudy", tmp_path)
    assert first == second
    assert first.read_text() == _SLEEPSTUDY_CSV
    assert len(calls) == 1
    assert not list(tmp_path.glob("*.part"))


def test_fetch_raises_on_http_error(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(
        datasets.requests, "get", lambda url, timeout: _FakeResponse("not found", status=404)
    )
    with pytest.raises(requests.HTTPError):
        fetch_rdataset("lme4", "missing", tmp_path)
    assert not (tmp_path / "lme4_missing.csv").exists()


def test_load_known_dataset_maps_columns(tmp_path: Path):
    (tmp_path / "lme4_sleepstudy.csv").write_text(_SLEEPSTUDY_CSV)
    frame, formula = load_known_dataset("sleepstudy", tmp_path)
    assert formula == KNOWN_DATASETS["sleepstudy"]["formula"]
    assert {"subject", "time", "score"} <= set(frame.columns)
    assert set(frame["subject"]) == {"308", "309"}


def test_load_known_dataset_rejects_unknown_name(tmp_path: Path):
    with pytest.raises(ValueError, match="unknown dataset"):
        load_known_dataset("iris", tmp_path)
