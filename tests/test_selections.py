from __future__ import annotations

import logging
import tomllib
from pathlib import Path

import pytest

from dotmerge.models import SetupSelections
from dotmerge.selections import SelectionStore


def test_missing_selections_load_empty(tmp_path: Path) -> None:
    selections = SelectionStore(tmp_path / "selections.toml").load()

    assert selections == SetupSelections()
    assert not selections.is_feature_enabled("beads")


def test_corrupt_selections_load_empty(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "selections.toml"
    path.write_text("apps = [unterminated")

    with caplog.at_level(logging.WARNING):
        selections = SelectionStore(path).load()

    assert selections.apps == []
    assert "Could not parse selections" in caplog.text


def test_wrong_shapes_load_empty(tmp_path: Path) -> None:
    path = tmp_path / "selections.toml"
    path.write_text('apps = "ghostty"\n')

    assert SelectionStore(path).load().apps == []


def test_save_stamps_and_writes_toml(tmp_path: Path) -> None:
    store = SelectionStore(tmp_path / "state" / "selections.toml")
    selections = SetupSelections(apps=["ghostty"], configs=["zsh", "tmux"])
    selections.set_feature("beads", True)

    saved = store.save(selections)

    assert saved.timestamp > 0
    data = tomllib.loads(store.path.read_text())
    assert data["apps"] == ["ghostty"]
    assert data["configs"] == ["zsh", "tmux"]
    assert data["features"] == {"beads": True}
    assert store.load() == saved


def test_feature_flags_merge_and_only_true_counts(tmp_path: Path) -> None:
    path = tmp_path / "selections.toml"
    path.write_text('[features]\nbeads = true\nai_configs = "yes"\n')
    selections = SelectionStore(path).load()

    selections.set_features({"ai_configs": True, "vim_mode": False})

    assert selections.is_feature_enabled("beads")
    assert selections.is_feature_enabled("ai_configs")
    assert not selections.is_feature_enabled("vim_mode")
    assert not selections.is_feature_enabled("unknown")
