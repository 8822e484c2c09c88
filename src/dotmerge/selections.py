"""Persistence of the user's setup selections (apps, configs and feature flags)."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Mapping

import tomli_w

from .filesystem import epoch_millis, write_text_atomic
from .models import SetupSelections

SELECTIONS_VERSION = 1

logger = logging.getLogger(__name__)


class SelectionStore:
    """Reads and writes ``selections.toml``.

    A missing or unreadable file is an empty selection, so shell startup snippets that
    check feature flags never fail on a fresh machine.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> SetupSelections:
        if not self.path.exists():
            return SetupSelections(version=SELECTIONS_VERSION)

        try:
            with self.path.open("rb") as handle:
                data = tomllib.load(handle)
            return self._from_dict(data)
        except (tomllib.TOMLDecodeError, UnicodeDecodeError, TypeError, ValueError) as exc:
            logger.warning("Could not parse selections '%s' (%s); using empty selections", self.path, exc)
            return SetupSelections(version=SELECTIONS_VERSION)

    def save(self, selections: SetupSelections) -> SetupSelections:
        """Stamp ``selections`` with the current time and write them out."""

        selections.timestamp = epoch_millis()
        payload = {
            "version": selections.version,
            "timestamp": selections.timestamp,
            "apps": list(selections.apps),
            "configs": list(selections.configs),
            "features": dict(selections.features),
        }
        write_text_atomic(self.path, tomli_w.dumps(payload))
        return selections

    @staticmethod
    def _from_dict(data: Mapping[str, Any]) -> SetupSelections:
        apps = data.get("apps", [])
        configs = data.get("configs", [])
        features = data.get("features", {})
        if not isinstance(apps, list) or not isinstance(configs, list):
            raise TypeError("'apps' and 'configs' must be arrays")
        if not isinstance(features, dict):
            raise TypeError("'features' must be a table")
        return SetupSelections(
            version=int(data.get("version", SELECTIONS_VERSION)),
            timestamp=int(data.get("timestamp", 0)),
            apps=[str(app) for app in apps],
            configs=[str(config) for config in configs],
            features={str(name): value is True for name, value in features.items()},
        )
