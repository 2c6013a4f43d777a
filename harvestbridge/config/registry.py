from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from harvestbridge.config.models import BridgeConfig

logger = logging.getLogger(__name__)


class DuplicateBridgeError(ValueError):
    """Two config files declare the same bridge_id."""


class BridgeRegistry:
    """
    BridgeConfig per *.yaml file under config_dir.

    A file without a bridge_id is named after its stem. A failed load leaves
    the previously loaded set in place, so the gateway can call reload() on a
    live process and keep serving if the new files are broken.
    """

    def __init__(self, config_dir: str = "configs/bridges") -> None:
        self._config_dir = Path(config_dir)
        self._configs: Dict[str, BridgeConfig] = {}
        self._lock = threading.RLock()

    def load_all(self) -> Dict[str, BridgeConfig]:
        """
        Read every bridge file and replace the loaded set.

        Raises:
            FileNotFoundError: config_dir does not exist.
            ValidationError / yaml.YAMLError: a file is not a valid bridge.
            DuplicateBridgeError: two files resolve to the same bridge_id.
        """
        if not self._config_dir.is_dir():
            raise FileNotFoundError(f"Bridge config directory not found: {self._config_dir}")

        loaded: Dict[str, BridgeConfig] = {}
        sources: Dict[str, str] = {}
        for yaml_path in sorted(self._config_dir.glob("*.yaml")):
            cfg = self._read(yaml_path)
            if cfg.bridge_id in loaded:
                raise DuplicateBridgeError(
                    f"bridge_id '{cfg.bridge_id}' declared by both "
                    f"{sources[cfg.bridge_id]} and {yaml_path.name}"
                )
            loaded[cfg.bridge_id] = cfg
            sources[cfg.bridge_id] = yaml_path.name

        with self._lock:
            self._configs = loaded
        logger.info("Loaded %d bridge(s) from %s: %s", len(loaded), self._config_dir, sorted(loaded))
        return dict(loaded)

    def reload(self) -> Dict[str, BridgeConfig]:
        """load_all(), logging which bridges appeared or went away."""
        before = set(self.all_bridge_ids())
        loaded = self.load_all()
        added = sorted(set(loaded) - before)
        removed = sorted(before - set(loaded))
        if added or removed:
            logger.info("Bridge reload: added=%s removed=%s", added, removed)
        return loaded

    def get(self, bridge_id: str) -> Optional[BridgeConfig]:
        with self._lock:
            return self._configs.get(bridge_id)

    def all_bridge_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._configs)

    def count(self) -> int:
        with self._lock:
            return len(self._configs)

    # ------------------------------------------------------------------

    @staticmethod
    def _read(yaml_path: Path) -> BridgeConfig:
        try:
            raw = yaml.safe_load(yaml_path.read_text()) or {}
            if isinstance(raw, dict):
                raw.setdefault("bridge_id", yaml_path.stem)
            return BridgeConfig.model_validate(raw)
        except (ValidationError, yaml.YAMLError) as exc:
            logger.error("Invalid bridge config %s: %s", yaml_path, exc)
            raise
