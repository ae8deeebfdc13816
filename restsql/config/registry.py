from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import Dict

import yaml
from pydantic import ValidationError

from restsql.config.models import ServiceConfig

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """
    Loads, validates, and serves ServiceConfig objects.

    Backend: directory of YAML files (one file per REST service). The registry
    is initialized once at startup via load_all(); the gateway reloads by
    loading a fresh registry and swapping it in with the catalog built from it.
    """

    def __init__(self, config_dir: str = "configs/services") -> None:
        self._config_dir = Path(config_dir)
        self._configs: Dict[str, ServiceConfig] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load_all(self) -> None:
        """
        Scan config_dir for *.yaml / *.yml files and parse each into a
        ServiceConfig. Replaces the in-memory map atomically on success.

        Raises:
            FileNotFoundError: if config_dir does not exist.
            ValueError: if two files declare the same schema_name.
        """
        if not self._config_dir.exists():
            raise FileNotFoundError(
                f"Service config directory not found: {self._config_dir}"
            )

        paths = sorted(
            list(self._config_dir.glob("*.yaml")) + list(self._config_dir.glob("*.yml"))
        )
        new_configs: Dict[str, ServiceConfig] = {}
        for yaml_path in paths:
            try:
                raw = yaml.safe_load(yaml_path.read_text())
                cfg = ServiceConfig.model_validate(raw)
            except (ValidationError, yaml.YAMLError) as exc:
                logger.error("Failed to load service config %s: %s", yaml_path, exc)
                raise
            if cfg.schema_name in new_configs:
                raise ValueError(
                    f"Duplicate schema '{cfg.schema_name}' in {yaml_path.name}"
                )
            new_configs[cfg.schema_name] = cfg
            logger.info(
                "Loaded service config: %s (%d table(s), %s)",
                cfg.schema_name, len(cfg.tables), yaml_path.name,
            )

        with self._lock:
            self._configs = new_configs

        logger.info("ServiceRegistry loaded %d service(s).", len(new_configs))

    def register(self, cfg: ServiceConfig) -> None:
        """Add or replace a single service (used for programmatic setup)."""
        with self._lock:
            configs = dict(self._configs)
            configs[cfg.schema_name] = cfg
            self._configs = configs

    def all_services(self) -> list[ServiceConfig]:
        with self._lock:
            return [self._configs[k] for k in sorted(self._configs)]

    def count(self) -> int:
        with self._lock:
            return len(self._configs)
