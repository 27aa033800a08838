from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from cachesim.core.cache import CacheConfiguration

logger = logging.getLogger(__name__)


@dataclass
class SimulatorSettings:
    """Settings of one simulator run: cache geometry, policies, inputs, outputs."""
    # Cache geometry and policies
    cache_size: int = 1024
    block_size: int = 32
    associativity: int = 4  # 0 = fully associative, 1 = direct mapped
    replacement_policy: str = "LRU"
    write_policy: str = "WRITE_THROUGH"
    write_miss_policy: str = "WRITE_ALLOCATE"
    seed: Optional[int] = None  # Random policy / Random Access scenario

    # Config file
    config_file: str = ""

    # Inputs (first one set wins: trace file, address list, scenario)
    trace_file: str = ""
    addresses: str = ""
    operations: str = ""
    scenario: str = "Default"
    num_passes: int = 1

    # Outputs
    output_file: str = "stats.txt"
    json_file: str = ""
    csv_file: str = ""
    chart_file: str = ""
    verbose: bool = False
    quiet: bool = False

    def update_from_yaml(self, yaml_path: str):
        """Updates settings fields from a YAML file.

        Raises ValueError if the document is not a mapping or a value has the
        wrong type for its setting; yaml.YAMLError if the file does not parse.
        """
        with open(yaml_path, 'r') as f:
            yaml_config = yaml.safe_load(f) or {}
        if not isinstance(yaml_config, dict):
            raise ValueError(f"{yaml_path}: expected a mapping of settings, got {type(yaml_config).__name__}")
        defaults = {f.name: f.default for f in fields(self)}
        for key, value in yaml_config.items():
            key = str(key).replace('-', '_')
            if key not in defaults:
                logger.warning("Ignoring unknown setting %r in %s", key, yaml_path)
                continue
            # seed is the only setting whose default is None
            nullable = defaults[key] is None
            expected = int if nullable else type(defaults[key])
            if not (nullable and value is None) and type(value) is not expected:
                raise ValueError(f"{yaml_path}: setting {key!r} must be {expected.__name__}, "
                                 f"got {type(value).__name__}")
            setattr(self, key, value)

    @classmethod
    def from_args(cls, args) -> SimulatorSettings:
        """Create settings from parsed argparse arguments (YAML first, then CLI overrides)."""
        settings = cls()

        if getattr(args, 'config', None):
            settings.config_file = args.config
            if Path(settings.config_file).exists():
                settings.update_from_yaml(settings.config_file)
            else:
                logger.warning("Config file %s not found.", settings.config_file)

        for key, value in vars(args).items():
            if value is not None and key != 'config' and hasattr(settings, key):
                setattr(settings, key, value)
        return settings

    def to_cache_configuration(self) -> CacheConfiguration:
        """Raises InvalidConfiguration if the cache settings are inconsistent."""
        return CacheConfiguration(
            cache_size=self.cache_size,
            block_size=self.block_size,
            associativity=self.associativity,
            replacement_policy=self.replacement_policy,
            write_policy=self.write_policy,
            write_miss_policy=self.write_miss_policy,
        )
