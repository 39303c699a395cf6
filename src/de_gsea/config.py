import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import tomli
import tomli_w
from loguru import logger


@dataclass
class PipelineConfig:
    min_set_size: int = 50
    max_set_size: int = 1500
    top_n: int = 10
    permutation_num: int = 1000
    seed: int = 42
    n_jobs: int = 1
    symbol_space: str = "symbol"
    pathway_space: str = "entrez"
    grouping_columns: List[str] = field(default_factory=lambda: ["region", "class"])
    creation_date: Optional[str] = None

    required = ['min_set_size', 'max_set_size', 'top_n', 'symbol_space', 'pathway_space']

    def __post_init__(self):
        if self.min_set_size > self.max_set_size:
            raise ValueError(
                f"min_set_size ({self.min_set_size}) must not exceed max_set_size ({self.max_set_size})"
            )
        if self.top_n < 1:
            raise ValueError(f"top_n must be positive, got {self.top_n}")

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineConfig":
        """
        Initialize PipelineConfig from dict, validating required keys.
        """
        missing = [key for key in cls.required if key not in data]
        if missing:
            raise ValueError(
                f"Configuration file is missing required keys: {', '.join(missing)}"
            )
        known = {key: data[key] for key in cls.__dataclass_fields__ if key in data}
        return cls(**known)

    @classmethod
    def read_toml(cls, path: Path) -> "PipelineConfig":
        """
        Read TOML from `path`, validate required fields, and return a PipelineConfig instance.
        """
        with open(path, 'rb') as f:
            data = tomli.load(f)
        return cls.from_dict(data)

    def write_toml(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {key: value for key, value in asdict(self).items() if value is not None}
        with open(path, 'wb') as f:
            tomli_w.dump(data, f)


def _get_config_path() -> Path:
    """
    Determine the platform-specific config.toml path for de_gsea.
    """
    if os.name == 'nt':  # Windows
        config_dir = Path(os.environ.get('APPDATA', '')) / 'de_gsea'
    else:
        config_dir = Path.home() / '.config' / 'de_gsea'
    return config_dir / 'config.toml'


def get_configuration(path: Optional[Path] = None) -> PipelineConfig:
    """
    Get the configuration from a TOML file in a platform-independent way.

    The configuration file is located in:
    - Windows: %APPDATA%/de_gsea/config.toml
    - macOS/Linux: ~/.config/de_gsea/config.toml
    """
    config_path = path or _get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found at {config_path}. "
            f"Please create a configuration file using write_initial_configuration() and update it with your settings."
        )
    return PipelineConfig.read_toml(config_path)


def write_initial_configuration(overwrite: bool = False, **settings) -> Path:
    """
    Write a configuration file with default values, updated by `settings`.
    """
    config_path = _get_config_path()
    if config_path.exists() and not overwrite:
        logger.info(f"Configuration file already exists at {config_path}, not overwriting")
        return config_path

    config = PipelineConfig(
        creation_date=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        **settings,
    )
    config.write_toml(config_path)
    logger.info(f"Created initial configuration file at {config_path}")
    return config_path
