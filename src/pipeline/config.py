"""
Pipeline Configuration

Run settings come from a YAML file (config/pipeline.yaml); API credentials
come from the environment, typically a local .env file that is never
committed.
"""

import logging
import os
from datetime import date
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, validator

from common.errors import ConfigurationError
from observations.schemas import DEFAULT_VARIABLE, VARIABLE_FIELDS
from region.loader import CBSA_BOUNDARY_URL
from stations.matching import DEFAULT_MAX_DISTANCE_KM

logger = logging.getLogger(__name__)

CONFIG_RELATIVE_PATH = Path('config') / 'pipeline.yaml'

# Resolves to the repository's config/ in a checkout or editable install
# only; an installed package has no config/ beside it.
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / CONFIG_RELATIVE_PATH

# Provider label -> backend. Labels are the catalog's network short names.
# Archive-backed stations without a GHCND code are linked to archive
# stations by location before fetching.
DEFAULT_PROVIDER_BACKENDS = {
    'CIMIS': 'cimis',
    'COOP': 'ncei',
    'ASOS': 'ncei',
    'ASOS/AWOS': 'ncei',
    'GHCND': 'ncei',
    'NCEI': 'ncei',
}

BACKEND_NAMES = ('cimis', 'ncei')


class RegionSettings(BaseModel):
    source: str = CBSA_BOUNDARY_URL
    name: str = "Sacramento-Roseville-Folsom, CA"
    name_field: str = "NAME"


class StationSettings(BaseModel):
    include_closed: bool = True
    mobile_pattern: Optional[str] = Field(None, description="Regex overriding the default mobile-station pattern")
    archive_match_km: float = Field(
        default=DEFAULT_MAX_DISTANCE_KM,
        gt=0,
        description="Largest distance between a catalog station and the archive station it is linked to",
    )


class FetchSettings(BaseModel):
    variable: str = DEFAULT_VARIABLE
    start: Optional[date] = None
    end: Optional[date] = None
    max_workers: int = Field(default=1, ge=1)
    request_delay: float = Field(default=0.2, ge=0)
    providers: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_PROVIDER_BACKENDS))

    @validator('variable')
    def known_variable(cls, v):
        if v not in VARIABLE_FIELDS:
            raise ValueError(f"unknown variable '{v}', must be one of {list(VARIABLE_FIELDS)}")
        return v

    @validator('providers')
    def known_backends(cls, v):
        unknown = {b for b in v.values() if b not in BACKEND_NAMES}
        if unknown:
            raise ValueError(f"unknown backends {sorted(unknown)}, must be one of {list(BACKEND_NAMES)}")
        return {label.upper(): backend for label, backend in v.items()}

    @validator('end')
    def end_after_start(cls, v, values):
        start = values.get('start')
        if v is not None and start is not None and v < start:
            raise ValueError(f"end {v} is before start {start}")
        return v


class AggregateSettings(BaseModel):
    month: int = Field(default=5, ge=1, le=12)
    min_stations: int = Field(default=1, ge=1)


class ChartSettings(BaseModel):
    lon_window: Optional[Tuple[float, float]] = (-122.6, -120.0)

    @validator('lon_window')
    def ordered_window(cls, v):
        if v is not None and v[0] >= v[1]:
            raise ValueError(f"lon_window must be (min, max), got {v}")
        return v


class Credentials(BaseModel):
    """API credentials, resolved from the environment."""
    synoptic_token: Optional[str] = None
    cimis_app_key: Optional[str] = None
    ncei_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'Credentials':
        load_dotenv()
        return cls(
            synoptic_token=os.getenv('SYNOPTIC_TOKEN'),
            cimis_app_key=os.getenv('CIMIS_APP_KEY'),
            ncei_token=os.getenv('NCEI_TOKEN'),
        )

    def __repr__(self) -> str:
        present = [k for k, v in self.__dict__.items() if v]
        return f"Credentials(configured={present})"

    __str__ = __repr__


class PipelineConfig(BaseModel):
    """Settings for one analysis run."""
    region: RegionSettings = Field(default_factory=RegionSettings)
    stations: StationSettings = Field(default_factory=StationSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    aggregate: AggregateSettings = Field(default_factory=AggregateSettings)
    charts: ChartSettings = Field(default_factory=ChartSettings)
    output_dir: Path = Path('output')
    credentials: Credentials = Field(default_factory=Credentials)

    @classmethod
    def defaults(cls) -> 'PipelineConfig':
        return cls()

    @classmethod
    def from_yaml(cls, config_path: Path) -> 'PipelineConfig':
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to pipeline.yaml

        Returns:
            PipelineConfig instance (credentials not included)

        Raises:
            ConfigurationError: File missing, unreadable, or invalid
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if 'credentials' in config:
            raise ConfigurationError("Credentials belong in the environment (.env), not in the config file")

        try:
            return cls(**config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {config_path}:\n{e}") from e


def find_config_file() -> Optional[Path]:
    """
    Locate config/pipeline.yaml.

    The working directory is searched first, then the repository checkout
    (DEFAULT_CONFIG_PATH). None when neither exists.
    """
    for candidate in (Path.cwd() / CONFIG_RELATIVE_PATH, DEFAULT_CONFIG_PATH):
        if candidate.exists():
            return candidate
    return None


def load_config(config_path: Optional[Path] = None) -> PipelineConfig:
    """
    Load run settings plus credentials from the environment.

    An explicit path must exist. Without one, the file found by
    find_config_file is used, built-in defaults otherwise.
    """
    found = find_config_file() if config_path is None else None
    if config_path is not None:
        config = PipelineConfig.from_yaml(config_path)
    elif found is not None:
        logger.info(f"Using config file {found}")
        config = PipelineConfig.from_yaml(found)
    else:
        logger.info("No config file found, using defaults")
        config = PipelineConfig.defaults()

    return config.model_copy(update={'credentials': Credentials.from_env()})
