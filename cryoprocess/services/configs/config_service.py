# cryoprocess/services/configs/config_service.py
"""
Pure configuration loader - reads conf.yaml and provides typed access.

Lookup order for the file: explicit path, then $CRYOPROCESS_CONFIG, then
config/conf.yaml at the repository root. Only the last one may be missing,
in which case the built-in defaults apply.
"""

import logging
import os
import yaml
from pathlib import Path
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CRYOPROCESS_CONFIG"


def find_repo_root() -> Path:
    """
    Find the repository root by looking for 'config/conf.yaml'
    starting from the current directory and moving up.
    """
    current = Path.cwd()
    if (current / "config" / "conf.yaml").exists():
        return current

    for parent in current.parents:
        if (parent / "config" / "conf.yaml").exists():
            return parent

    # config_service.py lives in cryoprocess/services/configs/
    return Path(__file__).resolve().parent.parent.parent.parent


_REPO_ROOT = find_repo_root()
DEFAULT_CONFIG_PATH = _REPO_ROOT / "config" / "conf.yaml"


class MpiConfig(BaseModel):
    """How multi-process RELION programs are launched"""
    launcher: str = "mpirun"
    launcher_args: List[str] = Field(default_factory=lambda: ["-np", "{n}"])
    submit_to_queue: bool = True


class ExecutablesConfig(BaseModel):
    """External programs RELION wrappers are pointed at"""
    ctffind: str = "ctffind"
    gctf: str = "gctf"
    motioncor2: Optional[str] = None
    dynamight: str = "relion_python_dynamight"


class ThumbnailConfig(BaseModel):
    enabled: bool = True
    size: int = 512
    count: int = -1


class CompilerConfig(BaseModel):
    """Root configuration model"""
    model_config = ConfigDict(extra="ignore")

    mpi: MpiConfig = Field(default_factory=MpiConfig)
    executables: ExecutablesConfig = Field(default_factory=ExecutablesConfig)
    thumbnails: ThumbnailConfig = Field(default_factory=ThumbnailConfig)


class ConfigService:
    """Loads and provides access to static configuration"""

    def __init__(self, config_path: Optional[Path] = None):
        explicit = config_path is not None or bool(os.environ.get(CONFIG_ENV_VAR))
        if config_path is None:
            config_path = Path(os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
        config_path = Path(config_path)

        if not config_path.exists():
            if explicit:
                raise FileNotFoundError(
                    f"Configuration file not found at: {config_path}\n"
                    f"Repo Root identified as: {_REPO_ROOT}\n"
                    f"Copy config/conf.yaml.template to create one."
                )
            logger.debug("[CONFIG] No config file at %s, using built-in defaults", config_path)
            self.config_path = None
            self._config = CompilerConfig()
            return

        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

        self.config_path = config_path
        self._config = CompilerConfig(**data)
        logger.debug("[CONFIG] Loaded %s", config_path)

    @property
    def config(self) -> CompilerConfig:
        return self._config

    @property
    def mpi(self) -> MpiConfig:
        return self._config.mpi

    @property
    def executables(self) -> ExecutablesConfig:
        return self._config.executables

    @property
    def thumbnails(self) -> ThumbnailConfig:
        return self._config.thumbnails

    def launcher_prefix(self, mpi_procs: int) -> List[str]:
        """Tokens placed before the *_mpi binary for local (non-queued) runs."""
        args = [arg.format(n=mpi_procs) for arg in self._config.mpi.launcher_args]
        return [self._config.mpi.launcher, *args]

    def get_executable(self, tool_name: str) -> Optional[str]:
        legacy_mapping: Dict[str, str] = {
            "ctffind4": "ctffind",
            "ctffind5": "ctffind",
            "motioncorr": "motioncor2",
            "relion_python_dynamight": "dynamight",
        }
        lookup_name = legacy_mapping.get(tool_name, tool_name)
        return getattr(self._config.executables, lookup_name, None)


_config_service_instance = None


def get_config_service() -> ConfigService:
    global _config_service_instance
    if _config_service_instance is None:
        _config_service_instance = ConfigService()
    return _config_service_instance


def reset_config_service():
    global _config_service_instance
    _config_service_instance = None
