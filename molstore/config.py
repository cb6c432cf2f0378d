"""Settings for the molecule store and its transformation engine.

Where archives live, where scratch workspaces are created, which force
field directory and CONECT program the GROMACS transformer uses, and how
long that program may run.  Values come from ``MOLSTORE_*`` variables or a
local ``.env`` file.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Molecule store configuration with environment variable overrides.

    All settings can be overridden via MOLSTORE_* environment variables
    or a .env file in the working directory.

    Examples
    --------
    Override via environment::

        export MOLSTORE_MOLECULE_ROOT_DIR=/data/molecules
        export MOLSTORE_LOG_LEVEL=DEBUG
        export MOLSTORE_CONECT_COMMAND='["bash", "/opt/utils/create_conect_pdb.sh"]'

    Or via .env file::

        MOLSTORE_FORCE_FIELD_DIR=/opt/force_fields
        MOLSTORE_TRANSFORM_TIMEOUT_SECONDS=120
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MOLSTORE_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Storage paths
    molecule_root_dir: Path = Path("molecules")
    tmp_base_dir: Path | None = None  # None: system temporary directory

    # Transformation engine
    force_field_dir: Path = Path("force_fields")
    conect_command: list[str] = Field(default_factory=list)  # empty: bundled script
    conect_mdp_path: Path | None = None  # None: bundled run.mdp
    transform_timeout_seconds: float = 300.0

    # Archives and identifiers
    compression_level: int = Field(default=6, ge=0, le=9)
    worker_id: int = Field(default=0, ge=0, le=1023)

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Shared instance: `from molstore.config import config`
config = StoreSettings()
