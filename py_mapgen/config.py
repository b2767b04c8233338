"""Configuration management."""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings pulled from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PY_MAPGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="console", description="Logging format (console or json)"
    )

    # Generation
    default_seed: Optional[str] = Field(
        default=None, description="Seed used when a run does not supply one"
    )


class GenerationParams(BaseModel):
    """Parameters for a single map generation run."""

    model_config = ConfigDict(frozen=True)

    seed: Optional[Union[int, str]] = Field(
        default=None, description="Random seed for reproducible generation"
    )

    # Mesh
    width: float = Field(default=1.0, gt=0, description="Map extent width")
    height: float = Field(default=1.0, gt=0, description="Map extent height")
    n_points: int = Field(
        default=4096, ge=4, description="Number of random points before relaxation"
    )
    relax_iterations: int = Field(
        default=1, ge=0, description="Lloyd relaxation passes over the points"
    )

    # Terrain
    n_mountains: int = Field(default=50, ge=0, description="Number of mountains")
    mountain_radius: float = Field(
        default=0.05, gt=0, description="Mountain radius in extent units"
    )
    smoothing_passes: int = Field(
        default=10, ge=0, description="Neighbour-averaging passes before peaky()"
    )

    # Erosion
    erosion_amount: float = Field(
        default=0.05, ge=0, description="Height removed from the most eroded vertex per cycle"
    )
    erosion_cycles: int = Field(default=5, ge=0, description="Erosion cycles")
    max_fill_iterations: int = Field(
        default=2000, ge=1, description="Iteration ceiling for sink filling"
    )

    # Water
    sea_level_quantile: float = Field(
        default=0.5, ge=0, le=1, description="Fraction of the map below sea level"
    )
    river_threshold: float = Field(
        default=0.01, ge=0, description="River flux threshold as a fraction of land rainfall"
    )

    # Politics
    n_cities: int = Field(default=15, ge=0, description="Number of cities to place")
    n_territories: int = Field(
        default=5, ge=0, description="Number of capitals founding territories"
    )


# Instantiate singleton settings object
settings = Settings()
