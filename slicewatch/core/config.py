"""
Application configuration for slicewatch.

Provides environment-aware settings with conservative defaults. All interval
thresholds are configurable to avoid hard-coded "magic numbers".
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import ApproximationKind


class IntervalConfig(BaseModel):
	"""
	Interval search and scoring configuration.

	Notes:
	- Width thresholds are fractions of a slice's whole time span.
	- Value thresholds are fractions of a slice's whole value range.
	- chunk_divisor and max_length_divisor bound the search grid so it grows
	  sub-quadratically with slice length.
	"""

	approximation_kind: ApproximationKind = Field(
		ApproximationKind.LINEAR,
		description="Trend function applied uniformly to every slice",
	)
	min_interval_width_fraction: float = Field(
		0.05, ge=0.0, le=1.0, description="Shortest interval considered, as a share of the date range"
	)
	decrease_threshold_fraction: float = Field(
		0.5, ge=0.0, le=1.0, description="Drop sustainedness required per unit of relative width"
	)
	decrease_sigma_multiplier: float = Field(
		0.0, ge=0.0, description="Noise floor for drops, in units of the approximation sigma"
	)
	flatness_threshold_fraction: float = Field(
		0.1, gt=0.0, le=1.0, description="Largest relative value range of a flat interval"
	)
	width_threshold: float = Field(
		0.2, gt=0.0, description="Baseline added to the excursion when scoring flatness"
	)
	max_results: int = Field(32, ge=1)
	remove_intersections: bool = True
	chunk_divisor: int = Field(16, ge=1)
	max_length_divisor: int = Field(4, ge=1)
	max_workers: int = Field(1, ge=1, description="Threads used to scan slices")


class SlicingConfig(BaseModel):
	"""
	Source table layout and slice retrieval limits.
	"""

	table_name: str = "data"
	date_column: str = "first_date"
	amount_column: str = "amount"
	max_slices_per_combo: int = Field(16, ge=1)
	max_categories: int = Field(2, ge=1)


class Config(BaseSettings):
	"""
	Global configuration with environment overrides.
	"""

	model_config = SettingsConfigDict(
		env_prefix="SLICEWATCH_",
		env_file=".env",
		env_nested_delimiter="__",
		extra="ignore",
	)

	log_level: str = Field("INFO", description="Default logging level")
	logs_dir: Path = Field(Path("logs"), description="Directory for log files")
	intervals: IntervalConfig = IntervalConfig()
	slicing: SlicingConfig = SlicingConfig()

	def model_post_init(self, __context: object) -> None:
		self.logs_dir.mkdir(parents=True, exist_ok=True)


config = Config()
