"""
Engine configuration with environment variable support and validation.

Every knob has a working default, so the engine runs unconfigured; the
environment only tunes it.
"""

import logging
import os
import sys
from datetime import tzinfo
from functools import lru_cache
from typing import Literal, Optional, cast
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .convert import parse_ratio
from .errors import ConversionError

# Load environment variables from .env file
load_dotenv()

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EngineConfig(BaseModel):
    """Tunables for curve evaluation, forecasting and scheduling."""

    degeneracy_tolerance: float = Field(
        default=sys.float_info.epsilon,
        ge=0.0,
        description="Rate constants closer than this use the degenerate closed forms",
    )
    snap_hour: int = Field(default=10, ge=0, le=23, description="Local hour next-due dates snap to")
    grid_step_hours: float = Field(default=6.0, gt=0.0, description="Forecast grid spacing")
    forecast_weeks: int = Field(default=4, ge=4, le=8, description="Forecast horizon past now")
    history_tail_days: float = Field(
        default=30.0, ge=0.0, description="Curve is drawn at least this long after the last dose"
    )
    display_unit: str = Field(default="pmol/L", description="Unit for forecast series")
    auto_backfill: bool = Field(default=True, description="Roll overdue schedules forward on load")
    timezone: Optional[str] = Field(default=None, description="IANA zone; None for system local")
    log_level: LogLevel = Field(default="INFO", description="Logging level")

    @field_validator("display_unit")
    def validate_display_unit(cls, v):
        try:
            parse_ratio(v)
        except ConversionError as e:
            raise ValueError(str(e)) from None
        return v

    @field_validator("timezone")
    def validate_timezone(cls, v):
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone {v!r}") from None
        return v

    def tzinfo(self) -> Optional[tzinfo]:
        """Configured zone, or None meaning the process-local zone."""
        return ZoneInfo(self.timezone) if self.timezone else None


def load_config_from_env() -> EngineConfig:
    """Load configuration from HRTENGINE_* environment variables with validation."""

    def _level_to_literal(val: str) -> LogLevel:
        v = val.strip().upper()
        return cast(LogLevel, v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO")

    def _parse_bool(val: Optional[str], default: bool) -> bool:
        if val is None:
            return default
        return val.strip().lower() in {"1", "true", "yes", "on"}

    defaults = EngineConfig()
    return EngineConfig(
        degeneracy_tolerance=float(
            os.getenv("HRTENGINE_DEGENERACY_TOLERANCE", str(defaults.degeneracy_tolerance))
        ),
        snap_hour=int(os.getenv("HRTENGINE_SNAP_HOUR", str(defaults.snap_hour))),
        grid_step_hours=float(os.getenv("HRTENGINE_GRID_STEP_HOURS", str(defaults.grid_step_hours))),
        forecast_weeks=int(os.getenv("HRTENGINE_FORECAST_WEEKS", str(defaults.forecast_weeks))),
        history_tail_days=float(
            os.getenv("HRTENGINE_HISTORY_TAIL_DAYS", str(defaults.history_tail_days))
        ),
        display_unit=os.getenv("HRTENGINE_DISPLAY_UNIT", defaults.display_unit),
        auto_backfill=_parse_bool(os.getenv("HRTENGINE_AUTO_BACKFILL"), defaults.auto_backfill),
        timezone=os.getenv("HRTENGINE_TIMEZONE") or None,
        log_level=_level_to_literal(os.getenv("HRTENGINE_LOG_LEVEL", defaults.log_level)),
    )


@lru_cache
def get_config() -> EngineConfig:
    """Get cached engine configuration."""
    return load_config_from_env()


def configure_logging(config: Optional[EngineConfig] = None) -> None:
    """Apply the configured level to the package loggers."""
    config = config or get_config()
    logging.getLogger("hrtengine").setLevel(config.log_level)
