"""Version metadata for the color legend engine."""

__version__ = "1.2.0"
DEV_MODE_ENV_VAR = "COLOR_LEGEND_DEV_MODE"
