"""Persistent color legend overlay and label rewriting for a churning host tree."""
from color_legend.config import EngineConfig, load_engine_config
from color_legend.engine import ColorLegendEngine, start_engine
from color_legend.host_tree import HostDocument, HostNode
from color_legend.version import __version__

__all__ = [
    "ColorLegendEngine",
    "EngineConfig",
    "HostDocument",
    "HostNode",
    "__version__",
    "load_engine_config",
    "start_engine",
]
