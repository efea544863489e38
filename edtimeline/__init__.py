"""
Package initializer for edtimeline.
"""

__version__ = "0.2.0"

# Version metadata, included in all exported artifacts
ENGINE_VERSION = __version__
OUTPUT_SCHEMA_VERSION = "timeline_snapshot_v2"

__all__ = ["__version__", "ENGINE_VERSION", "OUTPUT_SCHEMA_VERSION"]
