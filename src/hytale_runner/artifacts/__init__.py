"""Server jar resolution (remote URL cache / local path)."""

from __future__ import annotations

from hytale_runner.artifacts.resolver import ArtifactResolver, ArtifactSource, cache_key, cache_path_for

__all__ = ["ArtifactResolver", "ArtifactSource", "cache_key", "cache_path_for"]
