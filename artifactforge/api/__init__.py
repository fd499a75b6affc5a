"""HTTP surface: regeneration triggers, status, artifact serving, health."""

from artifactforge.api.app import create_app

__all__ = ["create_app"]
