"""Tests for Playwright viewport sizing. No browser is launched."""

from __future__ import annotations

import pytest

from artifactforge.core.render_engine import SandboxBackend
from artifactforge.sandbox.playwright_backend import PlaywrightSandboxBackend


class TestViewportFor:
    def test_default_width_uses_configured_viewport(self):
        backend = PlaywrightSandboxBackend()
        assert backend.viewport_for(None) == {"width": 2400, "height": 1800}
        assert backend.viewport_for(1200) == {"width": 2400, "height": 1800}

    def test_override_scales_viewport(self):
        backend = PlaywrightSandboxBackend()
        assert backend.viewport_for(600) == {"width": 1200, "height": 900}
        assert backend.viewport_for(2400) == {"width": 4800, "height": 3600}

    def test_custom_base_ratio(self):
        backend = PlaywrightSandboxBackend(viewport_width=1000, viewport_height=500, canvas_width=500)
        assert backend.viewport_for(250) == {"width": 500, "height": 250}

    def test_rejects_non_positive_width(self):
        with pytest.raises(ValueError):
            PlaywrightSandboxBackend().viewport_for(0)

    def test_rejects_non_positive_construction(self):
        with pytest.raises(ValueError):
            PlaywrightSandboxBackend(canvas_width=0)

    def test_satisfies_backend_protocol(self):
        assert isinstance(PlaywrightSandboxBackend(), SandboxBackend)
