"""Adversarial tests for the production configuration guard.

Production must never serve from volatile storage, run in debug mode, or
start without knowing which chain and contracts it renders from.
"""

from __future__ import annotations

import pytest

from artifactforge.config import ForgeConfig
from artifactforge.core.production_guard import (
    PRODUCTION_REQUIRED_SETTINGS,
    ProductionConfigError,
    enforce_production_constraints,
)

_PROD_SETTINGS = {
    "environment": "production",
    "storage_backend": "s3",
    "rpc_url": "https://rpc.example",
    "generator_address": "0x" + "a1" * 20,
    "token_address": "0x" + "b2" * 20,
}


# ---------------------------------------------------------------------------
# Test: debug mode
# ---------------------------------------------------------------------------


class TestProductionGuardDebugMode:
    """Production must not run with debug=True."""

    def test_debug_true_in_production_raises(self):
        config = ForgeConfig(**{**_PROD_SETTINGS, "debug": True})
        with pytest.raises(ProductionConfigError, match="debug=True"):
            enforce_production_constraints(config)

    def test_complete_production_config_passes(self):
        enforce_production_constraints(ForgeConfig(**_PROD_SETTINGS))

    def test_debug_true_in_development_allowed(self):
        config = ForgeConfig(environment="development", debug=True)
        enforce_production_constraints(config)  # guard only applies in production


# ---------------------------------------------------------------------------
# Test: storage durability
# ---------------------------------------------------------------------------


class TestProductionStorage:
    def test_memory_backend_rejected(self):
        config = ForgeConfig(**{**_PROD_SETTINGS, "storage_backend": "memory"})
        with pytest.raises(ProductionConfigError, match="storage_backend=memory"):
            enforce_production_constraints(config)

    def test_backend_name_case_insensitive(self):
        config = ForgeConfig(**{**_PROD_SETTINGS, "storage_backend": "MEMORY"})
        with pytest.raises(ProductionConfigError):
            enforce_production_constraints(config)


# ---------------------------------------------------------------------------
# Test: required settings
# ---------------------------------------------------------------------------


class TestProductionRequiredSettings:
    @pytest.mark.parametrize("name", PRODUCTION_REQUIRED_SETTINGS)
    def test_each_required_setting_enforced(self, name):
        config = ForgeConfig(**{**_PROD_SETTINGS, name: ""})
        with pytest.raises(ProductionConfigError, match=name):
            enforce_production_constraints(config)

    def test_all_violations_reported_together(self):
        config = ForgeConfig(environment="production", debug=True, storage_backend="memory",
                             rpc_url="", generator_address="", token_address="")
        with pytest.raises(ProductionConfigError) as excinfo:
            enforce_production_constraints(config)
        message = str(excinfo.value)
        assert "debug=True" in message
        assert "storage_backend=memory" in message
        for name in PRODUCTION_REQUIRED_SETTINGS:
            assert name in message
