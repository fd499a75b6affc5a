"""Production configuration guard: enforces hard constraints in production.

The guard validates that production-critical settings are correctly
configured before the service starts. It fails hard (raises
``ProductionConfigError``) if any constraint is violated.
"""

from __future__ import annotations

import logging

from artifactforge.config import ForgeConfig

logger = logging.getLogger(__name__)

# Settings that must be non-empty in production.
PRODUCTION_REQUIRED_SETTINGS: list[str] = [
    "rpc_url",
    "generator_address",
    "token_address",
]


class ProductionConfigError(RuntimeError):
    """Raised when production configuration constraints are violated.

    The process should exit; this error must not be caught and ignored.
    """


def enforce_production_constraints(config: ForgeConfig) -> None:
    """Validate all production-critical configuration constraints.

    Constraints enforced
    --------------------
    1. Debug mode must be disabled.
    2. Artifacts must go to durable storage, not the in-memory backend.
    3. RPC endpoint and contract addresses must be configured.

    Raises
    ------
    ProductionConfigError
        If any production constraint is violated.
    """
    if not config.is_production:
        return  # Guard only applies in production

    violations: list[str] = []

    if config.debug:
        violations.append(
            "debug=True is not allowed in production. Set ARTIFACTFORGE_DEBUG=false."
        )

    if config.storage_backend.lower() == "memory":
        violations.append(
            "storage_backend=memory loses published artifacts on restart. "
            "Set ARTIFACTFORGE_STORAGE_BACKEND to s3 or blob."
        )

    for name in PRODUCTION_REQUIRED_SETTINGS:
        if not getattr(config, name, ""):
            violations.append(
                f"Setting '{name}' is required in production but not configured. "
                f"Set ARTIFACTFORGE_{name.upper()}."
            )

    # Collect and report all violations at once
    if violations:
        msg = "Production configuration guard failed.\n" + "\n".join(
            f"  - {v}" for v in violations
        )
        logger.critical(msg)
        raise ProductionConfigError(msg)

    logger.info("Production configuration guard passed.")
