"""artifactforge: token artifact materialization pipeline.

Reassembles a generative script from on-chain storage shards, renders each
token inside an isolated headless sandbox, validates the canvas output,
traces it to SVG, and publishes pixel history, PNG and SVG to object
storage behind a mutation-count freshness protocol.
"""

__version__ = "0.1.0"
__description__ = "Token artifact materialization pipeline"

from artifactforge.core.coordinator import RegenerationCoordinator
from artifactforge.core.pipeline import MaterializationPipeline

__all__ = ["MaterializationPipeline", "RegenerationCoordinator", "__version__"]
