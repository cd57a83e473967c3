"""imgpin - pin container image references to digests.

Resolves ``FROM`` lines in Dockerfiles and ``image:`` fields in YAML
manifests to immutable ``name@sha256:...`` references.

Packages:
    imgpin.image: Matched-text resolution and document rewriting
    imgpin.oci: Registry transport, digest cache, keychains, errors, metrics
    imgpin.schemas: Pydantic models for references and configuration
    imgpin.cli: The ``imgpin`` command
"""

from __future__ import annotations

__version__ = "0.1.0"
