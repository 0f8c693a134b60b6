"""Contract for the external artifact generator.

Rendering and trait selection live outside this service. A generator is any
object with ``generate`` and ``generate_metadata`` methods; the deployment
names it with ``GENERATOR="package.module:attribute"``.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from gecko_mint.core.errors import MintError
from gecko_mint.core.settings import Settings
from gecko_mint.schemas.metadata import NFTMetadata

logger = logging.getLogger(__name__)


class GenerationError(MintError):
    """Raised when an artifact or its metadata could not be produced."""


@runtime_checkable
class ArtifactGenerator(Protocol):
    """Produces the artifact and metadata document for a member.

    Implementations must be safe to call again for the same member after an
    earlier failure (overwrite or reuse files on disk).
    """

    def generate(self, member_id: int, asset_dir: Path, output_dir: Path) -> Path:
        """Render the artifact and return the path of the produced file."""
        ...

    def generate_metadata(self, member_id: int, config_path: Path) -> Path:
        """Write the metadata document and return its path."""
        ...


@dataclass(frozen=True)
class GeneratedArtifact:
    """Files produced for one member, with the parsed metadata document."""

    artifact_path: Path
    metadata_path: Path | None = None
    metadata: NFTMetadata | None = None


def load_generator(location: str | None) -> ArtifactGenerator | None:
    """Import the generator named by ``location`` (``"module:attribute"``).

    The attribute may be an instance or a zero-argument class/factory.
    Returns None when no generator is configured.
    """
    if not location:
        return None

    module_name, _, attribute = location.partition(":")
    if not module_name or not attribute:
        raise GenerationError(
            f"GENERATOR must look like 'package.module:attribute', got {location!r}"
        )

    try:
        target = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as exc:
        raise GenerationError(f"Cannot load generator {location!r}: {exc}") from exc

    generator = target
    if isinstance(target, type) or (callable(target) and not hasattr(target, "generate")):
        try:
            generator = target()
        except Exception as exc:  # factory is third-party code
            raise GenerationError(f"Cannot instantiate generator {location!r}: {exc}") from exc
    if not isinstance(generator, ArtifactGenerator):
        raise GenerationError(f"{location!r} does not provide generate/generate_metadata")
    return generator


def create_artifact(
    generator: ArtifactGenerator | None,
    member_id: int,
    settings: Settings,
) -> GeneratedArtifact:
    """Run the generator for ``member_id``.

    Metadata is produced first when the generator config exists; a missing
    config is logged and the artifact is still rendered without metadata.

    Raises:
        GenerationError: If no generator is configured, the generator fails or
            the metadata document it wrote is not a JSON object.
    """
    if generator is None:
        raise GenerationError("No artifact generator is configured")

    metadata_path: Path | None = None
    config_path = settings.generator_config_path
    try:
        if config_path.exists():
            metadata_path = generator.generate_metadata(member_id, config_path)
        else:
            logger.error("config file does not exist: %s", config_path)

        artifact_path = generator.generate(member_id, settings.assets_dir, settings.generated_dir)
    except GenerationError:
        raise
    except Exception as exc:  # generator is third-party code
        raise GenerationError(f"Generator failed for member {member_id}: {exc}") from exc

    artifact_path = Path(artifact_path)
    if not artifact_path.is_file():
        raise GenerationError(f"Generator did not produce an artifact at {artifact_path}")
    if metadata_path is not None and not Path(metadata_path).is_file():
        logger.warning("Generator reported metadata at %s but no file exists", metadata_path)
        metadata_path = None

    if metadata_path is None:
        return GeneratedArtifact(artifact_path=artifact_path)

    metadata_path = Path(metadata_path)
    try:
        metadata = NFTMetadata.model_validate_json(metadata_path.read_bytes())
    except (OSError, ValueError) as exc:
        raise GenerationError(f"Unreadable metadata document {metadata_path}: {exc}") from exc

    return GeneratedArtifact(
        artifact_path=artifact_path,
        metadata_path=metadata_path,
        metadata=metadata,
    )
