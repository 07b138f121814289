from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from cameleon.core.errors import TryOnError
from cameleon.core.models import ImageFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogGarment:
    id: int
    name: str
    image: Optional[str]  # file name inside the catalog dir; None = placeholder


DEFAULT_CATALOG: List[CatalogGarment] = [
    CatalogGarment(0, "Floral Jacket", "floral_jacket.png"),
    CatalogGarment(1, "Puffer Jacket", "puffer_jacket.png"),
    CatalogGarment(2, "Coming Soon", None),
    CatalogGarment(3, "Coming Soon", None),
    CatalogGarment(4, "Coming Soon", None),
]


class GarmentError(TryOnError):
    pass


@dataclass(frozen=True)
class GarmentReference:
    """The active garment: either a catalog id or a custom upload, never both."""

    catalog_id: Optional[int] = None
    custom: Optional[ImageFile] = None


class GarmentSelection:
    """Catalog pick and custom upload are mutually exclusive."""

    def __init__(self, catalog_dir: Path, catalog: Optional[List[CatalogGarment]] = None):
        self.catalog_dir = Path(catalog_dir)
        self.catalog = list(catalog if catalog is not None else DEFAULT_CATALOG)
        self._selected_id: Optional[int] = None
        self._custom: Optional[ImageFile] = None

    @property
    def reference(self) -> GarmentReference:
        return GarmentReference(catalog_id=self._selected_id, custom=self._custom)

    @property
    def selected_id(self) -> Optional[int]:
        return self._selected_id

    @property
    def custom(self) -> Optional[ImageFile]:
        return self._custom

    def get(self, garment_id: int) -> CatalogGarment:
        for garment in self.catalog:
            if garment.id == garment_id:
                return garment
        raise GarmentError(f"Unknown garment id: {garment_id}")

    def select_catalog(self, garment_id: int) -> CatalogGarment:
        garment = self.get(garment_id)
        self._selected_id = garment.id
        self._custom = None
        logger.info("Catalog garment selected: %s (%s)", garment.name, garment.id)
        return garment

    def set_custom(self, image: ImageFile) -> None:
        if not image.is_image:
            raise GarmentError(f"Not an image: {image.content_type}")
        self._custom = image
        self._selected_id = None
        logger.info("Custom garment uploaded: %s (%.0f KB)", image.name, image.size_bytes / 1024)

    def clear(self) -> None:
        self._selected_id = None
        self._custom = None

    @property
    def has_garment(self) -> bool:
        if self._custom is not None:
            return True
        if self._selected_id is None:
            return False
        return self.get(self._selected_id).image is not None

    def resolve_file(self) -> Optional[ImageFile]:
        """Return the active garment image, or None (no selection or placeholder)."""
        if self._custom is not None:
            return self._custom
        if self._selected_id is None:
            return None
        garment = self.get(self._selected_id)
        if garment.image is None:
            return None
        path = self.catalog_dir / garment.image
        try:
            image = ImageFile.from_path(path)
        except OSError as e:
            raise GarmentError(f"Garment image unavailable: {path.name}") from e
        return ImageFile(name="garment.png", content_type=image.content_type, data=image.data)

    def describe(self) -> List[dict]:
        return [
            {
                "id": g.id,
                "name": g.name,
                "available": g.image is not None,
                "selected": g.id == self._selected_id,
            }
            for g in self.catalog
        ]
