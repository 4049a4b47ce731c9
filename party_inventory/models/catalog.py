"""
Normalized records returned by a catalog lookup collaborator.

The catalog subsystem queries external rule-content sources and normalizes
their responses into these shapes; this package never parses the external
formats itself.
"""

from pydantic import BaseModel, ConfigDict, Field


class CatalogSearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    ref_id: str
    source: str = ""
    summary: str = ""


class CatalogItemDetails(BaseModel):
    """Item details ready to be turned into an inventory item candidate."""

    model_config = ConfigDict(frozen=True)

    name: str
    category: str = "Miscellaneous"
    weight_per_unit: float = Field(default=0.0, ge=0)
    value_per_unit: int = Field(default=0, ge=0)
    description: str = ""
    properties: dict[str, str] = Field(default_factory=dict)
    source_url: str = ""
