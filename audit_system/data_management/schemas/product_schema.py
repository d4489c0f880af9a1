"""Product schema: the audited subject.

Products are created externally. The pipeline only reads them and toggles
the staleness flag that feeds the refresh sweep.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, Field


class Product(BaseModel):
    """Audited product with its raw manufacturer-claimed specifications.

    technical_specs accepts either a label -> value mapping or an ordered list
    of {label, value} style rows; stage 1 normalizes both shapes.
    """

    product_id: str = Field(..., description="Stable product identifier")
    slug: str = Field(..., description="URL slug, unique per product")
    brand: str = Field(default="", description="Manufacturer brand")
    model_name: str = Field(default="", description="Manufacturer model name")
    category: str = Field(default="", description="Product category")
    technical_specs: Union[dict[str, Any], list[dict[str, Any]]] = Field(
        default_factory=dict,
        description="Raw claimed specifications (mapping or list of rows)",
    )
    weight_lbs: Optional[float] = Field(default=None, description="Claimed weight")
    msrp_usd: Optional[float] = Field(default=None, description="List price")
    is_stale: bool = Field(
        default=False,
        description="Externally or integrity-check flagged for the next refresh sweep",
    )
    stale_flagged_at: Optional[datetime] = Field(default=None)

    @property
    def display_name(self) -> str:
        name = f"{self.brand} {self.model_name}".strip()
        return name or self.slug
