from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, Field

from liftdesk.schemas.common import WireModel


class MaintenanceSection(WireModel):
    id: int
    template_id: int = Field(validation_alias=AliasChoices("templateId", "template_id"))
    name: str
    order_index: int = Field(default=0, validation_alias=AliasChoices("orderIndex", "order_index"))
    active: bool = True


class MaintenanceTemplate(WireModel):
    id: int
    name: str
    status: str = "ACTIVE"
    sections: List[MaintenanceSection] = Field(default_factory=list)


class SectionCreate(WireModel):
    name: str = Field(min_length=1)
    order_index: int = 0
    active: bool = True


class SectionUpdate(WireModel):
    name: Optional[str] = None
    order_index: Optional[int] = None
    active: Optional[bool] = None
