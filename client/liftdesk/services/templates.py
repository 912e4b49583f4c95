from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from liftdesk.core import endpoints
from liftdesk.core.errors import ApiError, ErrorKind
from liftdesk.schemas import MaintenanceSection, MaintenanceTemplate, SectionCreate, SectionUpdate
from liftdesk.services.cache import ReconcilingCache
from liftdesk.services.pipeline import RequestPipeline

logger = logging.getLogger(__name__)


class TemplateNotFoundError(ApiError):
    def __init__(self, template_id: int) -> None:
        super().__init__(
            ErrorKind.NOT_FOUND,
            f"Maintenance template {template_id} not found",
            status_code=404,
            code="TEMPLATE_NOT_FOUND",
        )
        self.template_id = template_id


class TemplateService:
    """Maintenance templates and their checklist sections."""

    def __init__(
        self,
        pipeline: RequestPipeline,
        *,
        sections: Optional[ReconcilingCache[MaintenanceSection]] = None,
    ) -> None:
        self._pipeline = pipeline
        self._templates: Dict[int, MaintenanceTemplate] = {}
        self._sections = sections if sections is not None else ReconcilingCache()
        # placeholder keys for sections the server has not assigned an id yet
        self._placeholder_ids = itertools.count(-1, -1)

    @property
    def sections(self) -> ReconcilingCache[MaintenanceSection]:
        return self._sections

    async def list_templates(self) -> List[MaintenanceTemplate]:
        data = await self._pipeline.get(endpoints.MAINTENANCE_TEMPLATES)
        templates = [self._parse(MaintenanceTemplate, item) for item in (data or [])]
        self._templates = {template.id: template for template in templates}
        return templates

    async def get_template(self, template_id: int) -> MaintenanceTemplate:
        try:
            data = await self._pipeline.get(endpoints.maintenance_template(template_id))
        except ApiError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                raise TemplateNotFoundError(template_id) from exc
            raise
        template = self._parse(MaintenanceTemplate, data)
        self._templates[template.id] = template
        for section in template.sections:
            self._sections.set(section.id, section)
        return template

    def sections_for(self, template_id: int) -> List[MaintenanceSection]:
        """Cached sections of a template, tentative edits included."""
        owned = [section for section in self._sections.values() if section.template_id == template_id]
        return sorted(owned, key=lambda section: (section.order_index, section.id))

    async def create_section(self, template_id: int, name: str, order_index: int = 0) -> MaintenanceSection:
        request = SectionCreate(name=name.strip(), order_index=order_index)
        placeholder = next(self._placeholder_ids)
        snapshot = self._sections.apply_pending(
            placeholder,
            MaintenanceSection(
                id=placeholder,
                template_id=template_id,
                name=request.name,
                order_index=order_index,
            ),
        )
        try:
            data = await self._pipeline.post(
                endpoints.maintenance_template_sections(template_id), json=request.to_wire()
            )
            section = self._parse(MaintenanceSection, data)
        except BaseException:
            self._sections.rollback(snapshot)
            raise
        self._sections.confirm(section.id, section, replaces=placeholder)
        logger.info("Added section %s to template %s", section.id, template_id)
        return section

    async def update_section(
        self,
        section_id: int,
        *,
        name: Optional[str] = None,
        order_index: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> MaintenanceSection:
        request = SectionUpdate(name=name, order_index=order_index, active=active)
        changes = request.model_dump(exclude_none=True)
        if not changes:
            raise ApiError(ErrorKind.VALIDATION, "Nothing to update.", code="EMPTY_UPDATE")
        current = self._sections.get(section_id)
        snapshot = None
        if current is not None:
            snapshot = self._sections.apply_pending(section_id, current.model_copy(update=changes))
        try:
            data = await self._pipeline.patch(endpoints.maintenance_section(section_id), json=request.to_wire())
            section = self._parse(MaintenanceSection, data)
        except BaseException:
            if snapshot is not None:
                self._sections.rollback(snapshot)
            raise
        self._sections.confirm(section.id, section)
        return section

    async def delete_section(self, section_id: int) -> None:
        snapshot = self._sections.apply_pending(section_id, None)
        try:
            await self._pipeline.delete(endpoints.maintenance_section(section_id))
        except BaseException:
            self._sections.rollback(snapshot)
            raise
        self._sections.confirm(section_id, None)
        logger.info("Deleted section %s", section_id)

    @staticmethod
    def _parse(model: Any, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise ApiError(ErrorKind.UNKNOWN, f"Unexpected {model.__name__} data from the server.") from exc
