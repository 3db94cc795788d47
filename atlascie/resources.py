"""
Community resource directory.

Resources are created, edited and deleted by admins and viewed by every
role.  ``eligible_for`` applies the Z-code eligibility filter for the
enrollee selected in the directory view.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from atlascie.eligibility import filter_eligible_resources
from atlascie.models import Enrollee, Resource
from atlascie.rbac import RoleLike, require_permission
from atlascie.repository import PortalRepository

logger = logging.getLogger(__name__)


class ResourceDirectory:
    def __init__(self, repository: PortalRepository) -> None:
        self._repo = repository

    def create_resource(self, actor_role: RoleLike, resource: Resource) -> Resource:
        require_permission("CREATE_RESOURCE", actor_role)
        created = self._repo.add_resource(resource)
        logger.info("Resource %s (%s) created", created.resource_id, created.name)
        return created

    def update_resource(
        self, actor_role: RoleLike, resource_id: str, fields: dict[str, Any]
    ) -> Resource:
        """Update resource fields after validating the merged record.

        Raises:
            PermissionError: If the role lacks ``EDIT_RESOURCE``.
            KeyError: If the resource does not exist.
            ValueError: If a field is unknown or is ``resource_id``.
        """
        require_permission("EDIT_RESOURCE", actor_role)
        current = self._repo.get_resource(resource_id)
        if current is None:
            raise KeyError(f"Resource '{resource_id}' not found")
        if "resource_id" in fields:
            raise ValueError("resource_id cannot be changed")
        unknown = sorted(set(fields) - set(Resource.model_fields))
        if unknown:
            raise ValueError(f"Unknown resource fields: {unknown}")

        merged = Resource.model_validate({**current.model_dump(), **fields})
        self._repo.update_resource(resource_id, {key: getattr(merged, key) for key in fields})
        return merged

    def delete_resource(self, actor_role: RoleLike, resource_id: str) -> None:
        require_permission("DELETE_RESOURCE", actor_role)
        self._repo.delete_resource(resource_id)
        logger.info("Resource %s deleted", resource_id)

    def get_resource(self, actor_role: RoleLike, resource_id: str) -> Optional[Resource]:
        require_permission("VIEW_RESOURCE", actor_role)
        return self._repo.get_resource(resource_id)

    def search(
        self,
        actor_role: RoleLike,
        text: str = "",
        category: Optional[str] = None,
    ) -> list[Resource]:
        """Resources whose name or description contains ``text``
        (case-insensitive), optionally restricted to one category."""
        require_permission("VIEW_RESOURCE", actor_role)
        needle = text.strip().lower()
        results = []
        for resource in self._repo.list_resources():
            if category and resource.category != category:
                continue
            if needle and needle not in resource.name.lower() \
                    and needle not in resource.description.lower():
                continue
            results.append(resource)
        return sorted(results, key=lambda r: r.name.lower())

    def categories(self, actor_role: RoleLike) -> list[str]:
        require_permission("VIEW_RESOURCE", actor_role)
        return sorted({r.category for r in self._repo.list_resources() if r.category})

    def eligible_for(self, actor_role: RoleLike, enrollee: Optional[Enrollee]) -> list[Resource]:
        """Resources eligible for the selected enrollee (all when None)."""
        require_permission("VIEW_RESOURCE", actor_role)
        return filter_eligible_resources(enrollee, self._repo.list_resources())
