"""
Resource eligibility filtering.

A resource restricts eligibility by listing Z-codes in its
``eligibility_criteria``.  An enrollee is eligible when at least one of
those codes appears in the enrollee's risk profile.  A resource with no
listed codes is open to everyone.

The income band on ``EligibilityCriteria`` is stored and displayed but is
not matched here: no matching rule for it has been defined.
"""

from __future__ import annotations

from typing import Iterable, Optional

from atlascie.models import Enrollee, Resource


def matching_z_codes(enrollee: Enrollee, resource: Resource) -> list[str]:
    """Return the resource's codes that the enrollee also carries, in the
    resource's order."""
    enrollee_codes = set(enrollee.risk_profile.z_codes)
    return [code for code in resource.eligibility_criteria.z_codes if code in enrollee_codes]


def is_eligible(enrollee: Enrollee, resource: Resource) -> bool:
    """Decide whether ``resource`` is eligible for ``enrollee``."""
    if not resource.eligibility_criteria.z_codes:
        return True
    return bool(matching_z_codes(enrollee, resource))


def filter_eligible_resources(
    enrollee: Optional[Enrollee], resources: Iterable[Resource]
) -> list[Resource]:
    """Filter resources for the selected enrollee.

    With no enrollee selected every resource is returned.
    """
    if enrollee is None:
        return list(resources)
    return [resource for resource in resources if is_eligible(enrollee, resource)]
