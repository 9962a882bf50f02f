"""
telem/authz.py

Role-based access control for the advisor API.

Single source of truth for who may do what. Routers resolve the ownership
of the target record (the user id that owns the calculator at the top of
the chain) and call authorize() once before invoking the repository.

Pure Python logic: no database access, no FastAPI imports.

Roles:
- advisor: unrestricted
- investor: only their own calculators and what hangs off them, with
  field allow-lists on updates
"""

from enum import Enum
from typing import Iterable, Optional, FrozenSet, Dict, List

from pydantic import BaseModel

from telem.db.core import UserRole


class ForbiddenError(Exception):
    """Raised when a principal may not perform an action. Carries any offending fields."""

    def __init__(self, message: str, disallowed_fields: Iterable[str] = ()):
        super().__init__(message)
        self.message = message
        self.disallowed_fields: List[str] = sorted(disallowed_fields)


class Principal(BaseModel):
    """The authenticated caller, as resolved from the bearer token."""
    user_id: int
    role: UserRole
    name: str

    @property
    def is_advisor(self) -> bool:
        return self.role == UserRole.ADVISOR


class Resource(str, Enum):
    USER = "user"
    CALCULATOR = "calculator"
    PROPERTY = "property"
    INVESTMENT = "investment"
    ANALYSIS = "analysis"
    SETTING = "setting"
    DASHBOARD = "dashboard"


class Action(str, Enum):
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DUPLICATE = "duplicate"


# Wire (camelCase) field names an investor may change on records they own
INVESTOR_EDITABLE_FIELDS: Dict[Resource, FrozenSet[str]] = {
    Resource.CALCULATOR: frozenset({"selfEquity", "hasMortgage", "hasPropertyInIsrael", "investmentPreference"}),
    Resource.INVESTMENT: frozenset({"hasFurniture", "hasPropertyManagement", "hasRealEstateAgent"}),
    Resource.USER: frozenset({"name", "email", "phone", "password"}),
}

# Catalog-style resources investors can look at but never change
INVESTOR_READABLE: Dict[Resource, FrozenSet[Action]] = {
    Resource.PROPERTY: frozenset({Action.LIST, Action.READ}),
    Resource.SETTING: frozenset({Action.READ}),
    Resource.DASHBOARD: frozenset({Action.READ}),
}

OWNED_RESOURCES = frozenset({Resource.USER, Resource.CALCULATOR, Resource.INVESTMENT, Resource.ANALYSIS})


def disallowed_fields(resource: Resource, fields: Iterable[str]) -> List[str]:
    """Fields outside the investor allow-list for this resource."""
    allowed = INVESTOR_EDITABLE_FIELDS.get(resource, frozenset())
    return sorted(set(fields) - allowed)


def authorize(
    principal: Principal,
    resource: Resource,
    action: Action,
    *,
    owner_id: Optional[int] = None,
    fields: Iterable[str] = (),
) -> None:
    """
    Raise ForbiddenError unless the principal may perform action on resource.

    Args:
        principal: The caller
        resource: Kind of record being touched
        action: What is being done to it
        owner_id: User id owning the record (for investments and analyses,
            the owner of their calculator; for users, the user itself)
        fields: Wire names of the fields an UPDATE would change
    """
    if principal.is_advisor:
        return

    if resource in INVESTOR_READABLE:
        if action in INVESTOR_READABLE[resource]:
            return
        raise ForbiddenError(f"Forbidden: advisor role required to {action.value} {resource.value}")

    if resource not in OWNED_RESOURCES:
        raise ForbiddenError("Forbidden: advisor role required")

    if resource == Resource.CALCULATOR and action == Action.DELETE:
        raise ForbiddenError("Forbidden: only advisors can delete calculators")

    if resource == Resource.USER and action in (Action.LIST, Action.CREATE, Action.DELETE):
        raise ForbiddenError("Forbidden: advisor role required to manage users")

    if owner_id is None or owner_id != principal.user_id:
        raise ForbiddenError(f"Forbidden: not your {resource.value}")

    if action == Action.UPDATE and resource in INVESTOR_EDITABLE_FIELDS:
        rejected = disallowed_fields(resource, fields)
        if rejected:
            raise ForbiddenError(f"Forbidden: investors cannot update {', '.join(rejected)}", rejected)


def require_advisor(principal: Principal) -> None:
    if not principal.is_advisor:
        raise ForbiddenError("Forbidden: advisor role required")
