"""Role vocabulary.

The admin forms, signup flows and older database rows used several spellings
for the same role. ``parse_role`` is the single mapping from any accepted
spelling to :class:`Role`; anything else is rejected.
"""

from __future__ import annotations

import enum

from app.services.exceptions import ValidationError


class Role(str, enum.Enum):
    master_admin = "master_admin"
    single_finance_manager = "single_finance_manager"
    single_dealer_admin = "single_dealer_admin"
    group_dealer_admin = "group_dealer_admin"
    area_vice_president = "area_vice_president"
    general_manager = "general_manager"
    finance_director = "finance_director"
    finance_manager = "finance_manager"
    sales_manager = "sales_manager"
    salesperson = "salesperson"


_ALIASES: dict[str, Role] = {
    "admin": Role.master_admin,
    "master-admin": Role.master_admin,
    "single-finance": Role.single_finance_manager,
    "single_finance": Role.single_finance_manager,
    "finance_manager_only": Role.single_finance_manager,
    "dealership_admin": Role.single_dealer_admin,
    "dealer_admin": Role.single_dealer_admin,
    "dealer_group_admin": Role.group_dealer_admin,
    "dealergroup_admin": Role.group_dealer_admin,
    "group_admin": Role.group_dealer_admin,
    "avp": Role.area_vice_president,
    "gm": Role.general_manager,
    "f&i_manager": Role.finance_manager,
    "fi_manager": Role.finance_manager,
    "sales_person": Role.salesperson,
    "sales": Role.salesperson,
}

# Spellings the profiles table accepts; everything not listed is stored as its enum value.
_STORE_VALUES: dict[Role, str] = {
    Role.master_admin: "admin",
}

def parse_role(value: str | Role | None) -> Role:
    if isinstance(value, Role):
        return value
    raw = (value or "").strip().lower().replace(" ", "_")
    if not raw:
        raise ValidationError("role")
    try:
        return Role(raw)
    except ValueError:
        pass
    role = _ALIASES.get(raw)
    if role is None:
        raise ValidationError("role", f"Unknown role: {value!r}")
    return role


def to_store_role(role: Role) -> str:
    return _STORE_VALUES.get(role, role.value)
