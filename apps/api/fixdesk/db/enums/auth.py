"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    Organization roles.

    - OWNER: Property owner / landlord (approves schedules, configures policy)
    - MANAGER: Property manager acting for the owner
    - TENANT: Reports maintenance issues, picks appointment slots
    - CONTRACTOR: Service provider linked to a Provider record
    """

    OWNER = "owner"
    MANAGER = "manager"
    TENANT = "tenant"
    CONTRACTOR = "contractor"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


ROLES_CAN_APPROVE = {Role.OWNER, Role.MANAGER}
ROLES_CAN_MANAGE_CASES = {Role.OWNER, Role.MANAGER}
ROLES_CAN_MANAGE_POLICY = {Role.OWNER, Role.MANAGER}
