"""
Role Enforcement

Verifier/Critic profiles, compliance validation and role alternation.
"""

from src.roles.definitions import (
    CRITIC_ROLE,
    MESSAGES,
    ROLE_DEFINITIONS,
    VERIFIER_ROLE,
    RoleDefinition,
    ValidationCriterion,
)
from src.roles.enforcer import RoleEnforcer, RoleState, calculate_compliance_score

__all__ = [
    "CRITIC_ROLE",
    "MESSAGES",
    "ROLE_DEFINITIONS",
    "RoleDefinition",
    "RoleEnforcer",
    "RoleState",
    "VERIFIER_ROLE",
    "ValidationCriterion",
    "calculate_compliance_score",
]
