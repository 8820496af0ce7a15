"""
Scope negotiation (RFC 6749 section 3.3): requested names are checked against what a Role grants.
"""
import logging

from kangaroo.errors import InvalidScope
from kangaroo.models import ApplicationScope, Role

logger = logging.getLogger(__name__)


def parse_scopes(scope: str | None) -> list[str]:
    """Split a space-delimited scope string. Order kept, duplicates and empty tokens dropped."""
    if not scope:
        return []
    names: list[str] = []
    for name in scope.split():
        if name not in names:
            names.append(name)
    return names


def validate_scopes(requested: str | None, role: Role | None) -> dict[str, ApplicationScope]:
    """
    Resolve a requested scope string against a role.
    Nothing requested: everything the role grants. Any name the role lacks raises InvalidScope.
    """
    names = parse_scopes(requested)
    if role is None:
        if names:
            logger.debug("Scope requested without a role: %s", names)
            raise InvalidScope("No scopes may be granted to this user.")
        return {}
    granted = role.scopes
    if not names:
        return dict(granted)
    missing = [name for name in names if name not in granted]
    if missing:
        logger.debug("Scope escalation rejected: %s", missing)
        raise InvalidScope(f"Scope not permitted: {' '.join(missing)}")
    return {name: granted[name] for name in names}


def revalidate_scopes(
    requested: str | None,
    prior: dict[str, ApplicationScope],
    role: Role | None,
) -> dict[str, ApplicationScope]:
    """
    Narrow previously granted scopes on refresh.
    An omitted request keeps the prior grant; otherwise every name must be in both the prior grant and the role.
    """
    names = parse_scopes(requested)
    if not names:
        return dict(prior)
    allowed = role.scopes if role is not None else {}
    missing = [name for name in names if name not in prior or name not in allowed]
    if missing:
        logger.debug("Refresh scope widening rejected: %s", missing)
        raise InvalidScope(f"Scope not permitted: {' '.join(missing)}")
    return {name: prior[name] for name in names}
