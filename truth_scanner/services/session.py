"""Operator session service."""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import List

from truth_scanner.domain.exceptions import AuthenticationError
from truth_scanner.domain.models import Role, SessionContext
from truth_scanner.ports.secrets import SecretsPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """One allow-listed operator login."""

    email: str
    password: str
    role: Role


class SessionService:
    """Resolves operator credentials from the secrets port."""

    def __init__(self, secrets: SecretsPort) -> None:
        self._secrets = secrets

    def credentials(self) -> List[Credential]:
        """Return the configured credentials; a role without both secrets is disabled."""

        found: List[Credential] = []
        for role in (Role.ADMIN, Role.USER):
            email = self._secrets.get_optional_secret(f"{role.value}_EMAIL")
            password = self._secrets.get_optional_secret(f"{role.value}_PASSWORD")
            if email and password:
                found.append(Credential(email=email.strip().lower(), password=password, role=role))
        return found

    def authenticate(self, email: str, password: str) -> SessionContext:
        normalized = (email or "").strip().lower()
        if not normalized or not password:
            raise AuthenticationError("Email and password are required")
        for credential in self.credentials():
            if credential.email == normalized and hmac.compare_digest(
                credential.password.encode("utf-8"), password.encode("utf-8"),
            ):
                logger.info("%s session opened for %s", credential.role.value, normalized)
                return SessionContext(operator=normalized, role=credential.role)
        logger.warning("Rejected login for %s", normalized)
        raise AuthenticationError("Access denied: invalid credentials")
