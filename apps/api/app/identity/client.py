from __future__ import annotations

import logging
import random
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from opentelemetry import trace

from app.authz.roles import Role
from app.context import get_correlation_id


logger = logging.getLogger("app.identity")
tracer = trace.get_tracer("app.identity.client")

RETRY_STATUSES = {429, 500, 502, 503, 504}


class IdentityProviderError(Exception):
    """Raised when the identity provider rejects or fails a call."""

    def __init__(self, operation: str, message: str, status_code: int | None = None) -> None:
        self.operation = operation
        self.status_code = status_code
        super().__init__(f"{operation} failed: {message}")


@dataclass(slots=True)
class Principal:
    """The authenticated identity-provider user for the current request."""

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    image_url: str | None = None
    private_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def metadata_role(self) -> Role | None:
        return Role.parse(self.private_metadata.get("role"))


@dataclass(slots=True)
class InvitationToken:
    id: str
    email: str
    status: str


class IdentityProvider(Protocol):
    def get_user(self, user_id: str) -> Principal | None: ...

    def update_user_metadata(self, user_id: str, role: Role | None) -> None: ...

    def create_invitation(self, email: str, role: Role, redirect_url: str) -> InvitationToken: ...


class StubIdentityProvider:
    """In-process provider for local runs and tests."""

    def __init__(self, principals: list[Principal] | None = None) -> None:
        self.principals: dict[str, Principal] = {}
        self.invitations: list[dict[str, Any]] = []
        for principal in principals or []:
            self.register(principal)

    def register(self, principal: Principal) -> Principal:
        self.principals[principal.id] = principal
        return principal

    def get_user(self, user_id: str) -> Principal | None:
        return self.principals.get(user_id)

    def update_user_metadata(self, user_id: str, role: Role | None) -> None:
        principal = self.principals.get(user_id)
        if principal is None:
            raise IdentityProviderError("update_user_metadata", f"unknown user {user_id}", status_code=404)
        if role is None:
            principal.private_metadata.pop("role", None)
        else:
            principal.private_metadata["role"] = role.value

    def create_invitation(self, email: str, role: Role, redirect_url: str) -> InvitationToken:
        token = InvitationToken(id=f"inv_{uuid.uuid4().hex}", email=email, status="pending")
        self.invitations.append(
            {
                "id": token.id,
                "email_address": email,
                "redirect_url": redirect_url,
                "public_metadata": {"throughInvitation": True, "role": role.value},
            }
        )
        return token


class ClerkIdentityProvider:
    """Clerk backend API client."""

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 4.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {secret_key}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def get_user(self, user_id: str) -> Principal | None:
        with tracer.start_as_current_span("identity.get_user") as span:
            span.set_attribute("user_id", user_id)
            span.set_attribute("correlation_id", get_correlation_id() or "")
            response = self._request("get_user", lambda: self._client.get(f"/users/{user_id}"))
            if response.status_code == 404:
                return None
            self._raise_for_status("get_user", response)
            return _principal_from_payload(response.json())

    def update_user_metadata(self, user_id: str, role: Role | None) -> None:
        with tracer.start_as_current_span("identity.update_user_metadata") as span:
            span.set_attribute("user_id", user_id)
            span.set_attribute("correlation_id", get_correlation_id() or "")
            # Clerk deep-merges metadata; null removes the key.
            body = {"private_metadata": {"role": role.value if role is not None else None}}
            response = self._request(
                "update_user_metadata",
                lambda: self._client.patch(f"/users/{user_id}/metadata", json=body),
            )
            self._raise_for_status("update_user_metadata", response)

    def create_invitation(self, email: str, role: Role, redirect_url: str) -> InvitationToken:
        with tracer.start_as_current_span("identity.create_invitation") as span:
            span.set_attribute("correlation_id", get_correlation_id() or "")
            body = {
                "email_address": email,
                "redirect_url": redirect_url,
                "public_metadata": {"throughInvitation": True, "role": role.value},
            }
            # not retried: a resend after a lost response would send a second email
            response = self._send("create_invitation", lambda: self._client.post("/invitations", json=body))
            self._raise_for_status("create_invitation", response)
            payload = response.json()
            span.set_attribute("invitation_id", str(payload.get("id")))
            return InvitationToken(
                id=str(payload.get("id")),
                email=str(payload.get("email_address", email)),
                status=str(payload.get("status", "pending")),
            )

    def close(self) -> None:
        self._client.close()

    def _send(self, operation: str, request_fn: Callable[[], httpx.Response]) -> httpx.Response:
        try:
            return request_fn()
        except httpx.HTTPError as exc:
            raise IdentityProviderError(operation, str(exc)) from exc

    def _request(self, operation: str, request_fn: Callable[[], httpx.Response]) -> httpx.Response:
        for attempt in range(self.max_attempts):
            last_attempt = attempt >= self.max_attempts - 1
            try:
                response = request_fn()
            except httpx.RequestError as exc:
                if last_attempt:
                    raise IdentityProviderError(operation, str(exc)) from exc
                logger.warning("identity.retry", extra={"reason": type(exc).__name__, "count": attempt + 1})
                self._sleep(attempt)
                continue

            if response.status_code in RETRY_STATUSES and not last_attempt:
                logger.warning("identity.retry", extra={"status_code": response.status_code, "count": attempt + 1})
                self._sleep(attempt)
                continue
            return response

        raise IdentityProviderError(operation, "no attempts made")

    def _sleep(self, attempt: int) -> None:
        delay = min(self.max_delay, self.base_delay * (2**attempt))
        if delay:
            time.sleep(delay + random.uniform(0, delay / 2))

    def _raise_for_status(self, operation: str, response: httpx.Response) -> None:
        if response.is_success:
            return
        raise IdentityProviderError(operation, response.text[:200], status_code=response.status_code)


def _principal_from_payload(payload: dict[str, Any]) -> Principal:
    addresses = payload.get("email_addresses") or []
    primary_id = payload.get("primary_email_address_id")
    email = ""
    for address in addresses:
        if primary_id is None or address.get("id") == primary_id:
            email = str(address.get("email_address", ""))
            break
    if not email and addresses:
        email = str(addresses[0].get("email_address", ""))

    return Principal(
        id=str(payload["id"]),
        email=email,
        first_name=payload.get("first_name"),
        last_name=payload.get("last_name"),
        image_url=payload.get("image_url"),
        private_metadata=dict(payload.get("private_metadata") or {}),
    )
