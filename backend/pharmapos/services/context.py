# Overview: Explicit tenant/branch/user context passed through every checkout-core call.

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CheckoutContext:
    """
    Trusted caller context supplied by the session collaborator.

    The core never re-derives these values; it only scopes queries by them.
    """
    tenant_id: int
    branch_id: int
    user_id: int | None = None
