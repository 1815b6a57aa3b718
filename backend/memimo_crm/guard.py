# Overview: Access decision for protected screens and routes.

"""
Access Guard

A pure function of (session state, required role) -> decision. Both the
server decorators and the client SessionManager ask the same question:

    LOADING                     session restoration still in flight
    REDIRECT_LOGIN              no valid session
    REDIRECT_INSUFFICIENT_ROLE  valid session, wrong role
    AUTHORIZED                  valid session, role satisfied (or none required)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class AccessDecision(str, enum.Enum):
    LOADING = "loading"
    REDIRECT_LOGIN = "redirect_login"
    REDIRECT_INSUFFICIENT_ROLE = "redirect_insufficient_role"
    AUTHORIZED = "authorized"


@dataclass(frozen=True)
class GuardState:
    loading: bool = False
    authenticated: bool = False
    role: str | None = None


def resolve_access(state: GuardState, required_role: str | None = None) -> AccessDecision:
    if state.loading:
        return AccessDecision.LOADING
    if not state.authenticated:
        return AccessDecision.REDIRECT_LOGIN
    if required_role is not None and state.role != required_role:
        return AccessDecision.REDIRECT_INSUFFICIENT_ROLE
    return AccessDecision.AUTHORIZED
