"""Signed-in flag for the current user."""

from __future__ import annotations

from dataclasses import dataclass

from tickerdesk.state.intents import Intent, IntentType


@dataclass(frozen=True)
class AuthState:
    is_logged_in: bool = False


def reduce_auth(state: AuthState, intent: Intent) -> AuthState:
    if intent.type is IntentType.LOGIN_SUCCESS:
        return state if state.is_logged_in else AuthState(is_logged_in=True)
    if intent.type is IntentType.LOGOUT_SUCCESS:
        return state if not state.is_logged_in else AuthState(is_logged_in=False)
    return state
