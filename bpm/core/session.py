"""Registry login sessions.

A session is an explicit object: it is created by logging in, stored as the
API key in user settings, and passed to every call that needs it.
"""

import logging
from collections.abc import Callable
from pathlib import Path

from bpm.config.schemas import Settings
from bpm.config.settings import save_settings
from bpm.registry.base import RegistryClient, RegistrySession

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_ATTEMPTS = 3

CredentialsPrompt = Callable[[int], tuple[str, str]]


def load_session(settings: Settings) -> RegistrySession | None:
    """Restore the session saved in settings, if any."""
    if not settings.api_key:
        return None
    return RegistrySession(registry=settings.registry, token=settings.api_key, email=settings.email)


def login_with_retry(
    client: RegistryClient,
    prompt: CredentialsPrompt,
    max_attempts: int = DEFAULT_LOGIN_ATTEMPTS,
    cancelled: Callable[[], bool] | None = None,
) -> RegistrySession | None:
    """Log in, asking again for credentials after a rejected attempt.

    Args:
        client: Registry to log in to
        prompt: Called with the attempt number, returns (email, password)
        max_attempts: Attempts before giving up
        cancelled: Checked before every attempt; a true result stops the loop

    Returns:
        The new session, or None if every attempt failed or login was cancelled

    Raises:
        NetworkError: If the registry cannot be reached
    """
    for attempt in range(1, max_attempts + 1):
        if cancelled is not None and cancelled():
            logger.info("Login cancelled")
            return None

        try:
            email, password = prompt(attempt)
        except KeyboardInterrupt:
            logger.info("Login cancelled")
            return None

        session = client.login(email, password)
        if session is not None:
            logger.info("Logged in to %s as %s", client.url, email)
            return session
        logger.warning("Login rejected (attempt %d of %d)", attempt, max_attempts)

    return None


def save_session(settings: Settings, session: RegistrySession, home: Path | None = None) -> None:
    """Persist a session's API key in user settings."""
    settings.email = session.email
    settings.api_key = session.token
    save_settings(settings, home)


def logout(
    settings: Settings, session: RegistrySession | None = None, home: Path | None = None
) -> bool:
    """End the current session.

    Returns:
        True if a session was active
    """
    if session is not None:
        session.invalidate()
    was_active = settings.api_key is not None
    settings.api_key = None
    save_settings(settings, home)
    return was_active
