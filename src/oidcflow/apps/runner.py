"""Console entry points serving the front-ends with uvicorn."""

from __future__ import annotations

import logging

import uvicorn

from oidcflow.apps.identity_provider import IdentityProviderApp
from oidcflow.apps.relying_party import RelyingPartyApp
from oidcflow.config import IdentityProviderSettings, RelyingPartySettings

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main_identity_provider() -> None:
    settings = IdentityProviderSettings.from_config()
    _configure_logging(settings.log_level)

    app = IdentityProviderApp(settings).app
    logger.info(f"Identity provider running on {settings.host}:{settings.port}")
    uvicorn.run(
        app, host=settings.host, port=settings.port, log_level=settings.log_level.lower()
    )


def main_relying_party() -> None:
    settings = RelyingPartySettings.from_config()
    _configure_logging(settings.log_level)

    app = RelyingPartyApp(settings).app
    logger.info(
        f"Client application running on {settings.host}:{settings.port} "
        f"(pkce={'on' if settings.use_pkce else 'off'})"
    )
    uvicorn.run(
        app, host=settings.host, port=settings.port, log_level=settings.log_level.lower()
    )
