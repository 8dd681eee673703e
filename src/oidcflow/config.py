"""Environment-driven settings for the identity provider and relying parties."""

from __future__ import annotations

import os
from dataclasses import dataclass

from starlette.config import Config

from oidcflow.auth.models.security import CLIENT_SECRET_BASIC, ClientCredentials


@dataclass(frozen=True)
class IdentityProviderSettings:
    """Settings of the login/consent front-end and protected API."""

    admin_url: str = "http://localhost:4445"
    consent_remember: bool = False
    consent_remember_for: int = 3600
    introspection_scope: str | None = "openid profile email"
    http_timeout: float = 30.0
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_config(cls, config: Config | None = None) -> IdentityProviderSettings:
        config = config or Config(environ=os.environ)
        return cls(
            admin_url=config("HYDRA_ADMIN_URL", default=cls.admin_url),
            consent_remember=config(
                "CONSENT_REMEMBER", cast=bool, default=cls.consent_remember
            ),
            consent_remember_for=config(
                "CONSENT_REMEMBER_FOR", cast=int, default=cls.consent_remember_for
            ),
            introspection_scope=config(
                "INTROSPECTION_SCOPE", default=cls.introspection_scope
            )
            or None,
            http_timeout=config("HTTP_TIMEOUT", cast=float, default=cls.http_timeout),
            host=config("HOST", default=cls.host),
            port=config("PORT", cast=int, default=cls.port),
            log_level=config("LOG_LEVEL", default=cls.log_level),
        )


@dataclass(frozen=True)
class RelyingPartySettings:
    """Settings of a relying-party client application."""

    client_id: str = "someidforthisclient"
    client_secret: str | None = "my-secret"
    redirect_uri: str = "http://localhost:5555/callback"
    public_url: str = "http://localhost:4444"
    api_url: str = "http://localhost:3000/api"
    scope: str = "openid profile email offline"
    client_auth_method: str = CLIENT_SECRET_BASIC
    use_pkce: bool = False
    session_cookie: str = "oidcflow_session"
    session_idle_timeout: int = 3600
    http_timeout: float = 30.0
    host: str = "127.0.0.1"
    port: int = 5555
    log_level: str = "INFO"

    @classmethod
    def from_config(cls, config: Config | None = None) -> RelyingPartySettings:
        config = config or Config(environ=os.environ)
        return cls(
            client_id=config("CLIENT_ID", default=cls.client_id),
            client_secret=config("CLIENT_SECRET", default=cls.client_secret) or None,
            redirect_uri=config("REDIRECT_URI", default=cls.redirect_uri),
            public_url=config("HYDRA_PUBLIC_URL", default=cls.public_url),
            api_url=config("API_URL", default=cls.api_url),
            scope=config("OAUTH_SCOPE", default=cls.scope),
            client_auth_method=config(
                "CLIENT_AUTH_METHOD", default=cls.client_auth_method
            ),
            use_pkce=config("USE_PKCE", cast=bool, default=cls.use_pkce),
            session_cookie=config("SESSION_COOKIE", default=cls.session_cookie),
            session_idle_timeout=config(
                "SESSION_IDLE_TIMEOUT", cast=int, default=cls.session_idle_timeout
            ),
            http_timeout=config("HTTP_TIMEOUT", cast=float, default=cls.http_timeout),
            host=config("HOST", default=cls.host),
            port=config("PORT", cast=int, default=cls.port),
            log_level=config("LOG_LEVEL", default=cls.log_level),
        )

    @property
    def credentials(self) -> ClientCredentials:
        return ClientCredentials(
            client_id=self.client_id,
            client_secret=self.client_secret,
            auth_method=self.client_auth_method,
        )

    @property
    def protected_resource_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/protected-resources"
