"""
authgate HTTP server.

GitHub OAuth login, signed-cookie sessions, and user lookup across the
configured stores with GitHub as the fallback.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from authgate.api.body import body_str, read_body_payload
from authgate.auth.config import AuthConfig, load_auth_config
from authgate.auth.errors import ConfigurationError, InvalidRedirect, OAuthError
from authgate.auth.github_oauth import (
    build_authorize_url,
    exchange_code_for_token,
    fetch_authenticated_user,
    require_oauth_config,
)
from authgate.auth.session import (
    SESSION_COOKIE_NAME,
    SessionState,
    check_session,
    clear_session_cookie_kwargs,
    encode_session,
    is_secure_request,
    require_session_secret,
    session_cookie_kwargs,
)
from authgate.auth.util import (
    build_callback_url,
    build_login_url,
    is_truthy,
    resolve_redirect_target,
    sanitize_redirect_url,
    with_user_param,
)
from authgate.providers.github_provider import GitHubIdentityProvider, IdentityProvider
from authgate.services.users import persist_user, resolve_user
from authgate.storage.base import UserStore
from authgate.storage.config import build_user_stores, load_store_config

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = {"status": "Not Authenticated", "code": 1}


def _cfg(request: Request) -> AuthConfig:
    return request.app.state.auth_config


def _stores(request: Request) -> List[UserStore]:
    return request.app.state.user_stores


def _provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def _base_url(request: Request) -> str:
    """Public base URL for resolving relative destinations; falls back to the request's own."""
    cfg = _cfg(request)
    return cfg.public_base_url or str(request.base_url).rstrip("/")


def _secure(request: Request) -> bool:
    return is_secure_request(request, trust_forwarded_proto=_cfg(request).trust_forwarded_proto)


def _no_store(resp):
    resp.headers["Cache-Control"] = "no-store"
    return resp


def create_app(
    auth_config: Optional[AuthConfig] = None,
    *,
    stores: Optional[List[UserStore]] = None,
    provider: Optional[IdentityProvider] = None,
) -> FastAPI:
    """
    Build the application.

    Configuration, stores, and the identity provider are created once here and
    shared read-only by every request via `app.state`.
    """
    cfg = auth_config or load_auth_config()
    app = FastAPI(title="authgate")
    app.state.auth_config = cfg
    app.state.user_stores = list(stores) if stores is not None else build_user_stores(load_store_config())
    app.state.identity_provider = provider or GitHubIdentityProvider(
        api_base=cfg.github_api_url, timeout=cfg.github_timeout_seconds
    )
    # Avoid logging secrets; presence flags only.
    logger.info(
        "Auth config: oauth_enabled=%s session_secret=%s public_base_url=%s ttl=%ds",
        cfg.oauth_enabled,
        "set" if cfg.session_secret else "missing",
        cfg.public_base_url,
        cfg.session_ttl_seconds,
    )

    @app.exception_handler(ConfigurationError)
    async def _configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Configuration error on %s: %s", request.url.path, str(exc))
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(InvalidRedirect)
    async def _invalid_redirect(request: Request, exc: InvalidRedirect) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(OAuthError)
    async def _oauth_error(request: Request, exc: OAuthError) -> JSONResponse:
        logger.error("GitHub auth callback error: %s", str(exc))
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error during authentication"})

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        logger.debug("%s %s", request.method, request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
            raise
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    @app.get("/auth")
    def auth_start(
        request: Request,
        redirect_url: Optional[str] = Query(None),
        user: Optional[str] = Query(None),
        send: Optional[str] = Query(None),
    ):
        """Redirect the browser to GitHub's authorization page."""
        cfg = _cfg(request)
        base = require_oauth_config(cfg)

        destination = None
        if redirect_url is not None and redirect_url.strip():
            destination = sanitize_redirect_url(redirect_url, base_url=base)

        redirect_uri = build_callback_url(base, destination=destination, send=is_truthy(send))
        url = build_authorize_url(cfg, redirect_uri=redirect_uri, login_hint=(user or "").strip() or None)
        return _no_store(RedirectResponse(url=url, status_code=302))

    @app.get("/auth/github/callback")
    def auth_callback(
        request: Request,
        code: Optional[str] = Query(None),
        url: Optional[str] = Query(None),
        send: Optional[str] = Query(None),
    ):
        """Handle the GitHub callback: exchange the code, persist the user, issue a session."""
        cfg = _cfg(request)
        base = require_oauth_config(cfg)
        require_session_secret(cfg)

        if not (code or "").strip():
            raise HTTPException(status_code=400, detail="Authorization code is missing")

        # The pass-through destination came back from a third party: re-validate it.
        if url is not None and url.strip():
            destination = sanitize_redirect_url(url, base_url=base)
        else:
            destination = sanitize_redirect_url(cfg.default_destination, base_url=base)

        access_token = exchange_code_for_token(cfg, code=code.strip())
        user = fetch_authenticated_user(cfg, access_token=access_token)

        result = persist_user(user, stores=_stores(request))
        if not result.ok:
            logger.warning(
                "User id=%d not persisted to: %s",
                user.id,
                ", ".join(o.store for o in result.outcomes if not o.ok),
            )

        session_value = encode_session(cfg, user)
        if is_truthy(send):
            target = with_user_param(destination, user.id)
        else:
            target = "/redirect?" + urlencode({"url": destination, "user": user.id})

        logger.info("GitHub login completed for %s (id=%d)", user.login, user.id)
        resp = _no_store(RedirectResponse(url=target, status_code=302))
        resp.set_cookie(**session_cookie_kwargs(cfg, session_value, secure=_secure(request)))
        return resp

    @app.post("/auth/login")
    async def auth_login(request: Request) -> JSONResponse:
        """
        Issue a session for an identifier resolved from the local stores or GitHub.

        Body: `user` (login or numeric id), optional `redirect_url`.
        """
        cfg = _cfg(request)
        require_session_secret(cfg)
        payload = await read_body_payload(request)

        identifier = body_str(payload, "user") or ""
        if not identifier:
            return JSONResponse(status_code=400, content={"status": "failed", "error": "user is required"})

        redirect_raw = body_str(payload, "redirect_url")
        destination = None
        if redirect_raw is not None:
            if not redirect_raw:
                return JSONResponse(
                    status_code=400,
                    content={"status": "failed", "error": "redirect_url must be a non-empty string"},
                )
            try:
                destination = sanitize_redirect_url(redirect_raw, base_url=_base_url(request))
            except InvalidRedirect:
                return JSONResponse(status_code=400, content={"status": "failed", "error": "invalid redirect_url"})

        user = await run_in_threadpool(resolve_user, identifier, stores=_stores(request), provider=_provider(request))
        if user is None:
            return JSONResponse(status_code=401, content={"status": "failed", "error": "failed to auth"})

        session_value = encode_session(cfg, user)
        resp = JSONResponse(
            content={
                "status": "ok",
                "user": user.to_dict(),
                "redirect": with_user_param(destination, user.id) if destination else None,
                "authurl": build_login_url(cfg.public_base_url or "", identifier, redirect_raw),
            }
        )
        _no_store(resp)
        resp.set_cookie(**session_cookie_kwargs(cfg, session_value, secure=_secure(request)))
        return resp

    @app.post("/auth/status")
    async def auth_status(request: Request) -> JSONResponse:
        """Report whether the session cookie is valid (optionally for a specific `user`)."""
        cfg = _cfg(request)
        require_session_secret(cfg)
        payload = await read_body_payload(request)

        check = check_session(cfg, request.cookies.get(SESSION_COOKIE_NAME), body_str(payload, "user"))
        if check.state is SessionState.AUTHENTICATED:
            return JSONResponse(content={"status": "Authenticated", "code": 0})
        if check.state is SessionState.FORBIDDEN:
            return JSONResponse(status_code=403, content=NOT_AUTHENTICATED)

        resp = JSONResponse(status_code=401, content=NOT_AUTHENTICATED)
        if check.should_clear_cookie:
            resp.set_cookie(**clear_session_cookie_kwargs(cfg, secure=_secure(request)))
        return resp

    @app.get("/redirect")
    def redirect(request: Request, url: Optional[str] = Query(None), user: Optional[str] = Query(None)):
        """Validated hand-off to an external destination (http/https only)."""
        if url is None or not url.strip():
            raise HTTPException(status_code=400, detail="url is required")
        target = resolve_redirect_target(
            url,
            user=user,
            default_destination=_cfg(request).default_destination,
            base_url=_base_url(request),
        )
        return _no_store(RedirectResponse(url=target, status_code=302))

    @app.get("/auth/me")
    def auth_me(request: Request) -> JSONResponse:
        cfg = _cfg(request)
        check = check_session(cfg, request.cookies.get(SESSION_COOKIE_NAME))
        if check.state is SessionState.AUTHENTICATED and check.user is not None:
            return JSONResponse(content={"user": check.user.to_dict()})

        resp = JSONResponse(status_code=401, content={"error": "Not authenticated"})
        if check.should_clear_cookie:
            resp.set_cookie(**clear_session_cookie_kwargs(cfg, secure=_secure(request)))
        return resp

    @app.get("/logout")
    def logout(request: Request) -> JSONResponse:
        resp = JSONResponse(content={"message": "Logged out successfully"})
        _no_store(resp)
        resp.set_cookie(**clear_session_cookie_kwargs(_cfg(request), secure=_secure(request)))
        return resp

    @app.get("/users/{identifier}")
    def get_user(request: Request, identifier: str) -> JSONResponse:
        user = resolve_user(identifier, stores=_stores(request), provider=_provider(request))
        if user is None:
            return JSONResponse(status_code=404, content={"error": "User not found"})
        return JSONResponse(content={"user": user.to_dict()})

    return app


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    app = create_app()
    logger.info("Starting authgate server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
