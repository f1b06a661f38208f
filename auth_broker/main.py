"""
Auth Broker HTTP surface.
GET /oauth/start, /oauth/callback, /oauth/poll; plain-text bodies. Port from BROKER_PORT (8080).
"""
import logging
from contextlib import asynccontextmanager
from functools import partial

import anyio
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.responses import PlainTextResponse

from auth_broker import config
from auth_broker.broker import EvictionPolicy, SessionBroker
from auth_broker.errors import (
    MissingVerifier,
    NotFoundError,
    SessionConflict,
    StaleResolution,
    UpstreamError,
    ValidationError,
)
from auth_broker.registry import load_catalog
from auth_broker.sessions import SessionState

logger = logging.getLogger(__name__)

# Returned by /oauth/poll when the wait deadline passes with the flow still pending
NOT_YET_STATUS = 100


def build_broker() -> SessionBroker:
    """Load the consumer catalog named in config and wire a broker around it."""
    consumers = load_catalog(config.PROVIDERS_FILE, config.CONSUMERS_FILE, timeout=config.UPSTREAM_TIMEOUT)
    logger.info("HTTP callbacks will be routed to %s/", config.CALLBACK_PREFIX)
    return SessionBroker(
        consumers,
        config.CALLBACK_PREFIX,
        eviction=EvictionPolicy(max_age=config.SESSION_MAX_AGE, probability=config.EVICTION_PROBABILITY),
    )


def get_broker(request: Request) -> SessionBroker:
    """Dependency: the app's broker. Every request gets a chance to trigger an eviction pass."""
    broker: SessionBroker = request.app.state.broker
    broker.maybe_evict()
    return broker


def poll_limiter(app: FastAPI) -> anyio.CapacityLimiter:
    """Thread budget for /oauth/poll, created on first use inside the running event loop."""
    limiter = getattr(app.state, "poll_limiter", None)
    if limiter is None:
        limiter = app.state.poll_limiter = anyio.CapacityLimiter(app.state.max_pollers)
    return limiter


def create_app(broker: SessionBroker | None = None, max_pollers: int | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the broker from the catalog files unless one was supplied."""
        if getattr(app.state, "broker", None) is None:
            logger.info("Initializing Auth Broker v%s...", config.VERSION)
            app.state.broker = build_broker()
        yield

    app = FastAPI(title="Auth Broker", version=config.VERSION, lifespan=lifespan)
    app.state.broker = broker
    app.state.max_pollers = max_pollers or config.MAX_POLLERS

    @app.get("/health")
    def health(request: Request):
        """Health check endpoint."""
        current = request.app.state.broker
        return {"status": "ok", "service": "auth_broker", "sessions": len(current.store) if current else 0}

    @app.get("/oauth/start", response_class=PlainTextResponse)
    def oauth_start(
        name: str | None = Query(None, alias="app"),
        broker: SessionBroker = Depends(get_broker),
    ):
        """Begin a flow for ?app=<name>. Body: "<sid> <authorize_url>"."""
        try:
            sid, url = broker.start(name)
        except ValidationError as e:
            return PlainTextResponse(str(e), status_code=400)
        except NotFoundError as e:
            return PlainTextResponse(str(e), status_code=404)
        except UpstreamError as e:
            logger.warning("Cannot start flow for app %s: %s", name, e)
            return PlainTextResponse(str(e), status_code=502)
        except SessionConflict as e:
            logger.error("Cannot store new session: %s", e)
            return PlainTextResponse(str(e), status_code=500)
        return PlainTextResponse(f"{sid} {url}")

    @app.get("/oauth/callback", response_class=PlainTextResponse)
    def oauth_callback(
        sid: str | None = None,
        oauth_verifier: str | None = None,
        broker: SessionBroker = Depends(get_broker),
    ):
        """Provider redirect target. Resolves the session and wakes its pollers."""
        try:
            broker.handle_callback(sid, oauth_verifier)
        except ValidationError as e:
            return PlainTextResponse(str(e), status_code=400)
        except NotFoundError as e:
            return PlainTextResponse(str(e), status_code=404)
        except MissingVerifier as e:
            return PlainTextResponse(str(e), status_code=403)
        except UpstreamError:
            return PlainTextResponse("cannot obtain access token", status_code=500)
        except StaleResolution:
            logger.warning("Duplicate callback for session %s ignored", sid)
        return PlainTextResponse("")

    @app.get("/oauth/poll", response_class=PlainTextResponse)
    async def oauth_poll(
        request: Request,
        sid: str | None = None,
        wait: str | None = None,
        broker: SessionBroker = Depends(get_broker),
    ):
        """
        Outcome of a flow. ?wait=true blocks until resolved, ?wait=N for at most N seconds.
        Body: "<token> <secret>" or "error: <message>"; status 100 if still pending.
        """
        # Blocked polls run on their own limiter; start and callback keep the default thread pool.
        poll = partial(broker.poll, sid, wait, now=broker.clock())
        try:
            result = await anyio.to_thread.run_sync(poll, limiter=poll_limiter(request.app))
        except ValidationError as e:
            return PlainTextResponse(str(e), status_code=400)
        except NotFoundError as e:
            return PlainTextResponse(str(e), status_code=404)
        if not result.resolved:
            return Response(status_code=NOT_YET_STATUS)
        session = result.session
        if session.state is SessionState.AUTHORIZED:
            return PlainTextResponse(f"{session.result.token} {session.result.secret}")
        return PlainTextResponse(f"error: {session.result.message}")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # httptools writes the 100 status line as-is; h11 only allows informational codes as interim responses
    uvicorn.run(
        "auth_broker.main:app",
        host="0.0.0.0",
        port=config.PORT,
        http="httptools",
    )
