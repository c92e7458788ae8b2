"""
Proxy Routes

Catch-all handler forwarding Gemini-style requests
(/v1beta/models/{model}:{verb}) to the upstream with a pool key.
"""
import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import Response

from keypool.core.errors import ConfigError, ForwardingFailure, ProxyError
from keypool.core.proxy.upstream import parse_model_path

logger = logging.getLogger(__name__)

router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def _raw_path(request: Request) -> str:
    """The request path as sent by the client, percent-encoding intact."""
    raw_path = request.scope.get("raw_path")
    if not raw_path:
        return request.url.path
    return raw_path.decode("latin-1").split("?", 1)[0]


async def _select_and_forward(request: Request):
    state = request.app.state
    path = _raw_path(request)

    model, verb = parse_model_path(path)
    logger.info(f"Proxying request for model: {model}, method: {verb}")

    try:
        api_key = await asyncio.to_thread(state.selector.select, model)
    except ProxyError:
        raise
    except Exception as e:
        logger.error(f"Error getting API key for model {model}: {e}")
        raise ConfigError("Internal server error retrieving API key")

    body = await request.body()
    upstream = await state.forwarder.forward(
        request.method,
        path,
        request.url.query,
        request.headers,
        body,
        api_key,
        model,
    )
    return api_key, model, upstream


@router.api_route("/{full_path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy(full_path: str, request: Request):
    state = request.app.state

    try:
        api_key, model, upstream = await state.timeout_guard.run(_select_and_forward(request))
    except ForwardingFailure as e:
        state.recorder.record(e.api_key, e.model, None)
        raise

    state.recorder.record(api_key, model, upstream.status_code)

    response = Response(content=upstream.content, status_code=upstream.status_code)
    for name, value in upstream.headers:
        response.headers.append(name, value)
    return response
