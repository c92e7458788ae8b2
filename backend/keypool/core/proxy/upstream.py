"""
Upstream Client

Forwards a client request to the upstream API with a pool key swapped in.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple
from urllib.parse import unquote

import httpx

from keypool.core.errors import ForwardingFailure, ModelUnresolvable
from keypool.core.key_store import mask_key

logger = logging.getLogger(__name__)

UPSTREAM_KEY_HEADER = "x-goog-api-key"

# Inbound headers never sent upstream
STRIPPED_REQUEST_HEADERS = {"host", "authorization", "accept-encoding"}

# Only encodings httpx decodes without optional extras
UPSTREAM_ACCEPT_ENCODING = "gzip, deflate"

# Response headers invalidated by reading the whole (decoded) body,
# plus those the serving ASGI server sets itself
STRIPPED_RESPONSE_HEADERS = {
    "content-encoding",
    "content-length",
    "transfer-encoding",
    "date",
    "server",
}


def parse_model_path(path: str) -> Tuple[str, Optional[str]]:
    """
    Extract (model, verb) from a path such as /v1beta/models/gemini-pro:generateContent.

    The path may still be percent-encoded; only the model name is decoded.
    The verb is None when the segment after "models" has no colon.
    """
    segments = path.split("/")
    try:
        index = segments.index("models")
    except ValueError:
        raise ModelUnresolvable()

    if index + 1 >= len(segments):
        raise ModelUnresolvable()

    model, _, verb = segments[index + 1].partition(":")
    model = unquote(model)
    if not model:
        raise ModelUnresolvable()
    return model, verb or None


def build_upstream_headers(headers: Mapping[str, str], api_key: str) -> List[Tuple[str, str]]:
    """Copy inbound headers, repeats included, with the pool key swapped in."""
    out_headers = [
        (k, v) for k, v in headers.items()
        if k.lower() not in STRIPPED_REQUEST_HEADERS and k.lower() != UPSTREAM_KEY_HEADER
    ]
    out_headers.append(("accept-encoding", UPSTREAM_ACCEPT_ENCODING))
    out_headers.append((UPSTREAM_KEY_HEADER, api_key))
    return out_headers


@dataclass
class UpstreamResponse:
    status_code: int
    content: bytes
    headers: List[Tuple[str, str]] = field(default_factory=list)


class RequestForwarder:
    """Forwarder with a shared :class:`httpx.AsyncClient`. One attempt, no retries."""

    def __init__(self, upstream_host: str, client: httpx.AsyncClient):
        self.upstream_host = upstream_host
        self._client = client

    def build_url(self, path: str, query: str = "") -> str:
        url = f"https://{self.upstream_host}{path}"
        if query:
            url += f"?{query}"
        return url

    async def forward(
        self,
        method: str,
        path: str,
        query: str,
        headers: Mapping[str, str],
        body: bytes,
        api_key: str,
        model: str,
    ) -> UpstreamResponse:
        url = self.build_url(path, query)
        logger.info(f"Forwarding {method} to {self.upstream_host}{path} with key {mask_key(api_key)}")

        try:
            response = await self._client.request(
                method,
                url,
                content=body or None,
                headers=build_upstream_headers(headers, api_key),
            )
        except httpx.RequestError as e:
            # transport failures and bodies that cannot be decoded
            logger.error(
                f"Error fetching from target API ({self.upstream_host}) for model {model} "
                f"with key {mask_key(api_key)}: {e!r}"
            )
            raise ForwardingFailure(api_key, model)

        if response.is_error:
            logger.warning(
                f"Target API returned status {response.status_code} for model {model} "
                f"using key {mask_key(api_key)}"
            )

        return UpstreamResponse(
            status_code=response.status_code,
            content=response.content,
            headers=[
                (k, v) for k, v in response.headers.multi_items()
                if k.lower() not in STRIPPED_RESPONSE_HEADERS
            ],
        )
