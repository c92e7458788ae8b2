"""
Proxy Errors

Every failure the forwarding pipeline can surface, each carrying the HTTP
status it is rendered with.
"""


class ProxyError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthError(ProxyError):
    status_code = 401
    default_message = "Unauthorized"


class ModelUnresolvable(ProxyError):
    status_code = 400
    default_message = "Could not determine model from request path"


class KeyPoolEmpty(ProxyError):
    status_code = 503
    default_message = "No API key available"


class ForwardingFailure(ProxyError):
    status_code = 502
    default_message = "Failed to communicate with the upstream API"

    def __init__(self, api_key: str, model: str, message: str = None):
        self.api_key = api_key
        self.model = model
        super().__init__(message)


class RequestTimeout(ProxyError):
    status_code = 408
    default_message = "Request Timeout"


class ConfigError(ProxyError):
    status_code = 500
    default_message = "Internal Server Error"
