"""Errors raised while routing a request, each mapped to an HTTP status."""


class RouterError(Exception):
    status = 500
    message = "Internal router error"

    def __init__(self, detail=None):
        super().__init__(detail or self.message)
        self.detail = detail

    def to_dict(self):
        return {"message": self.message}


class MissingTargetURL(RouterError):
    status = 400
    message = "Missing url query parameter"


class InvalidTokenFormat(RouterError):
    status = 400
    message = "Invalid base64 URL format"


class InvalidTargetURL(RouterError):
    status = 400
    message = "Invalid URL format"

    def __init__(self, target_url):
        super().__init__(f"not an absolute http(s) URL: {target_url!r}")
        self.target_url = target_url

    def to_dict(self):
        return {"message": self.message, "targetUrl": self.target_url}


class FetchError(RouterError):
    """Network-level failure talking to the upstream server."""

    status = 500
    message = "Error fetching target URL"

    def to_dict(self):
        return {"message": self.message, "error": str(self)}


class UpstreamTimeout(FetchError):
    status = 504


class UpstreamConnectionError(FetchError):
    status = 502


class UpstreamTLSError(UpstreamConnectionError):
    pass


class UpstreamRedirectError(FetchError):
    status = 502


class StreamReadError(RouterError):
    status = 502
    message = "Error reading target response"

    def to_dict(self):
        return {"message": self.message, "error": str(self)}
