import logging
import requests
from dpug_host import settings
from dpug_host.local.supervisor.state import ServerEndpoint

log = logging.getLogger(__name__)


class ConversionError(RuntimeError):
    """Raised when the DPug server rejects a request or cannot be reached."""


def _post_source(endpoint: ServerEndpoint, path: str, source: str, timeout: float) -> str:
    """
    Posts source text to one of the server's conversion endpoints.

    :param endpoint: The server's host and port.
    :param path: The endpoint path, e.g. '/format/dpug'.
    :param source: The document text.
    :param timeout: Seconds before the request is abandoned.
    :return: The converted text.
    :raises ConversionError: With the server's error body when present, else the transport error.
    """
    url = f"{endpoint.url}{path}"
    try:
        response = requests.post(url, json={"source": source}, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        response = getattr(e, "response", None)
        message = response.text if response is not None and response.text else str(e)
        log.debug(f"Request to '{url}' failed: {message}")
        raise ConversionError(message) from e
    return response.text


def format_dpug(endpoint: ServerEndpoint, source: str, timeout: float = settings.REQUEST_TIMEOUT) -> str:
    """Returns the DPug source formatted by the server."""
    return _post_source(endpoint, "/format/dpug", source, timeout)


def dpug_to_dart(endpoint: ServerEndpoint, source: str, timeout: float = settings.REQUEST_TIMEOUT) -> str:
    """Returns the Dart equivalent of a DPug document."""
    return _post_source(endpoint, "/dpug/to-dart", source, timeout)


def dart_to_dpug(endpoint: ServerEndpoint, source: str, timeout: float = settings.REQUEST_TIMEOUT) -> str:
    """Returns the DPug equivalent of a Dart document."""
    return _post_source(endpoint, "/dart/to-dpug", source, timeout)
