import time
import logging
import threading
import requests
from typing import Callable, Optional
from dpug_host.local.supervisor.state import ServerEndpoint

log = logging.getLogger(__name__)

HEALTH_PATH = "/health"
HEALTHY_BODY = "ok"


def probe(endpoint: ServerEndpoint, timeout: float) -> bool:
    """
    Issues a single health request against the server.

    :param endpoint: The server's host and port.
    :param timeout: Seconds before the request is abandoned.
    :return: True only for HTTP 200 with the body 'ok'. Never raises.
    """
    url = f"{endpoint.url}{HEALTH_PATH}"
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        log.debug(f"Health probe to '{url}' failed: {e}")
        return False
    return response.status_code == 200 and response.text == HEALTHY_BODY


def wait_ready(
    endpoint: ServerEndpoint,
    deadline: float,
    poll_interval: float,
    probe_timeout: float,
    prober: Callable[[ServerEndpoint, float], bool] = probe,
    cancel_event: Optional[threading.Event] = None,
    should_abort: Optional[Callable[[], bool]] = None,
) -> bool:
    """
    Polls the health endpoint until it succeeds or the deadline elapses.

    Timing out is a normal outcome and is reported as False. The wait between
    probes is clipped to the time left, so the call returns no earlier than
    `deadline` and no later than `deadline + poll_interval`, plus at most one
    probe in flight.

    :param endpoint: The server's host and port.
    :param deadline: Total seconds to keep polling.
    :param poll_interval: Seconds between probes.
    :param probe_timeout: Timeout for each individual probe.
    :param prober: The health check to poll.
    :param cancel_event: When set, the wait ends early and returns False.
    :param should_abort: Checked before every probe; True ends the wait with False.
    :return: True if the server became healthy in time.
    """
    cancel_event = cancel_event or threading.Event()
    start_time = time.monotonic()

    while True:
        if cancel_event.is_set():
            log.info("Readiness wait cancelled.")
            return False
        if should_abort is not None and should_abort():
            return False

        if prober(endpoint, probe_timeout):
            return True

        remaining = deadline - (time.monotonic() - start_time)
        if remaining <= 0:
            return False
        if cancel_event.wait(min(poll_interval, remaining)):
            log.info("Readiness wait cancelled.")
            return False
