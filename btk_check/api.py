# btk_check/api.py
"""HTTP JSON API on Twisted Web"""

import json
import logging
import time
from typing import Any, Dict, Optional

from twisted.web import resource, server

from .config import ConfigurationStore
from .constants import (
    API_DESCRIPTION,
    API_NAME,
    CONFIG_POLL_INTERVAL,
    DEFAULT_ENV_FILE,
)
from .engine import CheckEngine
from .metrics import MetricsCollector
from .models import CheckResult
from .version import __version__

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = b"application/json; charset=utf-8"
CORS_HEADERS = {
    b"Access-Control-Allow-Origin": b"*",
    b"Access-Control-Allow-Methods": b"GET, POST, OPTIONS",
    b"Access-Control-Allow-Headers": b"Content-Type",
}


def json_body(request, payload: Dict[str, Any]) -> bytes:
    """Set the JSON content type and encode the payload"""
    request.setHeader(b"Content-Type", JSON_CONTENT_TYPE)
    return json.dumps(payload, ensure_ascii=False).encode("utf-8") + b"\n"


class CheckResource(resource.Resource):
    """/check: run a block check for ?domain= or a JSON body {"domain": ...}"""

    isLeaf = True

    def __init__(self, engine: CheckEngine):
        super().__init__()
        self.engine = engine

    def _set_cors(self, request):
        for name, value in CORS_HEADERS.items():
            request.setHeader(name, value)

    def _query_domain(self, request) -> str:
        values = (request.args or {}).get(b"domain") or [b""]
        return values[0].decode("utf-8", "replace")

    def _body_domain(self, request) -> str:
        content = getattr(request, "content", None)
        if content is None:
            return ""
        try:
            content.seek(0)
            body = json.loads(content.read() or b"{}")
        except ValueError as e:
            logger.debug(f"Ignoring unreadable POST body: {e}")
            return ""
        if not isinstance(body, dict):
            return ""
        domain = body.get("domain")
        return domain if isinstance(domain, str) else ""

    def render_OPTIONS(self, request):
        self._set_cors(request)
        request.setHeader(b"Content-Type", JSON_CONTENT_TYPE)
        request.setResponseCode(200)
        return b""

    def render_GET(self, request):
        return self._start_check(request, self._query_domain(request))

    def render_POST(self, request):
        domain = self._query_domain(request) or self._body_domain(request)
        return self._start_check(request, domain)

    def _start_check(self, request, domain: str):
        self._set_cors(request)
        request.setHeader(b"Content-Type", JSON_CONTENT_TYPE)

        gone = []
        request.notifyFinish().addErrback(lambda _: gone.append(True))

        d = self.engine.check(domain)
        d.addCallback(self._write_result, request, gone)
        d.addErrback(self._write_error, request, gone)
        return server.NOT_DONE_YET

    def _write_result(self, result: CheckResult, request, gone):
        if gone:
            logger.debug(f"Client went away before the result for {result.domain} was ready")
            return
        request.write(json.dumps(result.to_dict(), ensure_ascii=False).encode("utf-8") + b"\n")
        request.finish()

    def _write_error(self, failure, request, gone):
        logger.error(f"Failed to send check result: {failure.getErrorMessage()}")
        if not gone:
            request.setResponseCode(500)
            request.finish()


class HealthResource(resource.Resource):
    """/health"""

    isLeaf = True

    def render_GET(self, request):
        return json_body(
            request,
            {"status": "healthy", "timestamp": int(time.time()), "version": __version__},
        )


class ConfigResource(resource.Resource):
    """/config: the configuration checks are running with right now"""

    isLeaf = True

    def __init__(self, store: ConfigurationStore):
        super().__init__()
        self.store = store

    def render_GET(self, request):
        payload = self.store.snapshot().to_dict()
        payload["hot_reload"] = True
        return json_body(request, payload)


class IndexResource(resource.Resource):
    """/: service description"""

    isLeaf = True

    def __init__(
        self,
        store: ConfigurationStore,
        env_file: str = DEFAULT_ENV_FILE,
        reload_interval: float = CONFIG_POLL_INTERVAL,
    ):
        super().__init__()
        self.store = store
        self.env_file = env_file
        self.reload_interval = reload_interval

    def render_GET(self, request):
        configuration = self.store.snapshot()
        return json_body(
            request,
            {
                "name": API_NAME,
                "version": __version__,
                "description": API_DESCRIPTION,
                "endpoints": {
                    "GET /check?domain={domain}": "Check whether a domain is blocked",
                    "GET /health": "API health status",
                    "GET /config": "Show the active configuration",
                    "GET /metrics": "Prometheus metrics",
                },
                "dns_servers": list(configuration.resolvers),
                "blocked_ips": list(configuration.sentinel_ips),
                "features": {
                    "hot_reload": True,
                    "config_file": self.env_file,
                    "reload_interval_ms": int(self.reload_interval * 1000),
                },
            },
        )


def build_root(
    engine: CheckEngine,
    store: ConfigurationStore,
    metrics: Optional[MetricsCollector] = None,
    env_file: str = DEFAULT_ENV_FILE,
    reload_interval: float = CONFIG_POLL_INTERVAL,
) -> resource.Resource:
    """Resource tree for the API"""
    root = resource.Resource()
    root.putChild(b"", IndexResource(store, env_file, reload_interval))
    root.putChild(b"check", CheckResource(engine))
    root.putChild(b"health", HealthResource())
    root.putChild(b"config", ConfigResource(store))
    if metrics is not None and metrics.enabled:
        root.putChild(b"metrics", metrics.resource())
    return root


def build_site(engine: CheckEngine, store: ConfigurationStore, **kwargs) -> server.Site:
    """Site factory ready for reactor.listenTCP"""
    return server.Site(build_root(engine, store, **kwargs))
