#!/usr/bin/env python3
"""
Integration tests for the HTTP API

Requests are rendered with Twisted's DummyRequest against the real
resource tree; DNS answers come from a fake resolver client.
"""

import io
import json

from prometheus_client import CollectorRegistry
from twisted.internet import defer
from twisted.internet.error import ConnectionDone
from twisted.python.failure import Failure
from twisted.trial.unittest import SynchronousTestCase
from twisted.web import server
from twisted.web.resource import getChildForRequest
from twisted.web.test.requesthelper import DummyRequest
from twisted.web.wsgi import WSGIResource

from btk_check.api import CheckResource, build_root
from btk_check.config import Configuration, ConfigurationStore
from btk_check.engine import CheckEngine
from btk_check.lookup import LookupOrchestrator
from btk_check.metrics import MetricsCollector
from btk_check.models import CheckResult
from btk_check.version import __version__

RESOLVER = "195.175.39.39:53"


def make_request(path, method=b"GET", args=None, body=None):
    request = DummyRequest([path])
    request.method = method
    for name, value in (args or {}).items():
        request.addArg(name, value)
    if body is not None:
        request.content = io.BytesIO(body)
    return request


def render(root, request):
    """Route and render a request that completes synchronously"""
    resource = getChildForRequest(root, request)
    result = resource.render(request)
    if result is not server.NOT_DONE_YET:
        request.write(result)
        request.finish()
    return request


def response_json(request):
    return json.loads(b"".join(request.written).decode("utf-8"))


class TestAPI(SynchronousTestCase):
    """Test each endpoint through the resource tree"""

    def setUp(self):
        self.store = ConfigurationStore(
            Configuration(
                resolvers=(RESOLVER,), sentinel_ips=("195.175.254.2",), location="Istanbul"
            )
        )
        self.calls = []
        self.answers = {
            RESOLVER: {"blocked.example": ["195.175.254.2"], "example.com": ["93.184.216.34"]},
            "9.9.9.9:53": {"example.com": ["93.184.216.34"]},
        }
        self.metrics = MetricsCollector(enabled=True, registry=CollectorRegistry())
        orchestrator = LookupOrchestrator(self.store, client=self, metrics=self.metrics)
        engine = CheckEngine(self.store, orchestrator, metrics=self.metrics)
        self.root = build_root(
            engine,
            self.store,
            metrics=self.metrics,
            env_file="/etc/btk-check/.env",
            reload_interval=2.0,
        )

    def lookup(self, domain, resolver_addr, timeout=5.0):
        """Resolver client stand-in answering per domain"""
        self.calls.append((domain, resolver_addr, timeout))
        return defer.succeed(list(self.answers[resolver_addr].get(domain, [])))

    def test_check_get_blocked(self):
        request = render(
            self.root, make_request(b"check", args={b"domain": b"www.blocked.example"})
        )

        body = response_json(request)
        self.assertEqual(request.finished, 1)
        self.assertTrue(body["success"])
        self.assertTrue(body["is_blocked"])
        self.assertEqual(body["domain"], "blocked.example")
        self.assertEqual(body["blocked_ip"], "195.175.254.2")
        self.assertEqual(body["dns_server"], "195.175.39.39")
        self.assertEqual(body["server_location"], "Istanbul")
        self.assertIn("response_time_ms", body)
        self.assertEqual(
            request.responseHeaders.getRawHeaders(b"content-type"),
            [b"application/json; charset=utf-8"],
        )
        self.assertEqual(
            request.responseHeaders.getRawHeaders(b"access-control-allow-origin"), [b"*"]
        )

    def test_check_get_not_blocked(self):
        request = render(self.root, make_request(b"check", args={b"domain": b"example.com"}))

        body = response_json(request)
        self.assertTrue(body["success"])
        self.assertFalse(body["is_blocked"])
        self.assertNotIn("blocked_ip", body)

    def test_check_missing_domain(self):
        request = render(self.root, make_request(b"check"))

        body = response_json(request)
        self.assertFalse(body["success"])
        self.assertEqual(body["error"], "domain parameter must not be empty")
        self.assertEqual(self.calls, [])

    def test_check_failure_still_200(self):
        request = render(self.root, make_request(b"check", args={b"domain": b"nothing.example"}))

        body = response_json(request)
        self.assertFalse(body["success"])
        self.assertEqual(body["error"], "DNS resolution failed: no IP addresses found")
        self.assertIsNone(request.responseCode)

    def test_check_post_json_body(self):
        request = render(
            self.root,
            make_request(b"check", method=b"POST", body=b'{"domain": "https://blocked.example/"}'),
        )

        body = response_json(request)
        self.assertEqual(body["domain"], "blocked.example")
        self.assertTrue(body["is_blocked"])

    def test_check_post_query_wins(self):
        request = render(
            self.root,
            make_request(
                b"check",
                method=b"POST",
                args={b"domain": b"example.com"},
                body=b'{"domain": "blocked.example"}',
            ),
        )

        self.assertEqual(response_json(request)["domain"], "example.com")

    def test_check_post_bad_body(self):
        request = render(
            self.root, make_request(b"check", method=b"POST", body=b"not json")
        )

        self.assertEqual(response_json(request)["error"], "domain parameter must not be empty")

    def test_check_options_preflight(self):
        request = render(self.root, make_request(b"check", method=b"OPTIONS"))

        self.assertEqual(request.responseCode, 200)
        self.assertEqual(b"".join(request.written), b"")
        self.assertEqual(
            request.responseHeaders.getRawHeaders(b"access-control-allow-methods"),
            [b"GET, POST, OPTIONS"],
        )
        self.assertEqual(
            request.responseHeaders.getRawHeaders(b"access-control-allow-headers"),
            [b"Content-Type"],
        )

    def test_health(self):
        body = response_json(render(self.root, make_request(b"health")))

        self.assertEqual(body["status"], "healthy")
        self.assertEqual(body["version"], __version__)
        self.assertIsInstance(body["timestamp"], int)

    def test_config_reflects_reload(self):
        self.store.reload(
            Configuration(resolvers=("9.9.9.9:53",), sentinel_ips=("10.0.0.1",), location="Ankara")
        )

        body = response_json(render(self.root, make_request(b"config")))

        self.assertEqual(
            body,
            {
                "dns_servers": ["9.9.9.9:53"],
                "blocked_ips": ["10.0.0.1"],
                "server_location": "Ankara",
                "hot_reload": True,
            },
        )

    def test_check_uses_reloaded_resolvers(self):
        self.store.reload(Configuration(resolvers=("9.9.9.9:53",)))

        body = response_json(
            render(self.root, make_request(b"check", args={b"domain": b"example.com"}))
        )

        self.assertEqual(body["dns_server"], "9.9.9.9")
        self.assertEqual(self.calls[-1][1], "9.9.9.9:53")

    def test_index(self):
        body = response_json(render(self.root, make_request(b"")))

        self.assertEqual(body["version"], __version__)
        self.assertEqual(body["dns_servers"], [RESOLVER])
        self.assertEqual(body["blocked_ips"], ["195.175.254.2"])
        self.assertEqual(
            body["features"],
            {"hot_reload": True, "config_file": "/etc/btk-check/.env", "reload_interval_ms": 2000},
        )
        self.assertIn("GET /check?domain={domain}", body["endpoints"])

    def test_metrics_mounted(self):
        request = make_request(b"metrics")
        self.assertIsInstance(getChildForRequest(self.root, request), WSGIResource)

    def test_metrics_not_mounted_when_disabled(self):
        engine = CheckEngine(self.store, metrics=MetricsCollector(enabled=False))
        root = build_root(engine, self.store)
        request = make_request(b"metrics")
        self.assertNotIsInstance(getChildForRequest(root, request), WSGIResource)

    def test_checks_counted(self):
        render(self.root, make_request(b"check", args={b"domain": b"blocked.example"}))

        self.assertEqual(
            self.metrics.registry.get_sample_value("btk_check_checks_total", {"result": "blocked"}),
            1.0,
        )


class TestClientGoneAway(SynchronousTestCase):
    """A client that disconnects before the result is ready gets nothing written"""

    def test_no_write_after_disconnect(self):
        pending = defer.Deferred()

        class SlowEngine:
            def check(self, domain):
                return pending

        resource = CheckResource(SlowEngine())
        request = make_request(b"check", args={b"domain": b"example.com"})

        self.assertIs(resource.render(request), server.NOT_DONE_YET)
        request.processingFailed(Failure(ConnectionDone()))

        pending.callback(CheckResult("example.com", 0, success=True))

        self.assertEqual(request.written, [])
        self.assertEqual(request.finished, 0)
