"""Dynamic Traefik configuration that redirects ``/resolve/<domain>`` to the domain's origin."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from werkzeug.serving import make_server
from werkzeug.wrappers import Request, Response

logger = logging.getLogger(__name__)

CONFIG_PATH = "/api/traefik/config"
DUMMY_SERVICE = "dummy-service"
DUMMY_SERVICE_URL = "http://localhost:8080"
DEFAULT_DOMAIN = "example.com"
DEFAULT_TARGETS = ("1.92.150.161:50055",)

WSGIApp = Callable[[dict, Callable], Iterable[bytes]]

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


@dataclass
class Server:
    """A backend server of a load balancer."""

    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url}


@dataclass
class LoadBalancer:
    servers: list[Server] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"servers": [server.to_dict() for server in self.servers]}


@dataclass
class Service:
    load_balancer: LoadBalancer | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if self.load_balancer is not None:
            body["loadBalancer"] = self.load_balancer.to_dict()
        return body


@dataclass
class RedirectRegex:
    regex: str = ""
    replacement: str = ""
    permanent: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "regex": self.regex,
            "replacement": self.replacement,
            "permanent": self.permanent,
        }


@dataclass
class Middleware:
    redirect_regex: RedirectRegex | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if self.redirect_regex is not None:
            body["redirectRegex"] = self.redirect_regex.to_dict()
        return body


@dataclass
class Router:
    rule: str = ""
    service: str = ""
    middlewares: list[str] = field(default_factory=list)
    entrypoints: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"rule": self.rule, "service": self.service}
        if self.middlewares:
            body["middlewares"] = list(self.middlewares)
        if self.entrypoints:
            body["entryPoints"] = list(self.entrypoints)
        return body


@dataclass
class HTTPConfig:
    routers: dict[str, Router] = field(default_factory=dict)
    services: dict[str, Service] = field(default_factory=dict)
    middlewares: dict[str, Middleware] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "routers": {k: self.routers[k].to_dict() for k in sorted(self.routers)},
            "services": {k: self.services[k].to_dict() for k in sorted(self.services)},
            "middlewares": {
                k: self.middlewares[k].to_dict() for k in sorted(self.middlewares)
            },
        }


@dataclass
class TraefikConfig:
    """Top level of a Traefik HTTP provider document."""

    http: HTTPConfig = field(default_factory=HTTPConfig)

    def to_dict(self) -> dict[str, Any]:
        return {"http": self.http.to_dict()}

    def to_json(self) -> bytes:
        """Compact JSON with HTML-sensitive characters escaped, ending in a newline."""
        text = json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)
        for char, escaped in _HTML_ESCAPES.items():
            text = text.replace(char, escaped)
        return (text + "\n").encode("utf-8")


@dataclass
class DomainMapping:
    """A domain and the addresses it may be sent to."""

    domain: str = ""
    ips: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"domain": self.domain, "ips": list(self.ips)}


class MappingStore:
    """Thread-safe in-memory domain mappings."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._mappings: dict[str, list[str]] = {}

    def add_domain_mapping(self, domain: str, ips: Iterable[str]) -> None:
        """Add a mapping or replace the addresses of an existing one."""
        with self._lock:
            self._mappings[domain] = list(ips)

    def get_all_domain_mappings(self) -> list[DomainMapping]:
        with self._lock:
            return [
                DomainMapping(domain=domain, ips=list(ips))
                for domain, ips in self._mappings.items()
            ]


def sanitize_name(domain: str) -> str:
    """Turn a domain into a configuration key by replacing dots with dashes."""
    return domain.replace(".", "-")


def generate_traefik_config(mappings: Iterable[DomainMapping]) -> TraefikConfig:
    """Build one redirect router per mapping, sending it to the mapping's first address."""
    config = TraefikConfig()
    config.http.services[DUMMY_SERVICE] = Service(
        load_balancer=LoadBalancer(servers=[Server(url=DUMMY_SERVICE_URL)])
    )
    for mapping in mappings:
        if not mapping.ips:
            continue
        target_ip = mapping.ips[0]
        name = sanitize_name(mapping.domain)
        middleware_name = f"redirect-to-{name}"
        config.http.middlewares[middleware_name] = Middleware(
            redirect_regex=RedirectRegex(
                regex=".*",
                replacement=f"http://{target_ip}/",
                permanent=False,
            )
        )
        config.http.routers[f"{name}-router"] = Router(
            rule=f"Path(`/resolve/{mapping.domain}`)",
            service=DUMMY_SERVICE,
            middlewares=[middleware_name],
            entrypoints=["web"],
        )
    return config


def make_app(store: MappingStore) -> WSGIApp:
    """WSGI application serving the generated configuration at ``CONFIG_PATH``."""

    def app(environ: dict, start_response: Callable) -> Iterable[bytes]:
        request = Request(environ)
        if request.path != CONFIG_PATH:
            response = Response("404 page not found\n", status=404, mimetype="text/plain")
            return response(environ, start_response)
        mappings = store.get_all_domain_mappings()
        body = generate_traefik_config(mappings).to_json()
        logger.info("Traefik configuration provided with %d domain mappings", len(mappings))
        response = Response(body, status=200, mimetype="application/json")
        return response(environ, start_response)

    return app


def run_server(port: str | int) -> None:
    """Serve the configuration on all interfaces at ``port`` until interrupted."""
    store = MappingStore()
    store.add_domain_mapping(DEFAULT_DOMAIN, DEFAULT_TARGETS)
    server = make_server("0.0.0.0", int(port), make_app(store), threaded=True)
    logger.info("starting Traefik config provider on :%s", port)
    logger.info("Traefik config available at: http://localhost:%s%s", port, CONFIG_PATH)
    try:
        server.serve_forever()
    finally:
        server.server_close()