"""Weighted random redirection of requests to one of several target addresses."""

from __future__ import annotations

import bisect
import html
import random
from dataclasses import dataclass, field
from http import HTTPStatus
from itertools import accumulate
from typing import Any, Callable, Iterable
from urllib.parse import quote

from werkzeug.wrappers import Request, Response

_PATH_SAFE = "/$&+,:;=@"


@dataclass
class TargetEntry:
    """A target address and its relative weight."""

    ip: str = ""
    weight: int = 0


@dataclass
class RedirectorConfig:
    targets: list[TargetEntry] = field(default_factory=list)
    default_scheme: str = "http"
    default_port: int = 80
    permanent_redirect: bool = False
    preserve_path_and_query: bool = False


def create_config() -> RedirectorConfig:
    """The default configuration: plain HTTP on port 80, temporary redirects to ``/``."""
    return RedirectorConfig()


class WeightedRedirector:
    """Redirects each request to a target chosen with probability proportional to its weight."""

    def __init__(self, config: RedirectorConfig, name: str = "", rng: Any = None) -> None:
        if not config.targets:
            raise ValueError(f"plugin {name}: targets cannot be empty")
        for target in config.targets:
            if target.weight <= 0:
                raise ValueError(
                    f"plugin {name}: target weight must be positive for IP {target.ip}"
                )
            if not target.ip:
                raise ValueError(f"plugin {name}: target IP cannot be empty")
        self.config = config
        self.name = name
        self.random = rng if rng is not None else random.Random()
        self._cumulative = list(accumulate(target.weight for target in config.targets))
        self.total_weight = self._cumulative[-1]

    @property
    def status_code(self) -> int:
        return 301 if self.config.permanent_redirect else 302

    def pick_target(self) -> str:
        """Draw a target address according to the weights."""
        pick = self.random.randrange(self.total_weight)
        position = bisect.bisect_right(self._cumulative, pick)
        if position < len(self.config.targets):
            return self.config.targets[position].ip
        return self.config.targets[0].ip

    def redirect_location(self, path: str = "/", query: str = "") -> str:
        """URL of a freshly chosen target; keeps ``path`` and ``query`` only if configured."""
        host = self.pick_target()
        scheme = self.config.default_scheme
        port = self.config.default_port
        if port > 0 and (scheme, port) not in (("http", 80), ("https", 443)):
            host = f"{host}:{port}"

        if self.config.preserve_path_and_query:
            target_path, raw_query = path, query
        else:
            target_path, raw_query = "/", ""

        parts = [f"{scheme}:" if scheme else "", "//", host]
        escaped = quote(target_path, safe=_PATH_SAFE)
        if escaped and not escaped.startswith("/"):
            parts.append("/")
        parts.append(escaped)
        if raw_query:
            parts.append(f"?{raw_query}")
        return "".join(parts)

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        request = Request(environ)
        location = self.redirect_location(
            request.path, request.query_string.decode("latin-1")
        )
        code = self.status_code
        body = ""
        if request.method in ("GET", "HEAD"):
            body = f'<a href="{html.escape(location)}">{HTTPStatus(code).phrase}</a>.\n\n'
        response = Response(body, status=code, mimetype="text/html")
        response.headers["Location"] = location
        return response(environ, start_response)