"""Shared MySQL connection, Redis connection pool and configuration loading."""

from __future__ import annotations

import logging
import re
import threading
import tomllib
from pathlib import Path
from typing import Any

import pymysql
import redis

from linksched.records import MYSQL_DSN, ConfigInfo

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "control/config/conf.toml"
REDIS_HOST = "localhost"
REDIS_PORT = 6379
REDIS_MAX_CONNECTIONS = 20

_NET_ADDR_RE = re.compile(r"(\w*)(?:\((.*)\))?")


class DatabaseConnectionError(ConnectionError):
    """Raised when the database cannot be reached."""


_db: Any = None
_db_lock = threading.Lock()
_redis_pool: redis.ConnectionPool | None = None
_redis_lock = threading.Lock()


def _parse_dsn(dsn: str) -> dict[str, Any]:
    """Turn a ``user:pass@tcp(host:port)/db?charset=...`` string into connect arguments."""
    slash = dsn.rfind("/")
    if slash < 0:
        raise ValueError(f"invalid DSN {dsn!r}: missing the slash before the database name")
    head, tail = dsn[:slash], dsn[slash + 1 :]
    database, _, query = tail.partition("?")

    at = head.rfind("@")
    user_part = head[:at] if at >= 0 else ""
    net_addr = head[at + 1 :]
    user, _, remainder = user_part.partition(":")

    match = _NET_ADDR_RE.fullmatch(net_addr)
    if match is None:
        raise ValueError(f"invalid DSN {dsn!r}: bad network address {net_addr!r}")
    net, addr = match.group(1) or "tcp", match.group(2) or ""

    kwargs: dict[str, Any] = {"user": user, "database": database}
    kwargs["password"] = remainder
    if net == "unix":
        kwargs["unix_socket"] = addr or "/tmp/mysql.sock"
    elif net == "tcp":
        host, _, port = (addr or "127.0.0.1:3306").rpartition(":")
        if not host:
            host, port = addr, "3306"
        try:
            kwargs["port"] = int(port)
        except ValueError as err:
            raise ValueError(f"invalid DSN {dsn!r}: bad port {port!r}") from err
        kwargs["host"] = host
    else:
        raise ValueError(f"invalid DSN {dsn!r}: unknown network {net!r}")

    for item in filter(None, query.split("&")):
        key, _, value = item.partition("=")
        if key == "charset":
            kwargs["charset"] = value.split(",")[0]
    return kwargs


def connect_to_db(dsn: str = MYSQL_DSN) -> Any:
    """Return the shared database connection, opening it on first use."""
    global _db
    with _db_lock:
        if _db is not None:
            return _db
        kwargs = _parse_dsn(dsn)
        try:
            connection = pymysql.connect(autocommit=True, **kwargs)
            connection.ping(reconnect=False)
        except pymysql.err.Error as err:
            logger.error("error connecting to the database: %s", err)
            raise DatabaseConnectionError(f"cannot connect to the database: {err}") from err
        _db = connection
        logger.info("database connection initialized successfully")
        return _db


def close_db() -> None:
    """Close the shared database connection if it is open."""
    global _db
    with _db_lock:
        connection, _db = _db, None
    if connection is None:
        return
    try:
        connection.close()
    except pymysql.err.Error as err:
        logger.error("error closing the database connection: %s", err)
    else:
        logger.info("database connection closed")


def create_redis_pool() -> redis.ConnectionPool:
    """Create the shared Redis connection pool, replacing any earlier one."""
    global _redis_pool
    with _redis_lock:
        _redis_pool = redis.ConnectionPool(
            host=REDIS_HOST,
            port=REDIS_PORT,
            max_connections=REDIS_MAX_CONNECTIONS,
        )
        return _redis_pool


def get_redis_conn() -> redis.Redis:
    """Return a Redis client drawing connections from the shared pool."""
    with _redis_lock:
        pool = _redis_pool
    if pool is None:
        raise RuntimeError("the Redis pool has not been created")
    return redis.Redis(connection_pool=pool)


def close_redis_pool() -> None:
    """Disconnect and drop the shared Redis pool."""
    global _redis_pool
    with _redis_lock:
        pool, _redis_pool = _redis_pool, None
    if pool is None:
        return
    try:
        pool.disconnect()
    except redis.RedisError as err:
        logger.error("error closing the Redis connection pool: %s", err)
    else:
        logger.info("Redis connection pool closed")


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> ConfigInfo:
    """Read controller settings from a TOML file."""
    with open(path, "rb") as handle:
        data = tomllib.load(handle)
    return ConfigInfo.from_mapping(data)