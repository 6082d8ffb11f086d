"""Reads and writes of node, link and domain records in the metrics database."""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, Sequence

import pymysql

from linksched.records import CPUStats, DomainIPMapping, NetState, NodeInfo, ProbeResult

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class NoDataError(LookupError):
    """Raised when a query that needs a row finds none."""


class QueryError(RuntimeError):
    """Raised when the database reports an error during a query."""


@dataclass
class ProbeRecord:
    """A probe measurement stored with the regions of both ends."""

    source_ip: str = ""
    source_region: str = ""
    target_ip: str = ""
    target_region: str = ""
    tcp_delay: int = 0
    probe_time: datetime = field(default_factory=datetime.now)


@contextmanager
def _wrapped(message: str) -> Iterator[None]:
    try:
        yield
    except pymysql.err.Error as err:
        raise QueryError(f"{message}: {err}") from err


def _fetch_all(db: Any, query: str, params: Sequence[Any] = ()) -> list[tuple]:
    with db.cursor() as cursor:
        cursor.execute(query, tuple(params))
        return list(cursor.fetchall())


def _fetch_one(db: Any, query: str, params: Sequence[Any] = ()) -> tuple | None:
    with db.cursor() as cursor:
        cursor.execute(query, tuple(params))
        return cursor.fetchone()


def _execute(db: Any, query: str, params: Sequence[Any] = ()) -> None:
    with db.cursor() as cursor:
        cursor.execute(query, tuple(params))


def _column(rows: list[tuple]) -> list[Any]:
    return [row[0] for row in rows]


def query_ip(db: Any) -> list[str]:
    """All distinct node addresses."""
    return _column(_fetch_all(db, "SELECT DISTINCT ip FROM node_region"))


def insert_link_info(
    db: Any, source_ip: str, destination_ip: str, delay: float, timestamp: str
) -> None:
    query = """
        INSERT INTO link_info (source_ip, destination_ip, latency, Timestamp)
        VALUES (%s, %s, %s, %s)
    """
    _execute(db, query, (source_ip, destination_ip, delay, timestamp))


def calculate_avg_delay(conn: Any, db: Any, ip1: str, ip2: str) -> float | None:
    """Average the last ten cached probes of ip1 -> ip2 and store it as link info.

    Returns the average, or None when the cache holds nothing for the pair.
    Unreadable entries are skipped but still count towards the divisor.
    """
    key = f"{ip1}:{ip2}"
    values = conn.lrange(key, -10, -1)
    if not values:
        logger.info("no data found for key: %s", key)
        return None

    total = 0.0
    for value in values:
        try:
            total += float(ProbeResult.from_json(value).delay)
        except (ValueError, TypeError, AttributeError) as err:
            logger.warning("failed to parse cached value: %s", err)
    average = total / len(values)
    insert_link_info(db, ip1, ip2, average, datetime.now().strftime(TIMESTAMP_FORMAT))
    return average


def get_delay(db: Any, ip1: str, ip2: str) -> float:
    """Most recent TCP delay measured from ip1 to ip2."""
    query = """
        SELECT tcp_delay
        FROM region_probe_info
        WHERE source_ip = %s AND target_ip = %s
        ORDER BY probe_time DESC
        LIMIT 1
    """
    with _wrapped("failed to query delay"):
        row = _fetch_one(db, query, (ip1, ip2))
    if row is None:
        raise NoDataError(f"no data found for {ip1}->{ip2}")
    return float(row[0])


def get_cpu_stats(db: Any, destination_ip: str) -> CPUStats:
    """Mean and population variance of a node's ten latest CPU usage samples."""
    query = """
        SELECT cpu_usage
        FROM system_info
        WHERE ip = %s
        ORDER BY created_at DESC
        LIMIT 10
    """
    with _wrapped("failed to execute query"):
        usages = [float(value) for value in _column(_fetch_all(db, query, (destination_ip,)))]
    if not usages:
        raise NoDataError(f"no CPU usage data found for device {destination_ip}")
    mean = math.fsum(usages) / len(usages)
    variance = math.fsum((usage - mean) ** 2 for usage in usages) / len(usages)
    return CPUStats(destination_ip=destination_ip, mean=mean, variance=variance)


def query_virtual_queue_cpu_by_ip(
    db: Any, source_ip: str, destination_ip: str
) -> tuple[float, float]:
    """Latest virtual-queue CPU mean and variance for a link."""
    query = """
        SELECT virtual_queue_cpu_mean, virtual_queue_cpu_variance
        FROM network_metrics
        WHERE source_ip = %s AND destination_ip = %s
        ORDER BY updated_at DESC
        LIMIT 1
    """
    with _wrapped("error querying database"):
        row = _fetch_one(db, query, (source_ip, destination_ip))
    if row is None:
        raise NoDataError(
            "no records found for sourceIP to destinationIP: "
            f"{source_ip}:{destination_ip}"
        )
    return float(row[0]), float(row[1])


def get_cpu_performance_list(
    db: Any, threshold_cpu_mean: float, threshold_cpu_var: float
) -> NetState:
    """Per-node CPU mean and variance over ten samples, split by the thresholds and sorted."""
    query = """
    WITH RankedRecords AS (
        SELECT
            ip,
            cpu_usage,
            ROW_NUMBER() OVER (PARTITION BY ip ORDER BY timestamp DESC) AS rn
        FROM system_info
    )
    SELECT
        ip,
        AVG(cpu_usage) AS avg_cpu_usage,
        VARIANCE(cpu_usage) AS variance_cpu_usage
    FROM RankedRecords
    WHERE rn <= 10
    GROUP BY ip
    """
    state = NetState()
    for _ip, avg_usage, variance_usage in _fetch_all(db, query):
        mean, variance = float(avg_usage), float(variance_usage)
        if mean > threshold_cpu_mean:
            state.above_threshold_cpu_means.append(mean)
        else:
            state.below_threshold_cpu_means.append(mean)
        if variance > threshold_cpu_var:
            state.above_threshold_cpu_vars.append(variance)
        else:
            state.below_threshold_cpu_vars.append(variance)
    state.above_threshold_cpu_means.sort()
    state.below_threshold_cpu_means.sort()
    state.above_threshold_cpu_vars.sort()
    state.below_threshold_cpu_vars.sort()
    return state


def query_origin_ip(db: Any, domain: str) -> str:
    with _wrapped(f"failed to query database for domain '{domain}'"):
        row = _fetch_one(db, "SELECT origin_ip FROM domain_origin WHERE domain = %s", (domain,))
    if row is None:
        raise NoDataError(f"domain '{domain}' not found")
    return row[0]


def query_node_info(db: Any) -> list[NodeInfo]:
    rows = _fetch_all(db, "SELECT ip, region FROM node_region")
    return [NodeInfo(ip=ip, region=region) for ip, region in rows]


def query_domain_ip_mappings(db: Any) -> list[DomainIPMapping]:
    rows = _fetch_all(db, "SELECT domain, origin_ip FROM domain_origin")
    return [DomainIPMapping(domain=domain, ip=ip) for domain, ip in rows]


def get_node_region(db: Any, ip: str) -> str:
    """Region of a node, or ``"unknown"`` when the node is not registered."""
    row = _fetch_one(db, "SELECT region FROM node_region WHERE ip = %s", (ip,))
    return "unknown" if row is None else row[0]


def get_all_regions(db: Any) -> list[str]:
    return _column(_fetch_all(db, "SELECT DISTINCT region FROM node_region"))


def get_region_ips(db: Any, region: str) -> list[str]:
    return _column(_fetch_all(db, "SELECT ip FROM node_region WHERE region = %s", (region,)))


def count_metrics_nodes(db: Any) -> int:
    """Number of distinct nodes that have reported metrics."""
    with _wrapped("failed to count metrics nodes"):
        row = _fetch_one(db, "SELECT COUNT(DISTINCT ip) FROM system_info")
    return int(row[0]) if row is not None else 0


def get_median_virtual(db: Any) -> tuple[float, float]:
    """Medians of the latest virtual-queue CPU mean and variance over all links."""
    query = """
    WITH latest_records AS (
        SELECT *
        FROM (
            SELECT *,
                   ROW_NUMBER() OVER (PARTITION BY source_ip, destination_ip ORDER BY updated_at DESC) as rn
            FROM network_metrics
        ) ranked
        WHERE rn = 1
    )
    SELECT
        PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY virtual_queue_cpu_mean) OVER () as median_virtual_queue_cpu_mean,
        PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY virtual_queue_cpu_variance) OVER () as median_virtual_queue_cpu_variance
    FROM latest_records
    LIMIT 1
    """
    with _wrapped("failed to query virtual queue medians"):
        row = _fetch_one(db, query)
    if row is None:
        raise NoDataError("no network metrics recorded")
    return float(row[0]), float(row[1])


def update_virtual_queue_and_cpu_metrics(
    db: Any,
    source_ip: str,
    destination_ip: str,
    latency: float,
    mean: float,
    variance: float,
    virtual_queue_cpu_mean: float,
    virtual_queue_cpu_variance: float,
) -> None:
    query = """
        INSERT INTO network_metrics (
            source_ip, destination_ip, link_latency,
            cpu_mean, cpu_variance,
            virtual_queue_cpu_mean, virtual_queue_cpu_variance
        ) VALUES (%s, %s, %s, %s, %s, %s, %s)
    """
    with _wrapped("failed to insert link data"):
        _execute(
            db,
            query,
            (
                source_ip,
                destination_ip,
                latency,
                mean,
                variance,
                virtual_queue_cpu_mean,
                virtual_queue_cpu_variance,
            ),
        )


def insert_probe_result(db: Any, result: ProbeRecord) -> None:
    query = """
    INSERT INTO region_probe_info
    (source_ip, source_region, target_ip, target_region, tcp_delay, probe_time)
    VALUES (%s, %s, %s, %s, %s, %s)
    """
    _execute(
        db,
        query,
        (
            result.source_ip,
            result.source_region,
            result.target_ip,
            result.target_region,
            result.tcp_delay,
            result.probe_time,
        ),
    )