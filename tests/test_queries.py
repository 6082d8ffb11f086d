from datetime import datetime

import pymysql
import pytest

from linksched import queries
from linksched.records import DomainIPMapping, NodeInfo, ProbeResult


class FakeCursor:
    def __init__(self, db):
        self._db = db
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, params=()):
        self._db.executed.append((" ".join(query.split()), params))
        if self._db.error is not None:
            raise self._db.error
        self._rows = self._db.results.pop(0) if self._db.results else []

    def fetchall(self):
        return list(self._rows)

    def fetchone(self):
        return self._rows[0] if self._rows else None


class FakeDB:
    def __init__(self, *results, error=None):
        self.results = list(results)
        self.error = error
        self.executed = []

    def cursor(self):
        return FakeCursor(self)


class FakeRedis:
    def __init__(self, values):
        self.values = values
        self.calls = []

    def lrange(self, key, start, end):
        self.calls.append((key, start, end))
        return self.values


def test_query_ip_returns_addresses():
    db = FakeDB([("10.0.0.1",), ("10.0.0.2",)])
    ips = queries.query_ip(db)
    assert len(ips) > 0
    assert ips == ["10.0.0.1", "10.0.0.2"]
    assert "FROM node_region" in db.executed[0][0]


def test_calculate_avg_delay_averages_and_stores():
    values = [
        ProbeResult(
            source_ip="192.168.1.1",
            destination_ip="192.168.2.2",
            delay=i,
            timestamp="2024-01-01 00:00:00",
        )
        .to_json()
        .encode()
        for i in range(1, 4)
    ]
    conn = FakeRedis(values)
    db = FakeDB()
    average = queries.calculate_avg_delay(conn, db, "192.168.1.1", "192.168.2.2")
    assert average == 2.0
    assert conn.calls == [("192.168.1.1:192.168.2.2", -10, -1)]
    query, params = db.executed[0]
    assert query.startswith("INSERT INTO link_info")
    assert params[:3] == ("192.168.1.1", "192.168.2.2", 2.0)
    datetime.strptime(params[3], "%Y-%m-%d %H:%M:%S")


def test_calculate_avg_delay_without_data():
    db = FakeDB()
    assert queries.calculate_avg_delay(FakeRedis([]), db, "a", "b") is None
    assert db.executed == []


def test_calculate_avg_delay_counts_unreadable_entries():
    db = FakeDB()
    average = queries.calculate_avg_delay(
        FakeRedis([b'{"tcp_delay": 4}', b"garbage"]), db, "a", "b"
    )
    assert average == 2.0


def test_get_delay_found():
    db = FakeDB([(12,)])
    assert queries.get_delay(db, "a", "b") == 12.0
    assert db.executed[0][1] == ("a", "b")


def test_get_delay_missing():
    with pytest.raises(queries.NoDataError, match="no data found for a->b"):
        queries.get_delay(FakeDB([]), "a", "b")


def test_get_delay_wraps_driver_error():
    db = FakeDB(error=pymysql.err.OperationalError(2013, "lost"))
    with pytest.raises(queries.QueryError, match="failed to query delay"):
        queries.get_delay(db, "a", "b")


def test_get_cpu_stats():
    stats = queries.get_cpu_stats(FakeDB([(10,), (20,), (30,)]), "10.0.0.2")
    assert stats.destination_ip == "10.0.0.2"
    assert stats.mean == pytest.approx(20.0)
    assert stats.variance == pytest.approx(200.0 / 3)


def test_get_cpu_stats_missing():
    with pytest.raises(queries.NoDataError, match="10.0.0.9"):
        queries.get_cpu_stats(FakeDB([]), "10.0.0.9")


def test_query_virtual_queue_found_and_missing():
    assert queries.query_virtual_queue_cpu_by_ip(FakeDB([(1.5, 2.5)]), "a", "b") == (1.5, 2.5)
    with pytest.raises(queries.NoDataError, match="a:b"):
        queries.query_virtual_queue_cpu_by_ip(FakeDB([]), "a", "b")


def test_get_cpu_performance_list_splits_and_sorts():
    rows = [("a", 80, 10), ("b", 40, 70), ("c", 60, 55), ("d", 50, 50)]
    state = queries.get_cpu_performance_list(FakeDB(rows), 50, 50)
    assert state.above_threshold_cpu_means == [60.0, 80.0]
    assert state.below_threshold_cpu_means == [40.0, 50.0]
    assert state.above_threshold_cpu_vars == [55.0, 70.0]
    assert state.below_threshold_cpu_vars == [10.0, 50.0]


def test_query_origin_ip():
    assert queries.query_origin_ip(FakeDB([("1.2.3.4",)]), "example.com") == "1.2.3.4"
    with pytest.raises(queries.NoDataError, match="domain 'missing.example.com' not found"):
        queries.query_origin_ip(FakeDB([]), "missing.example.com")


def test_query_node_info():
    nodes = queries.query_node_info(FakeDB([("10.0.0.1", "r1"), ("10.0.0.2", "r2")]))
    assert nodes == [NodeInfo(ip="10.0.0.1", region="r1"), NodeInfo(ip="10.0.0.2", region="r2")]


def test_query_domain_ip_mappings():
    mappings = queries.query_domain_ip_mappings(FakeDB([("example.com", "192.168.1.1")]))
    assert mappings == [DomainIPMapping(domain="example.com", ip="192.168.1.1")]


def test_get_node_region():
    assert queries.get_node_region(FakeDB([("r1",)]), "10.0.0.1") == "r1"
    assert queries.get_node_region(FakeDB([]), "10.0.0.1") == "unknown"


def test_get_all_regions_and_region_ips():
    assert queries.get_all_regions(FakeDB([("r1",), ("r2",)])) == ["r1", "r2"]
    db = FakeDB([("10.0.0.1",)])
    assert queries.get_region_ips(db, "r1") == ["10.0.0.1"]
    assert db.executed[0][1] == ("r1",)


def test_count_metrics_nodes():
    assert queries.count_metrics_nodes(FakeDB([(3,)])) == 3


def test_get_median_virtual():
    assert queries.get_median_virtual(FakeDB([(0.5, 1.25)])) == (0.5, 1.25)
    with pytest.raises(queries.NoDataError):
        queries.get_median_virtual(FakeDB([]))


def test_insert_link_info_params():
    db = FakeDB()
    queries.insert_link_info(db, "a", "b", 3.5, "2024-01-01 00:00:00")
    assert db.executed[0][1] == ("a", "b", 3.5, "2024-01-01 00:00:00")


def test_update_virtual_queue_params_and_error():
    db = FakeDB()
    queries.update_virtual_queue_and_cpu_metrics(db, "a", "b", 1.0, 2.0, 3.0, 4.0, 5.0)
    query, params = db.executed[0]
    assert query.startswith("INSERT INTO network_metrics")
    assert params == ("a", "b", 1.0, 2.0, 3.0, 4.0, 5.0)

    failing = FakeDB(error=pymysql.err.IntegrityError(1062, "duplicate"))
    with pytest.raises(queries.QueryError, match="failed to insert link data"):
        queries.update_virtual_queue_and_cpu_metrics(failing, "a", "b", 1, 2, 3, 4, 5)


def test_insert_probe_result_params():
    probe_time = datetime(2024, 5, 1, 12, 0, 0)
    record = queries.ProbeRecord(
        source_ip="10.0.0.1",
        source_region="r1",
        target_ip="10.0.0.2",
        target_region="r2",
        tcp_delay=42,
        probe_time=probe_time,
    )
    db = FakeDB()
    queries.insert_probe_result(db, record)
    query, params = db.executed[0]
    assert query.startswith("INSERT INTO region_probe_info")
    assert params == ("10.0.0.1", "r1", "10.0.0.2", "r2", 42, probe_time)