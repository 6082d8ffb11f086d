import json
from datetime import timedelta

import pytest

from linksched.records import (
    ConfigInfo,
    DomainIPMapping,
    IPPairAssessment,
    IPProbe,
    NodeInfo,
    NodeList,
    ProbeResult,
    ProbeTask,
    RegionPairAssessment,
    RegionProbeResult,
)


def test_config_from_mapping_matches_keys_case_insensitively():
    config = ConfigInfo.from_mapping(
        {
            "PoolNum": 8,
            "ReceivePort": "9000",
            "DetectCycle": "1m30s",
            "Theta": 0.5,
            "EtcdEndpoints": ["localhost:2379"],
            "ControllerID": "ctrl-1",
            "Unknown": "ignored",
        }
    )
    assert config.pool_num == 8
    assert config.receive_port == "9000"
    assert config.detect_cycle == timedelta(minutes=1, seconds=30)
    assert config.theta == 0.5
    assert config.etcd_endpoints == ["localhost:2379"]
    assert config.controller_id == "ctrl-1"


def test_config_integer_duration_is_nanoseconds():
    config = ConfigInfo.from_mapping({"ExpireDuration": 2_000_000_000})
    assert config.expire_duration == timedelta(seconds=2)


def test_config_rejects_bad_duration():
    with pytest.raises(ValueError):
        ConfigInfo.from_mapping({"CalculateCycle": "soon"})


def test_config_rejects_wrong_type():
    with pytest.raises(TypeError):
        ConfigInfo.from_mapping({"PoolNum": "eight"})


def test_probe_result_uses_wire_keys():
    probe = ProbeResult("192.168.1.1", "192.168.2.2", 3, "2024-01-01 00:00:00")
    assert set(json.loads(probe.to_json())) == {"ip1", "ip2", "tcp_delay", "timestamp"}
    assert ProbeResult.from_json(probe.to_json().encode()) == probe


def test_probe_result_missing_keys_give_zero_values():
    assert ProbeResult.from_json("{}") == ProbeResult()


def test_empty_fields_are_omitted():
    assert NodeInfo().to_dict() == {}
    assert IPPairAssessment(ip1="a").to_dict() == {"ip1": "a"}


def test_node_list_round_trip():
    nodes = NodeList([NodeInfo("192.168.1.1", "region-1"), NodeInfo("192.168.1.2", "region-2")])
    assert NodeList.from_dict(json.loads(json.dumps(nodes.to_dict()))) == nodes


def test_null_lists_read_as_empty():
    assert NodeList.from_dict({"nodes": None}).nodes == []


def test_nested_records_round_trip():
    region = RegionProbeResult("east", [IPProbe("10.0.0.1", 12), IPProbe("normal_avg", 20)])
    assert RegionProbeResult.from_dict(region.to_dict()) == region
    pair = RegionPairAssessment("east", "west", [IPPairAssessment("a", "b", 1.5)])
    assert RegionPairAssessment.from_dict(pair.to_dict()) == pair
    task = ProbeTask("task1", "10.0.0.1", 30)
    assert ProbeTask.from_dict(task.to_dict()) == task
    mapping = DomainIPMapping("example.com", "93.184.216.34")
    assert DomainIPMapping.from_dict(mapping.to_dict()) == mapping