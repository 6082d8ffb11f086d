"""Records exchanged between the controller, its store and the data-plane nodes."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, fields
from datetime import timedelta
from typing import Any, Mapping

MYSQL_DSN = (
    "root:password@tcp(127.0.0.1:3306)/db_info?charset=utf8&parseTime=True&loc=Local"
)

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = r"(?:\d+\.?\d*|\.\d+)(?:ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"([+-]?)((?:{_DURATION_PART})+)")
_PART_RE = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def _parse_duration(value: Any) -> timedelta:
    """Read a duration given as nanoseconds or as a string such as ``"1m30s"``."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise TypeError(f"invalid duration {value!r}")
    if isinstance(value, int):
        return timedelta(microseconds=value / 1000)
    if not isinstance(value, str):
        raise TypeError(f"invalid duration {value!r}")
    text = value.strip()
    if text in ("0", "+0", "-0"):
        return timedelta()
    match = _DURATION_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid duration {value!r}")
    seconds = sum(
        float(number) * _DURATION_UNITS[unit]
        for number, unit in _PART_RE.findall(match.group(2))
    )
    if match.group(1) == "-":
        seconds = -seconds
    return timedelta(seconds=seconds)


def _omit_empty(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value not in ("", 0, 0.0, None, [], False)}


_DURATION_FIELDS = {"detect_cycle", "expire_duration", "calculate_cycle"}
_INT_FIELDS = {"pool_num", "k", "skip"}


@dataclass
class ConfigInfo:
    """Controller settings read from the configuration file."""

    pool_num: int = 0
    receive_port: str = ""
    detect_port: str = ""
    detect_cycle: timedelta = field(default_factory=timedelta)
    expire_duration: timedelta = field(default_factory=timedelta)
    calculate_cycle: timedelta = field(default_factory=timedelta)
    k: int = 0
    theta: float = 0.0
    skip: int = 0
    etcd_endpoints: list[str] = field(default_factory=list)
    controller_id: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ConfigInfo:
        """Build settings from a mapping whose keys match field names case-insensitively."""
        by_key = {f.name.replace("_", ""): f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, raw in data.items():
            name = by_key.get(key.lower().replace("_", ""))
            if name is None:
                continue
            values[name] = _coerce_config_value(name, raw)
        return cls(**values)


def _coerce_config_value(name: str, raw: Any) -> Any:
    if name in _DURATION_FIELDS:
        return _parse_duration(raw)
    if name in _INT_FIELDS:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise TypeError(f"{name} must be an integer, got {raw!r}")
        return raw
    if name == "theta":
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise TypeError(f"theta must be a number, got {raw!r}")
        return float(raw)
    if name == "etcd_endpoints":
        if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
            raise TypeError(f"etcd_endpoints must be a list of strings, got {raw!r}")
        return list(raw)
    if not isinstance(raw, str):
        raise TypeError(f"{name} must be a string, got {raw!r}")
    return raw


@dataclass
class ProbeResult:
    """One TCP probe between two nodes as kept in the probe cache."""

    source_ip: str = ""
    destination_ip: str = ""
    delay: int = 0
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip1": self.source_ip,
            "ip2": self.destination_ip,
            "tcp_delay": self.delay,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProbeResult:
        return cls(
            source_ip=data.get("ip1", ""),
            destination_ip=data.get("ip2", ""),
            delay=int(data.get("tcp_delay", 0)),
            timestamp=data.get("timestamp", ""),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> ProbeResult:
        return cls.from_dict(json.loads(text))


@dataclass
class CPUStats:
    """Mean and variance of a node's recent CPU usage."""

    destination_ip: str = ""
    mean: float = 0.0
    variance: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"ip2": self.destination_ip, "mean": self.mean, "variance": self.variance}


@dataclass
class Result:
    """Weight computed for the link ip1 -> ip2."""

    ip1: str = ""
    ip2: str = ""
    value: float = 0.0


@dataclass
class NodeState:
    cpu_mean: float = 0.0
    cpu_var: float = 0.0


@dataclass
class NetState:
    """CPU means and variances of all nodes, split by the thresholds."""

    above_threshold_cpu_means: list[float] = field(default_factory=list)
    below_threshold_cpu_means: list[float] = field(default_factory=list)
    above_threshold_cpu_vars: list[float] = field(default_factory=list)
    below_threshold_cpu_vars: list[float] = field(default_factory=list)


@dataclass
class NodeInfo:
    ip: str = ""
    region: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty({"ip": self.ip, "region": self.region})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NodeInfo:
        return cls(ip=data.get("ip", ""), region=data.get("region", ""))


@dataclass
class NodeList:
    nodes: list[NodeInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty({"nodes": [node.to_dict() for node in self.nodes]})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NodeList:
        return cls(nodes=[NodeInfo.from_dict(item) for item in data.get("nodes") or []])


@dataclass
class ProbeTask:
    task_id: str = ""
    target_ip: str = ""
    timeout: int = 0

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {"task_id": self.task_id, "target_ip": self.target_ip, "timeout": self.timeout}
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProbeTask:
        return cls(
            task_id=data.get("task_id", ""),
            target_ip=data.get("target_ip", ""),
            timeout=int(data.get("timeout", 0)),
        )


@dataclass
class DomainIPMapping:
    domain: str = ""
    ip: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty({"domain": self.domain, "ip": self.ip})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DomainIPMapping:
        return cls(domain=data.get("domain", ""), ip=data.get("ip", ""))


@dataclass
class IPProbe:
    target_ip: str = ""
    tcp_delay: int = 0

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty({"target_ip": self.target_ip, "tcp_delay": self.tcp_delay})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IPProbe:
        return cls(target_ip=data.get("target_ip", ""), tcp_delay=int(data.get("tcp_delay", 0)))


@dataclass
class RegionProbeResult:
    region: str = ""
    ip_probes: list[IPProbe] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {"region": self.region, "ip_probes": [probe.to_dict() for probe in self.ip_probes]}
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RegionProbeResult:
        return cls(
            region=data.get("region", ""),
            ip_probes=[IPProbe.from_dict(item) for item in data.get("ip_probes") or []],
        )


@dataclass
class IPPairAssessment:
    ip1: str = ""
    ip2: str = ""
    assessment: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty({"ip1": self.ip1, "ip2": self.ip2, "assessment": self.assessment})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IPPairAssessment:
        return cls(
            ip1=data.get("ip1", ""),
            ip2=data.get("ip2", ""),
            assessment=float(data.get("assessment", 0.0)),
        )


@dataclass
class RegionPairAssessment:
    region1: str = ""
    region2: str = ""
    ip_pairs: list[IPPairAssessment] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {
                "region1": self.region1,
                "region2": self.region2,
                "ip_pairs": [pair.to_dict() for pair in self.ip_pairs],
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RegionPairAssessment:
        return cls(
            region1=data.get("region1", ""),
            region2=data.get("region2", ""),
            ip_pairs=[IPPairAssessment.from_dict(item) for item in data.get("ip_pairs") or []],
        )