# linksched

`linksched` holds the building blocks of the controller of a distributed
edge network: the records the controller exchanges with data-plane nodes,
link scoring by a drift-plus-penalty rule, adaptive outlier detection, the
queries against the metrics database, a Traefik dynamic-configuration
endpoint and a weighted redirector.

## Modules

- `linksched.records` – dataclasses for settings and messages:
  `ConfigInfo` (built from a mapping with `ConfigInfo.from_mapping`, durations
  given as nanoseconds or strings such as `"1m30s"`), `ProbeResult` (JSON with
  the keys `ip1`, `ip2`, `tcp_delay`, `timestamp`), `CPUStats`, `Result`,
  `NodeState`, `NetState`, `NodeInfo`, `NodeList`, `ProbeTask`,
  `DomainIPMapping`, `IPProbe`, `RegionProbeResult`, `IPPairAssessment` and
  `RegionPairAssessment`, most with `to_dict` / `from_dict`.
- `linksched.outliers` – `detect_outliers_adaptive(data, k, sensitivity)`
  splits the sorted values at significant gaps, picks the main cluster and
  tests each value against standard-deviation and inter-quartile thresholds.
  It returns `Outlier` records (`index`, `value`, `kind`, `score`), small
  outliers first, then large ones, each group by descending score. With
  `len(data) <= k` it returns an empty list; `sensitivity` has no effect.
- `linksched.evaluation` – `SystemParams.normalize(node, net)` maps a node's
  CPU mean and variance onto `[-1, 1]` by rank among the nodes on the same
  side of the thresholds; `Evaluation` updates the virtual queues
  (`update_q_mean`, `update_q_var`) and computes `drift_plus_penalty`.
- `linksched.database` – a shared MySQL connection (`connect_to_db`,
  `close_db`; failures raise `DatabaseConnectionError`), a shared Redis pool
  on `localhost:6379` (`create_redis_pool`, `get_redis_conn`,
  `close_redis_pool`) and `load_config(path)`, which reads a TOML file into
  a `ConfigInfo`.
- `linksched.queries` – functions taking a database connection: node and
  region lookups (`query_ip`, `query_node_info`, `get_node_region`,
  `get_all_regions`, `get_region_ips`, `count_metrics_nodes`), domain lookups
  (`query_origin_ip`, `query_domain_ip_mappings`), delay and CPU statistics
  (`get_delay`, `get_cpu_stats`, `get_cpu_performance_list`,
  `query_virtual_queue_cpu_by_ip`, `get_median_virtual`), inserts
  (`insert_link_info`, `insert_probe_result` with a `ProbeRecord`,
  `update_virtual_queue_and_cpu_metrics`) and `calculate_avg_delay`, which
  averages the last ten cached probes of a pair from Redis and stores the
  result. Missing rows raise `NoDataError`; database errors in the wrapped
  queries raise `QueryError`.
- `linksched.traefik` – `generate_traefik_config(mappings)` builds one router
  and one redirect middleware per `DomainMapping`, sending
  `/resolve/<domain>` to `http://<first ip>/`. `MappingStore` keeps mappings
  in memory, `make_app(store)` serves the configuration as JSON at
  `/api/traefik/config`, and `run_server(port)` serves it on all interfaces
  with `example.com` mapped to a default target.
- `linksched.redirector` – `WeightedRedirector(config, name, rng)` picks a
  target with probability proportional to its weight (`pick_target`), builds
  the redirect URL (`redirect_location`) and is itself a WSGI application
  answering with 302, or 301 when `permanent_redirect` is set.
  `create_config()` gives the defaults: `http`, port 80, redirect to `/`.

## Examples

Find outliers in a series of link scores:

```python
from linksched.outliers import OutlierType, detect_outliers_adaptive

scores = [10.0, 11.0, 10.5, 9.8, 10.2, 10.1, 250.0]
for outlier in detect_outliers_adaptive(scores, 3, 1.5):
    print(outlier.index, outlier.value, outlier.kind is OutlierType.LARGE, outlier.score)
```

Score a link by hand:

```python
from linksched.evaluation import Evaluation, SystemParams
from linksched.records import NetState, NodeState

params = SystemParams(threshold_cpu_mean=50, threshold_cpu_var=50, weight=1)
net = NetState(below_threshold_cpu_means=[10.0, 20.0, 30.0], below_threshold_cpu_vars=[1.0, 2.0])
mean_norm, var_norm = params.normalize(NodeState(cpu_mean=20.0, cpu_var=2.0), net)

evaluation = Evaluation(
    delay=12.0,
    normal_cpu_mean=mean_norm,
    normal_cpu_var=var_norm,
    q_mean=1.0,
    q_var=0.5,
    params=params,
    state=net,
)
print(evaluation.drift_plus_penalty(), evaluation.update_q_mean(), evaluation.update_q_var())
```

Build a Traefik configuration for a set of domains:

```python
import json

from linksched.traefik import DomainMapping, generate_traefik_config

config = generate_traefik_config([DomainMapping(domain="example.com", ips=["192.0.2.10"])])
print(json.dumps(config.to_dict(), indent=2))
```

Choose a redirect target by weight:

```python
from linksched.redirector import TargetEntry, WeightedRedirector, create_config

config = create_config()
config.targets = [TargetEntry(ip="192.0.2.10", weight=3), TargetEntry(ip="192.0.2.20", weight=1)]
redirector = WeightedRedirector(config, name="edge")
print(redirector.redirect_location("/index.html"))
```

Serve the Traefik configuration from Python:

```python
from linksched.traefik import run_server

run_server(8090)
```

## What the package does not do

The package provides no command-line entry point. It does not keep node
lists, probe tasks or domain mappings on disk, does not generate probe
tasks, does not run the periodic per-region link assessment, does not
process probe results sent by nodes and does not provide an HTTP API for
adding or deleting domains. The database functions expect the tables they
query to exist already; the package does not create them.

## Tests

The test suite uses pytest (`pip install linksched[test]`) and needs no
running database or cache.