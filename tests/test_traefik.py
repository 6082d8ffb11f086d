import json

from werkzeug.test import Client

from linksched.traefik import (
    CONFIG_PATH,
    DUMMY_SERVICE,
    DomainMapping,
    MappingStore,
    Router,
    generate_traefik_config,
    make_app,
    sanitize_name,
)


def test_sanitize_name_replaces_dots():
    assert sanitize_name("a.b.example.com") == "a-b-example-com"
    assert "." not in sanitize_name("x.y")


def test_dummy_service_always_present():
    config = generate_traefik_config([]).to_dict()
    services = config["http"]["services"]
    assert services[DUMMY_SERVICE]["loadBalancer"]["servers"] == [
        {"url": "http://localhost:8080"}
    ]
    assert config["http"]["routers"] == {}
    assert config["http"]["middlewares"] == {}


def test_mapping_builds_router_and_middleware():
    domain = "example.com"
    ip = "10.0.0.1:50055"
    config = generate_traefik_config([DomainMapping(domain=domain, ips=[ip, "10.0.0.2"])])
    name = sanitize_name(domain)
    router = config.http.routers[f"{name}-router"]
    assert router.rule == f"Path(`/resolve/{domain}`)"
    assert router.service == DUMMY_SERVICE
    assert router.middlewares == [f"redirect-to-{name}"]
    assert router.entrypoints == ["web"]
    assert router.to_dict()["entryPoints"] == ["web"]
    redirect = config.http.middlewares[f"redirect-to-{name}"].redirect_regex
    assert redirect.regex == ".*"
    assert redirect.replacement == f"http://{ip}/"
    assert redirect.permanent is False


def test_mapping_without_ips_is_skipped():
    config = generate_traefik_config([DomainMapping(domain="example.com", ips=[])])
    assert config.http.routers == {}
    assert config.http.middlewares == {}


def test_router_omits_empty_lists():
    assert Router(rule="r", service="s").to_dict() == {"rule": "r", "service": "s"}


def test_to_json_escapes_html_characters():
    body = generate_traefik_config([DomainMapping(domain="a&b", ips=["10.0.0.1"])]).to_json()
    assert body.endswith(b"\n")
    assert b"&" not in body
    assert b"\\u0026" in body
    assert json.loads(body)["http"]["routers"]["a&b-router"]["service"] == DUMMY_SERVICE


def test_store_replaces_existing_mapping():
    store = MappingStore()
    store.add_domain_mapping("example.com", ["10.0.0.1"])
    store.add_domain_mapping("example.com", ["10.0.0.2"])
    store.add_domain_mapping("other.example.com", ["10.0.0.3"])
    mappings = {m.domain: m.ips for m in store.get_all_domain_mappings()}
    assert mappings == {"example.com": ["10.0.0.2"], "other.example.com": ["10.0.0.3"]}


def test_app_serves_config():
    store = MappingStore()
    store.add_domain_mapping("example.com", ["10.0.0.1"])
    client = Client(make_app(store))
    response = client.get(CONFIG_PATH)
    assert response.status_code == 200
    assert response.mimetype == "application/json"
    data = json.loads(response.get_data())
    assert data == generate_traefik_config(store.get_all_domain_mappings()).to_dict()


def test_app_unknown_path_is_not_found():
    client = Client(make_app(MappingStore()))
    assert client.get("/api/other").status_code == 404