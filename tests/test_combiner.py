import json
import shutil
from pathlib import Path

import pytest
import yaml

from opforge.combiner.combiner import (
    SpecCombiner,
    extract_service_name,
    load_spec_file,
    normalize_path,
    parse_service_prefixes,
)
from opforge.combiner.config import CombinerConfig, load_services_config
from opforge.errors import CombineError, ConfigError, LoadError, ValidationError

FIXTURES = Path(__file__).parent / "fixtures"


def _write_spec(path: Path, paths: dict, **extra) -> Path:
    doc = {"openapi": "3.1.0", "info": {"title": path.stem, "version": "1.0.0"}, "paths": paths}
    doc.update(extra)
    path.write_text(yaml.safe_dump(doc, sort_keys=False))
    return path


def _op(summary: str, *tags: str) -> dict:
    op = {"summary": summary, "responses": {"200": {"description": "OK"}}}
    if tags:
        op["tags"] = list(tags)
    return op


def _combine(*files, **options) -> SpecCombiner:
    combiner = SpecCombiner(CombinerConfig(input_files=[str(f) for f in files], **options))
    combiner.load_specs()
    combiner.combine_specs()
    return combiner


class TestHelpers:
    @pytest.mark.parametrize("filename,expected", [
        ("user-service.yaml", "user"),
        ("order.service.yaml", "order"),
        ("billing-api.json", "billing"),
        ("catalog.api.yml", "catalog"),
        ("inventory.yaml", "inventory"),
        ("auth-service-api.yaml", "auth-service"),
        ("dir/nested/payments-service.yaml", "payments"),
    ])
    def test_extract_service_name(self, filename, expected):
        assert extract_service_name(filename) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("/api//v1/users", "/api/v1/users"),
        ("//users", "/users"),
        ("/api///v2//orders/", "/api/v2/orders/"),
        ("/plain", "/plain"),
    ])
    def test_normalize_path(self, raw, expected):
        assert normalize_path(raw) == expected

    def test_parse_service_prefixes(self):
        assert parse_service_prefixes(["user:/v1", "order:/v2/x:y"]) == {"user": "/v1", "order": "/v2/x:y"}

    @pytest.mark.parametrize("item", ["nocolon", ":/v1"])
    def test_parse_service_prefixes_rejects_malformed(self, item):
        with pytest.raises(ConfigError):
            parse_service_prefixes([item])


class TestLoading:
    def test_missing_file(self, tmp_path):
        with pytest.raises(LoadError):
            load_spec_file(tmp_path / "missing.yaml")

    def test_json_by_extension(self, tmp_path):
        path = tmp_path / "a.json"
        path.write_text(json.dumps({"openapi": "3.1.0", "paths": {}}))
        assert load_spec_file(path)["openapi"] == "3.1.0"

    def test_unknown_extension_falls_back(self, tmp_path):
        path = tmp_path / "spec.txt"
        path.write_text("openapi: 3.1.0\npaths: {}\n")
        assert load_spec_file(path)["openapi"] == "3.1.0"

    def test_unparseable(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("openapi: [unclosed\n")
        with pytest.raises(LoadError):
            load_spec_file(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(LoadError):
            load_spec_file(path)

    def test_nothing_to_combine(self):
        with pytest.raises(CombineError):
            SpecCombiner(CombinerConfig()).load_specs()


class TestCombine:
    def test_prefixes_and_base_url(self):
        combiner = _combine(
            FIXTURES / "user-service.yaml",
            FIXTURES / "order-service.yaml",
            base_url="/api",
            service_prefix={"user": "/v1", "order": "/v2"},
        )
        paths = combiner.combined["paths"]
        assert "/api/v1/users" in paths
        assert "/api/v2/orders" in paths
        assert list(paths["/api/v1/users"]) == ["get"]
        assert "post" in paths["/api/v2/orders"]
        assert "service:user" in paths["/api/v1/users"]["get"]["tags"]
        assert "service:order" in paths["/api/v2/orders"]["post"]["tags"]

    def test_override_on_collision(self, tmp_path, caplog):
        a = _write_spec(tmp_path / "a.yaml", {"/users": {"get": _op("from A")}})
        b = _write_spec(tmp_path / "b.yaml", {"/users": {"get": _op("from B")}})
        with caplog.at_level("DEBUG", logger="opforge"):
            combiner = _combine(a, b)
        get = combiner.combined["paths"]["/users"]["get"]
        assert get["summary"] == "from B"
        assert get["tags"] == ["service:b"]
        assert "Overriding get /users (was from a, now from b)" in caplog.text
        assert combiner.stats.conflicts == 1

    def test_error_strategy(self, tmp_path):
        a = _write_spec(tmp_path / "a.yaml", {"/users": {"get": _op("A")}})
        b = _write_spec(tmp_path / "b.yaml", {"/users": {"get": _op("B")}})
        with pytest.raises(CombineError, match="get /users"):
            _combine(a, b, conflict_strategy="error")

    def test_merge_strategy_rejected(self):
        with pytest.raises(ConfigError):
            SpecCombiner(CombinerConfig(conflict_strategy="merge"))

    def test_service_tag_prepended_once(self, tmp_path):
        spec = _write_spec(tmp_path / "pets.yaml", {"/pets": {"get": _op("List", "service:pets", "pets")}})
        combiner = _combine(spec)
        assert combiner.combined["paths"]["/pets"]["get"]["tags"] == ["service:pets", "pets"]

    def test_single_input_idempotent(self, tmp_path):
        source = tmp_path / "user-service.yaml"
        shutil.copy(FIXTURES / "user-service.yaml", source)
        first = _combine(source).combined

        original = yaml.safe_load(source.read_text())
        for path, item in original["paths"].items():
            for op in item.values():
                op["tags"] = ["service:user", *op.get("tags", [])]
        assert first["paths"] == original["paths"]

        again_dir = tmp_path / "again"
        again_dir.mkdir()
        again = again_dir / "user-service.yaml"
        again.write_text(yaml.safe_dump(first, sort_keys=False))
        assert _combine(again).combined["paths"] == first["paths"]

    def test_tag_filters(self, tmp_path):
        spec = _write_spec(tmp_path / "shop.yaml", {
            "/a": {"get": _op("a", "public")},
            "/b": {"get": _op("b", "public", "beta")},
            "/c": {"get": _op("c", "internal")},
            "/d": {"get": _op("d")},
        })
        paths = _combine(spec, include_tags=["public"], exclude_tags=["beta"]).combined["paths"]
        assert list(paths) == ["/a"]

        paths = _combine(spec, exclude_tags=["internal"]).combined["paths"]
        assert list(paths) == ["/a", "/b", "/d"]

    def test_path_item_extras_carried(self):
        combiner = _combine(FIXTURES / "order-service.yaml")
        item = combiner.combined["paths"]["/orders"]
        assert item["parameters"][0]["name"] == "X-Trace"

    def test_method_keys_lowercased(self, tmp_path):
        spec = _write_spec(tmp_path / "x.yaml", {"/x": {"GET": _op("x")}})
        assert list(_combine(spec).combined["paths"]["/x"]) == ["get"]

    def test_components_and_schema_merge(self):
        combiner = _combine(FIXTURES / "user-service.yaml", FIXTURES / "order-service.yaml")
        components = combiner.combined["components"]
        assert set(components["schemas"]) == {"User", "Error", "Order"}
        assert components["securitySchemes"]["bearerAuth"]["scheme"] == "bearer"
        assert combiner.stats.merged_schemas == 1

    def test_divergent_schema_renamed(self, tmp_path):
        item = {"get": {"responses": {"200": {
            "description": "OK",
            "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Item"}}},
        }}}}
        a = _write_spec(tmp_path / "a.yaml", {"/a": item},
                        components={"schemas": {"Item": {"type": "string"}}})
        b = _write_spec(tmp_path / "b.yaml", {"/b": item},
                        components={"schemas": {"Item": {"type": "integer"}}})
        combiner = _combine(a, b)
        schemas = combiner.combined["components"]["schemas"]
        assert schemas == {"Item": {"type": "string"}, "b.Item": {"type": "integer"}}
        ref = combiner.combined["paths"]["/b"]["get"]["responses"]["200"]["content"]["application/json"]["schema"]
        assert ref == {"$ref": "#/components/schemas/b.Item"}
        assert combiner.stats.conflicts == 1

    def test_renamed_schema_key_taken(self, tmp_path):
        a = _write_spec(tmp_path / "a.yaml", {"/a": {"get": _op("a")}},
                        components={"schemas": {"Item": {"type": "string"}}})
        b = _write_spec(tmp_path / "b.yaml", {"/b": {"get": _op("b")}},
                        components={"schemas": {"Item": {"type": "integer"}, "b.Item": {"type": "boolean"}}})
        combiner = SpecCombiner(CombinerConfig(input_files=[str(a), str(b)]))
        combiner.load_specs()
        with pytest.raises(CombineError, match="b.Item is already taken"):
            combiner.combine_specs()

    def test_renamed_schema_key_identical_reused(self, tmp_path):
        a = _write_spec(tmp_path / "a.yaml", {"/a": {"get": _op("a")}},
                        components={"schemas": {"Item": {"type": "string"}}})
        b = _write_spec(tmp_path / "b.yaml", {"/b": {"get": _op("b")}},
                        components={"schemas": {"Item": {"type": "integer"}, "b.Item": {"type": "integer"}}})
        combiner = _combine(a, b)
        assert combiner.combined["components"]["schemas"] == {"Item": {"type": "string"}, "b.Item": {"type": "integer"}}

    def test_no_merge_schemas_later_wins(self, tmp_path):
        a = _write_spec(tmp_path / "a.yaml", {"/a": {"get": _op("a")}}, components={"schemas": {"Item": {"type": "string"}}})
        b = _write_spec(tmp_path / "b.yaml", {"/b": {"get": _op("b")}}, components={"schemas": {"Item": {"type": "integer"}}})
        combiner = _combine(a, b, merge_schemas=False)
        assert combiner.combined["components"]["schemas"] == {"Item": {"type": "integer"}}

    def test_tags_union_and_service_tags(self):
        combiner = _combine(FIXTURES / "user-service.yaml", FIXTURES / "order-service.yaml")
        names = [tag["name"] for tag in combiner.combined["tags"]]
        assert names == ["users", "service:user", "service:order"]

    def test_stats(self):
        combiner = _combine(FIXTURES / "user-service.yaml", FIXTURES / "order-service.yaml")
        stats = combiner.stats
        assert stats.input_files == 2
        assert stats.services_combined == 2
        assert stats.total_paths == 3
        assert stats.total_operations == 3


class TestValidate:
    def test_valid_document(self):
        combiner = _combine(FIXTURES / "user-service.yaml")
        combiner.validate_output()

    @pytest.mark.parametrize("mutate,message", [
        (lambda d: d.update(openapi=""), "openapi"),
        (lambda d: d["info"].update(title=""), "title"),
        (lambda d: d["info"].update(version=""), "version"),
        (lambda d: d.update(paths={}), "no paths"),
        (lambda d: d["paths"].update({"/empty": {"parameters": []}}), "/empty"),
        (lambda d: d["paths"]["/users"]["get"].update(responses={}), "get /users"),
    ])
    def test_invalid_documents(self, mutate, message):
        combiner = _combine(FIXTURES / "user-service.yaml")
        mutate(combiner.combined)
        with pytest.raises(ValidationError, match=message):
            combiner.validate_output()


class TestServicesConfig:
    def test_load(self):
        config = load_services_config(FIXTURES / "services.yaml")
        assert config.title == "Platform API"
        assert [s.name for s in config.services] == ["user", "order", "billing"]
        assert config.services[0].enabled is True
        assert config.services[2].enabled is False
        assert config.settings.exclude_tags == ["internal"]

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "services.yaml"
        path.write_text("services: [unclosed\n")
        with pytest.raises(ConfigError):
            load_services_config(path)

    def test_missing_required_field(self, tmp_path):
        path = tmp_path / "services.yaml"
        path.write_text("services:\n  - name: user\n")
        with pytest.raises(ConfigError):
            load_services_config(path)

    def test_merge_strategy_rejected(self, tmp_path):
        path = tmp_path / "services.yaml"
        path.write_text("settings:\n  conflict_strategy: merge\n")
        with pytest.raises(ConfigError, match="merge"):
            load_services_config(path)

    def test_combine_from_config(self):
        combiner = SpecCombiner(CombinerConfig(config_file=str(FIXTURES / "services.yaml")))
        combiner.load_from_config()
        assert combiner.config.title == "Platform API"
        assert combiner.config.version == "2.0.0"
        assert combiner.config.base_url == "/api"
        assert len(combiner.input_files) == 2

        combiner.load_specs()
        doc = combiner.combine_specs()
        assert set(doc["paths"]) == {"/api/v1/users", "/api/v2/orders"}
        assert doc["info"]["description"] == "All platform services"
        service_tags = {tag["name"]: tag for tag in doc["tags"]}
        assert service_tags["service:user"]["description"] == "Users and profiles"

    def test_cli_values_win_over_config(self):
        combiner = SpecCombiner(CombinerConfig(
            config_file=str(FIXTURES / "services.yaml"),
            title="Custom",
            service_prefix={"user": "/users-v9"},
        ))
        combiner.load_from_config()
        assert combiner.config.title == "Custom"
        assert combiner.config.version == "2.0.0"
        assert combiner.config.service_prefix["user"] == "/users-v9"


class TestWriteOutput:
    def test_run_writes_json(self, tmp_path):
        output = tmp_path / "out" / "combined.json"
        combiner = SpecCombiner(CombinerConfig(
            input_files=[str(FIXTURES / "user-service.yaml")],
            output_file=str(output),
            format="json",
        ))
        combiner.run()
        doc = json.loads(output.read_text())
        assert doc["info"]["title"] == "Combined API"
        assert "/users" in doc["paths"]

    def test_write_before_combine(self):
        with pytest.raises(CombineError):
            SpecCombiner(CombinerConfig()).write_output()
