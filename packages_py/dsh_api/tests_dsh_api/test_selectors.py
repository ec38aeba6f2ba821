"""
Tests for the selector table and body shapes.
"""
import pytest
import yaml
from pydantic import BaseModel

from dsh_api import (
    HttpMethod,
    InvalidSelectorDefinition,
    ParameterCountMismatch,
    SelectorBinding,
    SelectorTable,
    UnknownSelector,
    register_shape,
)
from dsh_api.shapes import ShapeMismatch, validate_json

from .conftest import TENANT


def write_yaml(tmp_path, records):
    path = tmp_path / "selectors.yaml"
    path.write_text(yaml.safe_dump(records))
    return path


class TestLookup:
    """SelectorTable.lookup"""

    def test_application_selector(self, selectors):
        binding = selectors.lookup("GET", "application")

        assert binding.method == HttpMethod.GET
        assert binding.path == "/allocation/{tenant}/application"
        assert binding.render(TENANT) == "/allocation/my-tenant/application"

    def test_primary_selector_and_alias_are_the_same_binding(self, selectors):
        assert selectors.lookup("get", "get_application_configuration_map") is selectors.lookup(
            "get", "application"
        )

    def test_path_template_as_selector(self, selectors):
        binding = selectors.lookup("GET", "/allocation/{tenant}/application/{appid}/configuration")

        assert binding.selector == "get_application_configuration_by_tenant_by_appid"
        assert binding.response == "object"

    def test_selector_is_method_specific(self, selectors):
        put = selectors.lookup("PUT", "/allocation/{tenant}/secret/{id}")
        get = selectors.lookup("GET", "/allocation/{tenant}/secret/{id}")

        assert put.body == "string"
        assert get.body is None

    def test_literal_path_fallback(self, selectors):
        binding = selectors.lookup("GET", "/allocation/{tenant}/unlisted/{id}")

        assert binding.selector == "/allocation/{tenant}/unlisted/{id}"
        assert binding.body_required is False
        assert binding.render(TENANT, ["abc"]) == "/allocation/my-tenant/unlisted/abc"

    def test_relative_literal_path(self, selectors):
        binding = selectors.lookup("GET", "allocation/{tenant}/unlisted")

        assert binding.path == "/allocation/{tenant}/unlisted"
        assert binding.render(TENANT) == "/allocation/my-tenant/unlisted"

    def test_relative_path_template_hits_table(self, selectors):
        assert selectors.lookup("GET", "allocation/{tenant}/application") is selectors.lookup(
            "GET", "application"
        )

    def test_unknown_selector(self, selectors):
        with pytest.raises(UnknownSelector) as exc_info:
            selectors.lookup("GET", "no_such_selector")

        assert str(exc_info.value) == "get method selector 'no_such_selector' not recognized"

    def test_selector_for_other_method_is_unknown(self, selectors):
        with pytest.raises(UnknownSelector):
            selectors.lookup("DELETE", "application")

    def test_unsupported_method(self, selectors):
        with pytest.raises(ValueError):
            selectors.lookup("TRACE", "application")

    def test_selectors_listing(self, selectors):
        assert "put_secret_by_tenant_by_id" in selectors.selectors("PUT")
        assert "get_secret_by_tenant" not in selectors.selectors("PUT")
        assert len(selectors.selectors()) == len(selectors)


class TestRender:
    """SelectorBinding.render"""

    def test_parameter_count_mismatch(self, selectors):
        binding = selectors.lookup("GET", "task")

        with pytest.raises(ParameterCountMismatch) as exc_info:
            binding.render(TENANT, ["app"])

        assert exc_info.value.expected == 2
        assert exc_info.value.got == 1

    def test_tenant_fills_first_placeholder(self, selectors):
        binding = selectors.lookup("GET", "task")

        assert binding.parameter_names == ("appid", "id")
        assert binding.render(TENANT, ["app", "task-1"]) == "/allocation/my-tenant/task/app/task-1"

    def test_parameters_are_url_encoded(self, selectors):
        binding = selectors.lookup("GET", "secret")

        assert binding.render(TENANT, ["a/b c"]) == "/allocation/my-tenant/secret/a%2Fb%20c"

    def test_path_without_placeholders(self):
        binding = SelectorBinding(selector="version", method="get", path="/version")

        assert binding.render(TENANT) == "/version"
        with pytest.raises(ParameterCountMismatch):
            binding.render(TENANT, ["x"])


class TestDefinitionsFile:
    """Loading selector definitions."""

    def test_from_file(self, tmp_path):
        path = write_yaml(
            tmp_path,
            [{"selector": "apps", "method": "get", "path": "/allocation/{tenant}/application", "response": "any"}],
        )

        table = SelectorTable.from_file(path)

        assert len(table) == 1
        assert table.lookup("GET", "apps").render(TENANT) == "/allocation/my-tenant/application"

    def test_duplicate_selector(self, tmp_path):
        record = {"selector": "apps", "method": "get", "path": "/allocation/{tenant}/application"}
        other = {"selector": "apps", "method": "get", "path": "/allocation/{tenant}/other"}

        with pytest.raises(InvalidSelectorDefinition, match="duplicate"):
            SelectorTable.from_file(write_yaml(tmp_path, [record, other]))

    def test_unknown_shape(self, tmp_path):
        record = {"selector": "apps", "method": "get", "path": "/a/{tenant}", "response": "no-such-shape"}

        with pytest.raises(InvalidSelectorDefinition):
            SelectorTable.from_file(write_yaml(tmp_path, [record]))

    def test_relative_path_rejected(self, tmp_path):
        record = {"selector": "apps", "method": "get", "path": "allocation/{tenant}"}

        with pytest.raises(InvalidSelectorDefinition):
            SelectorTable.from_file(write_yaml(tmp_path, [record]))

    def test_invalid_method(self, tmp_path):
        record = {"selector": "apps", "method": "fetch", "path": "/allocation/{tenant}"}

        with pytest.raises(InvalidSelectorDefinition):
            SelectorTable.from_file(write_yaml(tmp_path, [record]))

    def test_load_without_file_uses_defaults(self):
        assert SelectorTable.load(None).get("GET", "application") is not None


class TestShapes:
    """Strict json validation of shape tags."""

    @pytest.mark.parametrize(
        "shape,document",
        [
            ("any", b'{"a": [1, 2]}'),
            ("string", b'"ABCDEF"'),
            ("integer", b"42"),
            ("number", b"4.2"),
            ("boolean", b"true"),
            ("object", b'{"cpus": 0.1}'),
            ("map", b'{"app": {"cpus": 0.1}}'),
            ("list", b"[1, \"a\"]"),
            ("ids", b'["a", "b"]'),
            ("none", b"null"),
        ],
    )
    def test_matching_documents(self, shape, document):
        validate_json(shape, document)

    @pytest.mark.parametrize(
        "shape,document",
        [
            ("string", b"42"),
            ("integer", b'"42"'),
            ("boolean", b"1"),
            ("object", b"[]"),
            ("ids", b"[1, 2]"),
            ("any", b"{not json"),
        ],
    )
    def test_mismatching_documents(self, shape, document):
        with pytest.raises(ShapeMismatch):
            validate_json(shape, document)

    def test_mismatch_message_has_no_content(self):
        with pytest.raises(ShapeMismatch) as exc_info:
            validate_json("integer", b'"top-secret"')

        assert "top-secret" not in str(exc_info.value)

    def test_registered_model_shape(self):
        class Secret(BaseModel):
            name: str
            value: str

        register_shape("test-secret", Secret)

        validate_json("test-secret", b'{"name": "a", "value": "b"}')
        with pytest.raises(ShapeMismatch):
            validate_json("test-secret", b'{"name": "a"}')

        binding = SelectorBinding(
            selector="post_secret", method="post", path="/allocation/{tenant}/secret", body="test-secret"
        )
        assert binding.takes_body
