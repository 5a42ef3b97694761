"""Unit tests for argument resolution."""

import random
import uuid

import pytest

from rainier.core import ConfigurationError
from rainier.workload import ArgumentResolver, load_argument_list, load_argument_lists


@pytest.mark.unit
class TestResolve:
    """Test base binding map construction."""

    def test_static_arguments_are_copied(self):
        resolver = ArgumentResolver()
        static = {"k": "1", "tenant": "acme"}

        bindings = resolver.resolve(static, {}, random.Random(0))

        assert bindings == static
        bindings["k"] = "changed"
        assert static["k"] == "1"

    def test_list_source_overrides_static(self):
        resolver = ArgumentResolver()

        bindings = resolver.resolve({"k": "static"}, {"k": ["a", "b", "c"]}, random.Random(3))

        assert bindings["k"] in ("a", "b", "c")

    def test_same_seed_same_values(self):
        resolver = ArgumentResolver()
        sources = {"k": [str(i) for i in range(100)], "j": [str(i) for i in range(50)]}

        first = resolver.resolve({}, sources, random.Random(42))
        second = resolver.resolve({}, sources, random.Random(42))

        assert first == second

    def test_sampling_ignores_source_order(self):
        resolver = ArgumentResolver()
        a = list("abcdefgh")
        b = list("12345678")

        forward = resolver.resolve({}, {"x": a, "y": b}, random.Random(7))
        backward = resolver.resolve({}, {"y": b, "x": a}, random.Random(7))

        assert forward == backward

    def test_sampling_uses_rng_uniformly(self):
        resolver = ArgumentResolver()
        values = ["a", "b", "c", "d"]
        seen = {resolver.resolve({}, {"k": values}, random.Random(seed))["k"] for seed in range(200)}

        assert seen == set(values)


@pytest.mark.unit
class TestMerge:
    """Test row-derived bindings."""

    def test_row_columns_override(self):
        resolver = ArgumentResolver()
        bindings = {"id": "static", "k": "1"}

        merged = resolver.merge(bindings, {"id": 7, "name": "x"})

        assert merged == {"id": "7", "k": "1", "name": "x"}

    def test_merge_returns_copy(self):
        resolver = ArgumentResolver()
        bindings = {"k": "1"}

        merged = resolver.merge(bindings, {"id": 1})

        assert merged is not bindings
        assert bindings == {"k": "1"}

    def test_values_are_formatted_as_text_and_null_kept(self):
        resolver = ArgumentResolver()
        key = uuid.UUID("12345678-1234-5678-1234-567812345678")

        merged = resolver.merge({}, {"key": key, "flag": True, "blob": b"\x01\xff", "empty": None})

        assert merged == {
            "key": "12345678-1234-5678-1234-567812345678",
            "flag": "true",
            "blob": "0x01ff",
            "empty": None,
        }


@pytest.mark.unit
class TestArgumentFiles:
    """Test argument list loading."""

    def test_load_skips_blank_lines(self, arg_file):
        assert load_argument_list(arg_file) == ["alpha", "beta", "gamma"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="cannot find file"):
            load_argument_list(tmp_path / "missing.txt")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text("\n\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="no values"):
            load_argument_list(path)

    def test_load_many(self, arg_file):
        lists = load_argument_lists({"k": arg_file, "j": arg_file})

        assert set(lists) == {"k", "j"}
        assert lists["k"] == ["alpha", "beta", "gamma"]
