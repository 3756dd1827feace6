"""Tests for the CLI."""

import json

import pytest

from graph_ops.cli import main
from graph_ops.graph import Graph
from graph_ops.ops import one_hot, space_to_depth
from graph_ops.serializer import load_graph, save_graph


@pytest.fixture
def sample_graph_file(tmp_path):
    """Create a sample graph JSON file for testing."""
    graph = Graph("TestGraph")
    x = graph.placeholder("x", shape=(1, 8, 8, 3))
    indices = graph.placeholder("indices", shape=(4,), dtype="int64")
    y = space_to_depth(graph, x, 2)
    space_to_depth(graph, y, 2)
    one_hot(graph, indices, depth=3)
    path = tmp_path / "test_graph.json"
    save_graph(graph, path)
    return str(path)


@pytest.fixture
def external_graph_file(tmp_path):
    """Create a sample external graph JSON file for testing."""
    data = {
        "name": "external",
        "node": [
            {"name": "x", "op": "Placeholder", "attr": {"shape": [1, 8, 8, 3]}},
            {"name": "s2d", "op": "SpaceToDepth", "input": ["x"], "attr": {"block_size": {"i": 2}}},
            {"name": "conv", "op": "Conv2D", "input": ["s2d"]},
        ],
    }
    path = tmp_path / "external.json"
    path.write_text(json.dumps(data))
    return str(path)


class TestNoSubcommand:
    def test_no_subcommand_shows_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2


class TestVersion:
    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        captured = capsys.readouterr()
        assert "graph-ops" in captured.out


class TestOps:
    def test_ops_text(self, capsys):
        main(["ops"])
        captured = capsys.readouterr()
        assert "space_to_depth (SpaceToDepth)" in captured.out
        assert "data_format: str = 'NHWC'" in captured.out
        assert "block_size: int" in captured.out

    def test_ops_json(self, capsys):
        main(["ops", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["onehot"]["external_names"] == ["OneHot"]
        assert data["onehot"]["fields"]["axis"] == {"type": "int", "default": -1}
        assert data["onehot"]["mappings"]["OneHot"]["depth"] == {"input": 1}


class TestImport:
    def test_import_strict_fails(self, external_graph_file, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["import", external_graph_file])
        assert exc_info.value.code == 1
        assert "Conv2D" in capsys.readouterr().err

    def test_import_skip_unsupported(self, external_graph_file, tmp_path, capsys):
        out_path = tmp_path / "out" / "graph.json"
        main(["import", external_graph_file, "--skip-unsupported", "-o", str(out_path)])

        assert "Skipped node: conv" in capsys.readouterr().err
        graph = load_graph(out_path)
        assert graph.get_op("s2d").int_args == (2, 1)

    def test_import_to_stdout(self, tmp_path, capsys):
        path = tmp_path / "ext.json"
        path.write_text(json.dumps({"node": [{"name": "x", "op": "Placeholder"}]}))

        main(["import", str(path)])

        data = json.loads(capsys.readouterr().out)
        assert data["variables"][0]["name"] == "x"

    def test_import_file_not_found(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["import", "nonexistent.json"])
        assert exc_info.value.code == 1
        assert "file not found" in capsys.readouterr().err

    def test_import_invalid_file(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text("[]")

        with pytest.raises(SystemExit) as exc_info:
            main(["import", str(path)])
        assert exc_info.value.code == 1
        assert "invalid external graph" in capsys.readouterr().err


class TestInfo:
    def test_info_basic(self, sample_graph_file, capsys):
        main(["info", sample_graph_file])
        captured = capsys.readouterr()
        assert "TestGraph" in captured.out
        assert "Ops: 3" in captured.out
        assert "Placeholders: 2" in captured.out
        assert "space_to_depth: 2" in captured.out

    def test_info_json_output(self, sample_graph_file, capsys):
        main(["info", sample_graph_file, "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["graph_name"] == "TestGraph"
        assert data["num_ops"] == 3
        assert data["num_placeholders"] == 2
        assert data["op_distribution"] == {"space_to_depth": 2, "onehot": 1}
        assert data["placeholder_shapes"]["x"] == [1, 8, 8, 3]
        assert data["unresolved_ops"] == []

    def test_info_file_not_found(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["info", "nonexistent.json"])
        assert exc_info.value.code == 1
        assert "file not found" in capsys.readouterr().err

    def test_info_invalid_file(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        with pytest.raises(SystemExit) as exc_info:
            main(["info", str(path)])
        assert exc_info.value.code == 1
        assert "invalid graph file" in capsys.readouterr().err

    def test_info_output_to_file(self, sample_graph_file, tmp_path):
        out_path = tmp_path / "info.txt"
        main(["info", sample_graph_file, "-o", str(out_path)])
        assert "TestGraph" in out_path.read_text()
