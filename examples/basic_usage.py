"""Basic usage example for graph-ops."""

from graph_ops import (
    ExternalGraph,
    Graph,
    GraphImporter,
    build_gradients,
    one_hot,
    serialize_graph,
    space_to_depth,
)


def main():
    print("=" * 60)
    print("graph-ops - Basic Usage Example")
    print("=" * 60)

    # 1. Build a graph natively
    print("\n1. Building a graph natively...")
    graph = Graph("native")
    x = graph.placeholder("x", shape=(1, 8, 8, 3))
    y = space_to_depth(graph, x, block_size=2, data_format="NHWC")
    record = graph.get_op(y.producer_node)
    print(f"   {y.producer_node}: {x.shape} -> {y.shape}")
    print(f"   int_args={list(record.int_args)} float_args={list(record.float_args)}")

    labels = graph.placeholder("labels", shape=(4,), dtype="int64")
    encoded = one_hot(graph, labels, depth=10)
    print(f"   {encoded.producer_node}: {labels.shape} -> {encoded.shape}")

    # 2. Build the backward pass
    print("\n2. Building gradients...")
    dy = graph.placeholder("dy", shape=y.shape)
    grads = build_gradients(graph, {y.name: dy})
    grad_op = graph.get_op(grads["x"].producer_node)
    print(f"   d(x) produced by {grad_op.op_name} with fields {grad_op.fields}")

    # 3. Import an external graph
    print("\n3. Importing an external graph...")
    external = ExternalGraph.from_dict(
        {
            "name": "imported",
            "node": [
                {"name": "images", "op": "Placeholder", "attr": {"dtype": {"type": "DT_FLOAT"}, "shape": [1, 3, 8, 8]}},
                {"name": "s2d", "op": "SpaceToDepth", "input": ["images"], "attr": {"block_size": {"i": 2}, "data_format": {"s": "NCHW"}}},
                {"name": "indices", "op": "Placeholder", "attr": {"dtype": "int32", "shape": [4]}},
                {"name": "depth", "op": "Const", "attr": {"dtype": "int32", "value": 5}},
                {"name": "onehot", "op": "OneHot", "input": ["indices", "depth"], "attr": {"axis": {"i": -1}}},
            ],
        }
    )
    imported = GraphImporter(strict=True).import_graph(external)
    for name, op in imported.ops:
        print(f"   {name}: {op.op_name} int_args={list(op.int_args)} float_args={list(op.float_args)}")

    # 4. Serialize
    print("\n4. Serializing...")
    text = serialize_graph(imported)
    print(f"   {len(text)} characters of JSON")


if __name__ == "__main__":
    main()
