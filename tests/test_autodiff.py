"""Tests for gradient linkage and backward graph construction."""

import pytest

from graph_ops.autodiff import GradientError, build_gradients
from graph_ops.graph import Graph
from graph_ops.ops import (
    AddN,
    DepthToSpace,
    OneHot,
    SpaceToDepth,
    ZerosLike,
    add_n,
    depth_to_space,
    one_hot,
    space_to_depth,
)


class TestInverseGradient:
    """Structural bijections differentiate to their structural inverse."""

    @pytest.mark.parametrize("data_format", ["NHWC", "NCHW"])
    @pytest.mark.parametrize("block_size", [2, 4])
    def test_space_to_depth_gradient(self, graph, nhwc_input, data_format, block_size):
        y = space_to_depth(graph, nhwc_input, block_size, data_format)
        forward = graph.get_op(y.producer_node)
        dy = graph.placeholder("dy", shape=y.shape)

        grads = forward.gradient(graph, [dy])

        assert len(grads) == 1
        backward = graph.get_op(grads[0].producer_node)
        assert isinstance(backward, DepthToSpace)
        assert backward.block_size == block_size
        assert backward.data_format == data_format
        assert backward.int_args == forward.int_args
        assert backward.inputs == (dy,)

    def test_depth_to_space_gradient(self, graph, nchw_input):
        y = depth_to_space(graph, nchw_input, 2, "NCHW")
        forward = graph.get_op(y.producer_node)
        dy = graph.placeholder("dy", shape=y.shape)

        grads = forward.gradient(graph, [dy])
        backward = graph.get_op(grads[0].producer_node)

        assert isinstance(backward, SpaceToDepth)
        assert backward.block_size == 2
        assert backward.data_format == "NCHW"

    def test_gradient_shape_matches_input(self, graph, nhwc_input):
        y = space_to_depth(graph, nhwc_input, 2)
        dy = graph.placeholder("dy", shape=y.shape)

        grads = graph.get_op(y.producer_node).gradient(graph, [dy])

        assert grads[0].shape == nhwc_input.shape

    def test_gradient_registered_in_owning_graph(self, graph, nhwc_input):
        y = space_to_depth(graph, nhwc_input, 2)
        dy = graph.placeholder("dy", shape=y.shape)
        forward = graph.get_op(y.producer_node)

        grads = forward.gradient(graph, [dy])
        backward = graph.get_op(grads[0].producer_node)

        assert graph.owns(backward)
        assert graph.has_variable(grads[0])

    def test_gradient_rejects_foreign_graph(self, graph, nhwc_input):
        y = space_to_depth(graph, nhwc_input, 2)
        forward = graph.get_op(y.producer_node)
        other = Graph("other")
        dy = other.placeholder("dy", shape=y.shape)

        with pytest.raises(ValueError):
            forward.gradient(other, [dy])

        assert other.ops == []

    def test_unregistered_record_cannot_link(self, graph, nhwc_input):
        record = SpaceToDepth(inputs=(nhwc_input,), block_size=2)
        dy = graph.placeholder("dy")

        with pytest.raises(ValueError):
            record.gradient(graph, [dy])


class TestOtherGradients:
    """Gradients of operators without a structural inverse."""

    def test_one_hot_gradient_is_zeros(self, graph, indices):
        out = one_hot(graph, indices, depth=5)
        dy = graph.placeholder("dy", shape=out.shape)
        forward = graph.get_op(out.producer_node)

        grads = forward.gradient(graph, [dy])

        assert len(grads) == 1
        zeros = graph.get_op(grads[0].producer_node)
        assert isinstance(zeros, ZerosLike)
        assert zeros.inputs == (indices,)
        assert grads[0].shape == indices.shape
        assert grads[0].dtype == indices.dtype

    def test_add_n_passes_gradient_through(self, graph):
        a = graph.placeholder("a", shape=(2,))
        b = graph.placeholder("b", shape=(2,))
        out = add_n(graph, a, b)
        dy = graph.placeholder("dy", shape=(2,))

        grads = graph.get_op(out.producer_node).gradient(graph, [dy])

        assert grads == [dy, dy]


class TestBuildGradients:
    """Tests for backward graph construction."""

    def test_chain(self, graph, nhwc_input):
        y = space_to_depth(graph, nhwc_input, 2)
        z = depth_to_space(graph, y, 2)
        dz = graph.placeholder("dz", shape=z.shape)

        grads = build_gradients(graph, {z.name: dz})

        dx_op = graph.get_op(grads[nhwc_input.name].producer_node)
        dy_op = graph.get_op(grads[y.name].producer_node)
        assert isinstance(dy_op, SpaceToDepth)
        assert isinstance(dx_op, DepthToSpace)
        assert dx_op.inputs == (grads[y.name],)
        assert grads[nhwc_input.name].shape == nhwc_input.shape

    def test_each_op_differentiated_once(self, graph, nhwc_input):
        y = space_to_depth(graph, nhwc_input, 2)
        dy = graph.placeholder("dy", shape=y.shape)
        num_ops = len(graph.ops)

        build_gradients(graph, {y.name: dy})

        assert len(graph.ops) == num_ops + 1

    def test_fan_out_accumulates(self, graph, nhwc_input):
        a = space_to_depth(graph, nhwc_input, 2, name="a")
        b = space_to_depth(graph, nhwc_input, 2, name="b")
        da = graph.placeholder("da", shape=a.shape)
        db = graph.placeholder("db", shape=b.shape)

        grads = build_gradients(graph, {a.name: da, b.name: db})

        total = graph.get_op(grads[nhwc_input.name].producer_node)
        assert isinstance(total, AddN)
        assert len(total.inputs) == 2

    def test_ops_without_gradient_are_skipped(self, graph, nhwc_input, indices):
        y = space_to_depth(graph, nhwc_input, 2)
        one_hot(graph, indices, depth=3)
        dy = graph.placeholder("dy", shape=y.shape)

        grads = build_gradients(graph, {y.name: dy})

        assert indices.name not in grads

    def test_unknown_output(self, graph, nhwc_input):
        dy = graph.placeholder("dy")

        with pytest.raises(KeyError):
            build_gradients(graph, {"nope": dy})

    def test_wrong_gradient_arity(self, graph, indices):
        class BrokenOneHot(OneHot):
            def gradient(self, graph, output_grads):
                return []

        record = BrokenOneHot(inputs=(indices,), depth=2)
        out = graph.add_op(record)[0]
        dy = graph.placeholder("dy", shape=out.shape)

        with pytest.raises(GradientError):
            build_gradients(graph, {out.name: dy})
