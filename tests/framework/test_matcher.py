"""
Matcher Tests - 模式匹配测试
=============================

测试内容：
1. test_wildcard_*            - 通配符前驱匹配任意算子
2. test_attr_* / test_shape_* - 属性、形状、元素类型、谓词约束
3. test_commutative_*         - 交换律匹配（先左后右，且不修改节点）
4. test_optional_*            - 可选输入（缺失时绑定为 None）
5. test_variadic_*            - 可变参数输入匹配
6. test_failed_match_*        - 匹配失败时不留下部分绑定

依赖：
- Op, Any, CommutativeOp, OptionalInput, Variadic, ConstValue : 模式匹配原语
"""

import unittest

import numpy as np

from graph_rewriter.core import (
    Any,
    CommutativeOp,
    ConstValue,
    MatchContext,
    Op,
    OptionalInput,
    Variadic,
    match,
)
from graph_rewriter.ir import Graph
from graph_rewriter.ops import OpKind


class TestWildcardMatching(unittest.TestCase):
    """通配符匹配测试套件。"""

    def test_wildcard_matches_any_predecessor_kind(self):
        pattern = Op(OpKind.RELU, Any(alias="x"), alias="relu")
        graph = Graph()
        p = graph.add_parameter(np.float32, (2, 2))
        exp = graph.add_node(OpKind.EXP, [p])
        relu_on_param = graph.add_node(OpKind.RELU, [p])
        relu_on_exp = graph.add_node(OpKind.RELU, [exp])

        first = match(pattern, relu_on_param, graph)
        second = match(pattern, relu_on_exp, graph)
        self.assertIs(first["x"], p)
        self.assertIs(second["x"], exp)
        self.assertIs(second["relu"], relu_on_exp)
        self.assertEqual(second.all_matched_nodes, {exp.id, relu_on_exp.id})

    def test_wildcard_does_not_recurse(self):
        pattern = Op(OpKind.RELU, Any(alias="x"))
        graph = Graph()
        p = graph.add_parameter(np.float32, (2,))
        exp = graph.add_node(OpKind.EXP, [graph.add_node(OpKind.TANH, [p])])
        relu = graph.add_node(OpKind.RELU, [exp])
        context = match(pattern, relu, graph)
        self.assertEqual(context.all_matched_nodes, {exp.id, relu.id})

    def test_kind_mismatch(self):
        graph = Graph()
        p = graph.add_parameter(np.float32, (2,))
        exp = graph.add_node(OpKind.EXP, [p])
        self.assertIsNone(match(Op(OpKind.RELU, Any()), exp, graph))
        self.assertIsNotNone(match(Op([OpKind.RELU, OpKind.EXP], Any()), exp, graph))

    def test_input_count_must_match(self):
        graph = Graph()
        p = graph.add_parameter(np.float32, (2,))
        add = graph.add_node(OpKind.ADD, [p, p])
        self.assertIsNone(match(Op(OpKind.ADD, Any()), add, graph))


class TestConstraintMatching(unittest.TestCase):
    """属性、形状与谓词约束。"""

    def setUp(self):
        self.graph = Graph()
        self.p = self.graph.add_parameter(np.float32, (1, 2, 3))
        self.gelu = self.graph.add_node(
            OpKind.GELU_V7, [self.p], attrs={"approximation_mode": "tanh"}
        )

    def test_attr_literal_and_predicate(self):
        literal = Op(OpKind.GELU_V7, Any(), attrs={"approximation_mode": "tanh"})
        predicate = Op(OpKind.GELU_V7, Any(), attrs={"approximation_mode": lambda v: v != "erf"})
        wrong = Op(OpKind.GELU_V7, Any(), attrs={"approximation_mode": "erf"})
        missing = Op(OpKind.GELU_V7, Any(), attrs={"other": 1})
        self.assertIsNotNone(match(literal, self.gelu, self.graph))
        self.assertIsNotNone(match(predicate, self.gelu, self.graph))
        self.assertIsNone(match(wrong, self.gelu, self.graph))
        self.assertIsNone(match(missing, self.gelu, self.graph))

    def test_shape_with_wildcard_dims(self):
        self.assertIsNotNone(match(Op(OpKind.GELU_V7, Any(), shape=[1, None, 3]), self.gelu, self.graph))
        self.assertIsNone(match(Op(OpKind.GELU_V7, Any(), shape=[1, 3, None]), self.gelu, self.graph))
        self.assertIsNone(match(Op(OpKind.GELU_V7, Any(), shape=[1, 2]), self.gelu, self.graph))

    def test_element_type(self):
        self.assertIsNotNone(match(Op(OpKind.GELU_V7, Any(), element_type=np.float32), self.gelu, self.graph))
        self.assertIsNone(match(Op(OpKind.GELU_V7, Any(), element_type=np.float16), self.gelu, self.graph))

    def test_custom_predicate(self):
        pattern = Op(OpKind.GELU_V7, Any(), predicate=lambda node: node.outputs[0].rank == 3)
        self.assertIsNotNone(match(pattern, self.gelu, self.graph))

    def test_consumer_count(self):
        self.graph.add_result(self.gelu)
        self.assertIsNotNone(match(Op(OpKind.GELU_V7, Any(), consumer_count=1), self.gelu, self.graph))
        self.assertIsNone(match(Op(OpKind.GELU_V7, Any(), consumer_count=2), self.gelu, self.graph))

    def test_const_value(self):
        const = self.graph.add_constant(np.array([1], dtype=np.int64))
        self.assertIsNotNone(match(ConstValue([1]), const, self.graph))
        self.assertIsNone(match(ConstValue([2]), const, self.graph))


class TestCommutativeMatching(unittest.TestCase):
    """交换律匹配测试套件。"""

    def test_commutative_swapped_order(self):
        pattern = CommutativeOp(OpKind.ADD, Op(OpKind.CONSTANT, alias="c"), Any(alias="x"), alias="root")
        graph = Graph()
        x = graph.add_parameter(np.float32, (2,))
        c = graph.add_constant(np.ones(2, dtype=np.float32))
        add = graph.add_node(OpKind.ADD, [x, c])

        context = match(pattern, add, graph)
        self.assertIsNotNone(context)
        self.assertIs(context["c"], c)
        self.assertIs(context["x"], x)
        # Matching never reorders the inputs
        self.assertEqual(add.inputs, [x.output(), c.output()])

    def test_commutative_prefers_declared_order(self):
        pattern = CommutativeOp(OpKind.ADD, Any(alias="a"), Any(alias="b"))
        graph = Graph()
        p1 = graph.add_parameter(np.float32, (2,))
        p2 = graph.add_parameter(np.float32, (2,))
        add = graph.add_node(OpKind.ADD, [p1, p2])
        context = match(pattern, add, graph)
        self.assertIs(context["a"], p1)
        self.assertIs(context["b"], p2)

    def test_commutative_no_partial_bindings(self):
        pattern = CommutativeOp(OpKind.ADD, Op(OpKind.RELU, alias="r"), Op(OpKind.EXP, alias="e"))
        graph = Graph()
        p = graph.add_parameter(np.float32, (2,))
        relu1 = graph.add_node(OpKind.RELU, [p])
        relu2 = graph.add_node(OpKind.RELU, [p])
        add = graph.add_node(OpKind.ADD, [relu1, relu2])

        context = MatchContext(anchor=add.id)
        self.assertIsNone(pattern.match(add, graph, context))
        self.assertEqual(context.matched_nodes, {})
        self.assertEqual(context.all_matched_nodes, set())


class TestOptionalAndVariadic(unittest.TestCase):
    """可选输入与可变参数输入。"""

    def setUp(self):
        self.graph = Graph()
        self.a = self.graph.add_parameter(np.float32, (2, 2))
        self.b = self.graph.add_parameter(np.float32, (2, 2))
        self.pattern = Op(
            OpKind.CONCAT,
            Any(alias="first"),
            OptionalInput(Any(alias="second")),
            alias="concat",
        )

    def test_optional_input_absent(self):
        concat = self.graph.add_node(OpKind.CONCAT, [self.a], attrs={"axis": 0})
        context = match(self.pattern, concat, self.graph)
        self.assertIsNotNone(context)
        self.assertIn("second", context)
        self.assertIsNone(context["second"])

    def test_optional_input_present(self):
        concat = self.graph.add_node(OpKind.CONCAT, [self.a, self.b], attrs={"axis": 0})
        context = match(self.pattern, concat, self.graph)
        self.assertIs(context["second"], self.b)

    def test_optional_does_not_absorb_extra_inputs(self):
        concat = self.graph.add_node(OpKind.CONCAT, [self.a, self.b, self.a], attrs={"axis": 0})
        self.assertIsNone(match(self.pattern, concat, self.graph))

    def test_variadic_collects_inputs(self):
        c1 = self.graph.add_constant(np.zeros((1, 2), dtype=np.float32))
        c2 = self.graph.add_constant(np.ones((1, 2), dtype=np.float32))
        concat = self.graph.add_node(OpKind.CONCAT, [c1, c2], attrs={"axis": 0})
        pattern = Op(OpKind.CONCAT, Variadic(Op(OpKind.CONSTANT), min_count=2, alias="values"))
        context = match(pattern, concat, self.graph)
        self.assertEqual(context["values"], [c1, c2])

    def test_variadic_with_fixed_prefix(self):
        c1 = self.graph.add_constant(np.zeros((2, 2), dtype=np.float32))
        concat = self.graph.add_node(OpKind.CONCAT, [self.a, c1, c1], attrs={"axis": 0})
        pattern = Op(OpKind.CONCAT, Op(OpKind.PARAMETER, alias="head"), Variadic(Op(OpKind.CONSTANT), alias="tail"))
        context = match(pattern, concat, self.graph)
        self.assertIs(context["head"], self.a)
        self.assertEqual(len(context["tail"]), 2)

    def test_variadic_rejects_non_matching_input(self):
        c1 = self.graph.add_constant(np.zeros((2, 2), dtype=np.float32))
        concat = self.graph.add_node(OpKind.CONCAT, [c1, self.a], attrs={"axis": 0})
        pattern = Op(OpKind.CONCAT, Variadic(Op(OpKind.CONSTANT)))
        self.assertIsNone(match(pattern, concat, self.graph))


class TestReadOnlyMatching(unittest.TestCase):
    def test_failed_match_leaves_graph_untouched(self):
        graph = Graph()
        p = graph.add_parameter(np.float32, (2,))
        relu = graph.add_node(OpKind.RELU, [p])
        graph.add_result(relu)
        before = graph.summary()
        match(Op(OpKind.RELU, Op(OpKind.EXP)), relu, graph)
        match(Op(OpKind.RELU, Any()), relu, graph)
        self.assertEqual(graph.summary(), before)


if __name__ == "__main__":
    unittest.main()
