"""
Validation Tests - 图不变量校验测试
====================================

测试内容：
1. 合法图不产生任何 violation
2. 悬空输入（不存在的节点 / 输出索引）
3. 环
4. 声明类型与推导类型不一致
5. 死节点（可通过 allow_dead_nodes 忽略）
6. 边界节点（Parameter / Result 注册关系）
"""

import unittest

import numpy as np

from graph_rewriter.ir import Graph, OutputRef
from graph_rewriter.ops import OpKind, TensorType
from graph_rewriter.validation import Violation, ViolationKind, validate_graph


def build_graph():
    graph = Graph()
    x = graph.add_parameter(np.float32, (2, 3))
    relu = graph.add_node(OpKind.RELU, [x])
    exp = graph.add_node(OpKind.EXP, [relu])
    result = graph.add_result(exp)
    return graph, x, relu, exp, result


class TestValidateGraph(unittest.TestCase):
    """validate_graph 测试套件。"""

    def test_valid_graph(self):
        graph, *_ = build_graph()
        self.assertEqual(validate_graph(graph), [])

    def test_dangling_input(self):
        graph, x, relu, exp, result = build_graph()
        exp.inputs[0] = OutputRef(99, 0)
        violations = validate_graph(graph)
        self.assertEqual([v.kind for v in violations], [ViolationKind.DANGLING_INPUT])
        self.assertEqual(violations[0].node_id, exp.id)

    def test_missing_output_index(self):
        graph, x, relu, exp, result = build_graph()
        exp.inputs[0] = OutputRef(relu.id, 1)
        kinds = {v.kind for v in validate_graph(graph)}
        self.assertEqual(kinds, {ViolationKind.DANGLING_INPUT})

    def test_cycle(self):
        graph, x, relu, exp, result = build_graph()
        graph.set_input(relu.id, 0, exp)
        violations = validate_graph(graph, allow_dead_nodes=True)
        self.assertEqual({v.kind for v in violations}, {ViolationKind.CYCLE})
        self.assertEqual(
            sorted(v.node_id for v in violations), [relu.id, exp.id, result.id]
        )

    def test_type_mismatch(self):
        graph, x, relu, exp, result = build_graph()
        relu.outputs[0] = TensorType(np.float16, (2, 3))
        violations = validate_graph(graph)
        # Exp follows its (declared) input, so the mismatches surface at Relu and Exp
        self.assertEqual([v.node_id for v in violations], [relu.id, exp.id])
        self.assertTrue(all(v.kind == ViolationKind.TYPE_MISMATCH for v in violations))
        self.assertIn("float16{2,3}", violations[0].message)

    def test_shape_error_is_reported(self):
        graph, x, relu, exp, result = build_graph()
        other = graph.add_parameter(np.float32, (4,))
        add = graph.add_node(OpKind.ADD, [relu, relu])
        graph.set_input(exp.id, 0, add)
        graph.set_input(add.id, 1, other)
        violations = validate_graph(graph)
        self.assertEqual([v.kind for v in violations], [ViolationKind.TYPE_MISMATCH])
        self.assertIn("not broadcastable", violations[0].message)

    def test_dead_nodes(self):
        graph, x, relu, exp, result = build_graph()
        dead = graph.add_node(OpKind.TANH, [relu])
        violations = validate_graph(graph)
        self.assertEqual(violations, [Violation(ViolationKind.DEAD_NODE, dead.id, violations[0].message)])
        self.assertEqual(validate_graph(graph, allow_dead_nodes=True), [])

    def test_unregistered_boundary(self):
        graph, x, relu, exp, result = build_graph()
        graph.results.remove(result.id)
        violations = validate_graph(graph)
        self.assertIn(ViolationKind.BOUNDARY, {v.kind for v in violations})
        self.assertIn("not registered", str(violations[0]))

    def test_violation_str(self):
        violation = Violation(ViolationKind.CYCLE, 3, "node lies on or behind a dependency cycle")
        self.assertEqual(str(violation), "cycle at node 3: node lies on or behind a dependency cycle")
        self.assertEqual(str(Violation(ViolationKind.PASS_FAILURE, None, "boom")), "pass_failure at graph: boom")


if __name__ == "__main__":
    unittest.main()
