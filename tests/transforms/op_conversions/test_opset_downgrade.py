"""
Opset Downgrade Tests - op-set 降级测试
========================================

测试内容：
1. 目标 op-set 决定启用哪些规则
2. opset 2：Gelu-7 / LogSoftmax / Broadcast 在一次扫描内全部降级
3. opset 1 + fixpoint：Gelu-7 -> Gelu-2 -> Erf 分解，与参考图等价
4. 已满足目标 op-set 的图保持不变
"""

import math
import unittest

import numpy as np

from graph_rewriter.equivalence import compare_graphs
from graph_rewriter.ir import Graph
from graph_rewriter.ops import OpKind
from graph_rewriter.runner import PassManager, PassPipeline
from graph_rewriter.transforms.op_conversions import OpsetDowngrade


def build_model():
    graph = Graph("model")
    x = graph.add_parameter(np.float32, (1, 3), name="x")
    gelu = graph.add_node(OpKind.GELU_V7, [x], attrs={"approximation_mode": "erf"})
    log_softmax = graph.add_node(OpKind.LOG_SOFTMAX, [gelu], attrs={"axis": 1})
    target = graph.add_constant(np.array([2, 3], dtype=np.int64))
    broadcast = graph.add_node(OpKind.BROADCAST, [log_softmax, target])
    graph.add_result(broadcast, name="out")
    return graph


def kinds(graph):
    return {node.kind for node in graph}


class TestOpsetDowngrade(unittest.TestCase):
    """OpsetDowngrade 测试套件。"""

    def test_rules_by_target(self):
        def rules(target):
            return [matcher.name for matcher in OpsetDowngrade(target).matchers]

        self.assertEqual(
            rules(1),
            ["Gelu7Downgrade", "LogSoftmaxDecomposition", "BroadcastToTile", "GeluDecomposition"],
        )
        self.assertEqual(rules(2), ["Gelu7Downgrade", "LogSoftmaxDecomposition", "BroadcastToTile"])
        self.assertEqual(rules(5), ["Gelu7Downgrade"])
        self.assertEqual(rules(7), [])
        self.assertEqual(OpsetDowngrade(2).name, "OpsetDowngrade(opset2)")

    def test_downgrade_to_opset2(self):
        graph = build_model()
        stats = OpsetDowngrade(2).transform(graph)
        self.assertEqual(stats.matches, 3)
        self.assertEqual(stats.iterations, 1)
        self.assertTrue(all(kind.opset <= 2 for kind in kinds(graph)))
        self.assertIn(OpKind.GELU_V2, kinds(graph))
        self.assertIn(OpKind.TILE, kinds(graph))
        self.assertEqual(graph.result_nodes()[0].outputs[0].shape, (2, 3))

    def test_downgrade_to_opset1_with_fixpoint(self):
        graph = Graph()
        x = graph.add_parameter(np.float32, (2, 4))
        gelu = graph.add_node(OpKind.GELU_V7, [x], attrs={"approximation_mode": "erf"})
        graph.add_result(gelu)

        pipeline = PassPipeline()
        pipeline.add(OpsetDowngrade, target_opset=1, fixpoint=True)
        result = PassManager(pipeline).run(graph)
        self.assertTrue(result, result.violations)
        self.assertEqual(result.pass_stats[0].iterations, 3)

        reference = Graph()
        rx = reference.add_parameter(np.float32, (2, 4))
        half = reference.add_constant(np.array(0.5, dtype=np.float32))
        inv_sqrt2 = reference.add_constant(np.array(1.0 / math.sqrt(2.0), dtype=np.float32))
        one = reference.add_constant(np.array(1.0, dtype=np.float32))
        erf = reference.add_node(OpKind.ERF, [reference.add_node(OpKind.MULTIPLY, [rx, inv_sqrt2])])
        shifted = reference.add_node(OpKind.ADD, [erf, one])
        half_x = reference.add_node(OpKind.MULTIPLY, [rx, half])
        reference.add_result(reference.add_node(OpKind.MULTIPLY, [half_x, shifted]))
        comparison = compare_graphs(graph, reference)
        self.assertTrue(comparison, comparison.message)

    def test_graph_already_at_target(self):
        graph = build_model()
        stats = OpsetDowngrade(7).transform(graph, fixpoint=True)
        self.assertEqual(stats.matches, 0)
        self.assertTrue(compare_graphs(graph, build_model(), compare_names=True))


if __name__ == "__main__":
    unittest.main()
