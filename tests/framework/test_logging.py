"""
Logging Tests - 日志系统测试
=============================

测试内容：
1. test_logger_setup          - Logger 创建和 handler 配置
2. test_set_log_level         - 动态日志级别切换（DEBUG/INFO）
3. test_trace_transformation  - rewrite 成功时输出 INFO 日志
4. test_log_optimization      - Pass 级别日志与耗时统计
"""

import unittest

import numpy as np

from graph_rewriter.core import Any, MatcherPass, Op
from graph_rewriter.ir import Graph
from graph_rewriter.ops import OpKind
from graph_rewriter.utils.logger import DEBUG, INFO, LOG_FORMAT, get_logger, set_log_level


def relu_graph():
    graph = Graph()
    x = graph.add_parameter(np.float32, (2,))
    relu = graph.add_node(OpKind.RELU, [x])
    graph.add_result(relu)
    return graph, relu


def relu_to_tanh(match, graph):
    return graph.add_node(OpKind.TANH, [match["x"]])


class TestLogging(unittest.TestCase):
    """日志系统测试套件。"""

    def test_logger_setup(self):
        logger = get_logger("TestLogger")
        self.assertEqual(logger.name, "TestLogger")
        self.assertTrue(len(logger.handlers) >= 1)
        self.assertEqual(logger.handlers[0].formatter._fmt, LOG_FORMAT)

    def test_set_log_level(self):
        set_log_level(DEBUG)
        from graph_rewriter.utils.logger import logger as global_logger

        self.assertEqual(global_logger.level, DEBUG)
        set_log_level(INFO)
        self.assertEqual(global_logger.level, INFO)

    def test_trace_transformation(self):
        graph, relu = relu_graph()
        rule = MatcherPass(Op(OpKind.RELU, Any(alias="x")), relu_to_tanh)
        with self.assertLogs("GraphRewriter", level="INFO") as logs:
            rule.apply(graph, relu)
        self.assertTrue(
            any(f"relu_to_tanh matched at node {relu.id}, created 1 nodes" in line for line in logs.output)
        )

    def test_match_is_logged_at_debug(self):
        graph, relu = relu_graph()
        set_log_level(DEBUG)
        try:
            with self.assertLogs("GraphRewriter", level="DEBUG") as logs:
                Op(OpKind.RELU, Any()).match(relu, graph)
        finally:
            set_log_level(INFO)
        self.assertTrue(any(f"on node: {relu.id} (Kind: Relu)" in line for line in logs.output))

    def test_log_optimization(self):
        graph, relu = relu_graph()
        rule = MatcherPass(Op(OpKind.RELU, Any(alias="x")), relu_to_tanh, name="ReluToTanh")
        with self.assertLogs("GraphRewriter", level="INFO") as logs:
            stats = rule.transform(graph)
        self.assertIn("[ReluToTanh] Starting graph rewrite pass... (3 nodes)", logs.output[0])
        self.assertTrue(any("Nodes: 3 -> 3" in line for line in logs.output))
        self.assertGreaterEqual(stats.duration, 0.0)


if __name__ == "__main__":
    unittest.main()
