"""
Framework Tests - 核心框架测试模块
===================================

测试 GraphRewriter 核心引擎的各项功能：

模块列表：
- test_ir.py            : Graph 构造、输出类型推导、replace_output、collect_garbage、checkpoint/rollback
- test_matcher.py       : Any/Op/CommutativeOp/OptionalInput/Variadic 匹配，失败时无残留绑定
- test_matcher_pass.py  : 替换、拒绝（回滚）、放弃匹配、首个匹配优先、迭代上限
- test_pass_manager.py  : 流水线顺序、输入校验、Pass 后校验失败回滚、配置、调试输出
- test_validation.py    : 悬空输入、类型不一致、环、缺失边界节点
- test_equivalence.py   : 结构等价与差异定位信息
- test_layout.py        : 输入/输出 orientation 查询
- test_graph_io.py      : GraphDef 转换与 .pb/.pbtxt 文件
- test_visualize.py     : DOT 导出
- test_logging.py       : 日志系统配置和级别控制
"""
