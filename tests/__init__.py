"""
Graph Rewriter Test Suite
=========================

测试模块组织：

tests/
├── framework/           # 核心框架测试
│   ├── test_ir.py                # 图 IR：构造、类型推导、拼接、垃圾回收、检查点
│   ├── test_matcher.py           # 模式匹配（通配、交换律、可选输入、Variadic）
│   ├── test_matcher_pass.py      # MatcherPass / GraphRewrite 应用与回滚
│   ├── test_pass_manager.py      # PassManager：流水线、校验、回滚、调试输出
│   ├── test_validation.py        # 图校验
│   ├── test_equivalence.py       # 图结构等价比较
│   ├── test_layout.py            # 输入/输出数据排布查询
│   ├── test_graph_io.py          # GraphDef 读写
│   ├── test_visualize.py         # DOT 导出
│   └── test_logging.py           # 日志系统测试
│
└── transforms/          # 重写 Pass 测试
    ├── common/                   # 通用清理
    │   └── test_identity_elimination.py
    │
    └── op_conversions/           # 算子分解与 op-set 降级
        ├── test_gelu7_downgrade.py
        ├── test_log_softmax_decomposition.py
        ├── test_broadcast_to_tile.py
        └── test_opset_downgrade.py

运行测试：
    # 使用 pytest 运行全部
    python -m pytest tests/ -v

    # 运行特定模块
    python -m pytest tests/framework/ -v
    python -m pytest tests/transforms/ -v

    # 运行特定类别 Pass 测试
    python -m pytest tests/transforms/op_conversions/ -v
"""
