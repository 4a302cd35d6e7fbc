"""
Transform Tests - 重写 Pass 测试模块
=====================================

按照 transforms 目录结构组织的测试：

tests/transforms/
├── common/              # 通用清理
│   └── test_identity_elimination.py   # Identity 消除测试
│
└── op_conversions/      # 算子分解与 op-set 降级
    ├── test_gelu7_downgrade.py            # Gelu-7 -> Gelu-2
    ├── test_log_softmax_decomposition.py  # LogSoftmax / Softmax 分解
    ├── test_broadcast_to_tile.py          # Broadcast -> Tile
    └── test_opset_downgrade.py            # 按目标 op-set 组合规则
"""
