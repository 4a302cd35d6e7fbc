"""
Common Transforms - 通用清理
============================

与具体算子语义无关的局部清理变换。

包含的 Pass：
- identity_elimination.py : 绕过 Identity 节点
"""

from .identity_elimination import IdentityElimination

__all__ = [
    'IdentityElimination',
]
