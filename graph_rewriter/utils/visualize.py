from typing import Optional, Set

from ..ir import Graph


def export_to_dot(graph: Graph, highlight_nodes: Optional[Set[int]] = None) -> str:
    """
    Exports a Graph to GraphViz DOT format.

    Args:
        graph: The graph to export.
        highlight_nodes: Optional set of node ids to highlight in the diagram.

    Returns:
        A string containing the DOT representation of the graph.
    """
    highlight_nodes = highlight_nodes or set()
    dot = ["digraph G {"]
    dot.append('  node [shape=box, style=filled, fillcolor=white, fontname="Courier"];')
    dot.append('  edge [fontname="Courier"];')

    for node in graph:
        color = "lightblue" if node.id in highlight_nodes else "white"
        label = f"{node.name}\\n({node.kind.value})"
        dot.append(f'  "n{node.id}" [label="{label}", fillcolor="{color}"];')

        for ref in node.inputs:
            output_type = graph.tensor_type(ref)
            dot.append(
                f'  "n{ref.node_id}" -> "n{node.id}" [label="{ref.index}: {output_type}"];'
            )

    dot.append("}")
    return "\n".join(dot)


def save_dot(graph: Graph, path: str, highlight_nodes: Optional[Set[int]] = None):
    """Saves the DOT representation of a graph to a file."""
    dot_content = export_to_dot(graph, highlight_nodes)
    with open(path, "w") as f:
        f.write(dot_content)
