"""
Marshalling of links between pipeline elements into a graph for a dagre layout.

The result has 3 lists:
- nodes: elements and bins' pads, a bin is visible through the pads linked to it
- edges: links between nodes
- combos: nested groups of nodes, one per pipeline, bin and sub-bin

Nodes are styled according to their elements' liveness: newly created, dead
or already existing ones, with a separate palette for bins.
"""
import hashlib
import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

BIN_ITSELF = "{Membrane.Bin, :itself}"
BIN_SUFFIX = " bin"


class Liveness(str, Enum):
    NEW = "new"
    DEAD = "dead"
    EXISTING = "existing"


NODE_STYLES: Dict[Tuple[Liveness, bool], Dict[str, str]] = {
    (Liveness.NEW, False): {"fill": "#14fa14"},
    (Liveness.NEW, True): {"fill": "#ffb700"},
    (Liveness.DEAD, False): {"fill": "#ff5559"},
    (Liveness.DEAD, True): {"fill": "#730000"},
    (Liveness.EXISTING, False): {"fill": "#166e15"},
    (Liveness.EXISTING, True): {"fill": "#ad8110"},
}

DEFAULT_NODE_STYLE: Dict[str, str] = {}

# Sets are checked in this order, an element both dead and new is shown as dead
LIVENESS_PRIORITY = (Liveness.DEAD, Liveness.NEW, Liveness.EXISTING)


def hash_string(value: str) -> str:
    """Stable id of a graph item: uppercase hex MD5 of the UTF-8 bytes."""
    return hashlib.md5(value.encode("utf-8")).hexdigest().upper()

def collect_bin_nodes(links) -> Set[str]:
    return {link["parent_path"] for link in links if link["parent_path"].endswith(BIN_SUFFIX)}

def element_path(parent_path: str, parents: List[str], element: str, bin_nodes: Set[str]) -> Tuple[bool, List[str]]:
    """
    Return whether the element is a bin and the path of the combo it belongs to.

    A bin's own pads are placed in the bin's combo.
    """
    if element == BIN_ITSELF:
        return True, parents

    element_bin = element + BIN_SUFFIX
    if f"{parent_path}/{element_bin}" in bin_nodes:
        return True, parents + [element_bin]

    return False, parents

def format_element(last_parent: str, element: str, pad: str, is_bin: bool) -> str:
    if element == BIN_ITSELF:
        name = last_parent[:-len(BIN_SUFFIX)] if last_parent.endswith(BIN_SUFFIX) else last_parent
        return f"{name}\n{pad}"
    if is_bin:
        return f"{element}\n{pad}"
    return element

def generate_node(path: List[str], label: str) -> str:
    return hash_string("".join(path) + label)

def combo(path: List[str]) -> Dict[str, object]:
    parents = path[:-1]
    return {
        "id": hash_string("".join(path)),
        "label": path[-1],
        "parentId": hash_string("".join(parents)) if parents else None,
        "path": list(path),
    }

def format_link(link, bin_nodes: Set[str]) -> Dict[str, object]:
    parents = link["parent_path"].split("/")
    last_parent = parents[-1]

    formatted = {}
    for side, pad_key in (("from", "pad_from"), ("to", "pad_to")):
        is_bin, path = element_path(link["parent_path"], parents, link[side], bin_nodes)
        label = format_element(last_parent, link[side], link[pad_key], is_bin)
        formatted[side] = {
            "label": label,
            "node": generate_node(path, label),
            "path": path,
            "is_bin": is_bin,
        }
    return formatted

def _node_key(node) -> tuple:
    return (node["id"], node["label"], node["comboId"], node["is_bin"], tuple(node["path"]))

def _combo_key(item) -> tuple:
    return (item["id"], item["label"], item["parentId"], tuple(item["path"]))

def reduce_links(formatted_links: Iterable[Dict[str, dict]]):
    """Fold formatted links into deduplicated nodes, edges and combos."""
    nodes: Dict[tuple, dict] = {}
    edges: Dict[tuple, dict] = {}
    combos: Dict[tuple, dict] = {}

    for link in formatted_links:
        for side in ("from", "to"):
            end = link[side]
            end_combo = combo(end["path"])
            node = {
                "id": end["node"],
                "label": end["label"],
                "comboId": end_combo["id"],
                "is_bin": end["is_bin"],
                "path": end["path"] + [end["label"]],
            }
            nodes.setdefault(_node_key(node), node)
            combos.setdefault(_combo_key(end_combo), end_combo)

        edge = {"source": link["from"]["node"], "target": link["to"]["node"]}
        edges.setdefault((edge["source"], edge["target"]), edge)

    return list(nodes.values()), list(edges.values()), list(combos.values())

def liveness_path(node) -> str:
    # A bin node's last segment is its pad label, the bin itself is tracked by its combo path
    path = node["path"][:-1] if node["is_bin"] else node["path"]
    return "/".join(path)

def select_path_style(path: str, is_bin: bool, liveness) -> Dict[str, str]:
    for state in LIVENESS_PRIORITY:
        if path in liveness.get(state.value, ()):
            return NODE_STYLES[(state, is_bin)]

    logger.warning("%s has not been found among queried elements", path)
    return DEFAULT_NODE_STYLE

def colorize_nodes(nodes: List[dict], liveness) -> List[dict]:
    return [
        {**node, "style": dict(select_path_style(liveness_path(node), node["is_bin"], liveness))}
        for node in nodes
    ]

def marshal(links, liveness: Optional[Dict[str, Set[str]]] = None) -> Dict[str, list]:
    """
    Convert link records into a graph of nodes, edges and combos.

    Args:
        links: Dicts with `parent_path`, `from`, `to`, `pad_from` and `pad_to`
        liveness: `new`, `dead` and `existing` sets of element paths

    Returns:
        dict: JSON serializable `nodes`, `edges` and `combos` lists
    """
    links = list(links)
    bin_nodes = collect_bin_nodes(links)

    nodes, edges, combos = reduce_links(format_link(link, bin_nodes) for link in links)

    # Styling needs the complete, deduplicated node set
    nodes = colorize_nodes(nodes, liveness or {})

    return {"nodes": nodes, "edges": edges, "combos": combos}
