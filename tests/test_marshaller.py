"""
Tests for marshalling pipeline links into a dagre graph.

Usage:
    pytest tests/test_marshaller.py -v
"""
import logging

from marshaller import (
    BIN_ITSELF,
    DEFAULT_NODE_STYLE,
    NODE_STYLES,
    Liveness,
    collect_bin_nodes,
    generate_node,
    hash_string,
    marshal,
)

PIPELINE = "pipeline@<0.1.0>"
DECODER_BIN = f"{PIPELINE}/decoder bin"


def link(parent_path, from_, to, pad_from="output", pad_to="input"):
    return {"parent_path": parent_path, "from": from_, "to": to, "pad_from": pad_from, "pad_to": pad_to}


def nodes_by_label(graph):
    return {node["label"]: node for node in graph["nodes"]}


LINKS = [
    link(PIPELINE, "source", "filter"),
    link(PIPELINE, "filter", "decoder"),
    link(DECODER_BIN, BIN_ITSELF, "parser", pad_from="input"),
    link(PIPELINE, "decoder", "sink", pad_from="output"),
    link(DECODER_BIN, "parser", BIN_ITSELF, pad_to="output"),
]

LIVENESS = {
    "new": {f"{PIPELINE}/source"},
    "dead": {f"{PIPELINE}/filter"},
    "existing": {DECODER_BIN, f"{DECODER_BIN}/parser", f"{PIPELINE}/sink"},
}


def test_hash_string_is_uppercase_md5():
    assert hash_string("abc") == "900150983CD24FB0D6963F7D28E17F72"


def test_collect_bin_nodes():
    assert collect_bin_nodes(LINKS) == {DECODER_BIN}


class TestNodes:

    def test_element_shared_by_links_is_one_node(self):
        graph = marshal([link(PIPELINE, "source", "filter"), link(PIPELINE, "source", "sink")], {})

        labels = [node["label"] for node in graph["nodes"]]
        assert sorted(labels) == ["filter", "sink", "source"]
        assert len(graph["edges"]) == 2

    def test_repeated_links_do_not_duplicate_anything(self):
        graph = marshal([link(PIPELINE, "source", "filter")] * 3, {})

        assert len(graph["nodes"]) == 2
        assert graph["edges"] == [{
            "source": generate_node([PIPELINE], "source"),
            "target": generate_node([PIPELINE], "filter"),
        }]
        assert len(graph["combos"]) == 1

    def test_plain_element_node(self):
        graph = marshal(LINKS, LIVENESS)

        source = nodes_by_label(graph)["source"]
        assert source["id"] == hash_string(PIPELINE + "source")
        assert source["is_bin"] is False
        assert source["path"] == [PIPELINE, "source"]
        assert source["comboId"] == hash_string(PIPELINE)

    def test_bin_pads_seen_from_outside_and_inside_collapse(self):
        graph = marshal(LINKS, LIVENESS)

        nodes = nodes_by_label(graph)
        assert len(graph["nodes"]) == 6
        decoder_input = nodes["decoder\ninput"]
        assert decoder_input["is_bin"] is True
        assert decoder_input["path"] == [PIPELINE, "decoder bin", "decoder\ninput"]
        assert decoder_input["comboId"] == hash_string(PIPELINE + "decoder bin")
        assert nodes["decoder\noutput"]["is_bin"] is True

    def test_only_bins_are_marked_as_bins(self):
        graph = marshal(LINKS, LIVENESS)

        bins = {node["label"] for node in graph["nodes"] if node["is_bin"]}
        assert bins == {"decoder\ninput", "decoder\noutput"}

    def test_edges_follow_links(self):
        graph = marshal(LINKS, LIVENESS)

        nodes = nodes_by_label(graph)
        edges = {(edge["source"], edge["target"]) for edge in graph["edges"]}
        assert (nodes["filter"]["id"], nodes["decoder\ninput"]["id"]) in edges
        assert (nodes["decoder\ninput"]["id"], nodes["parser"]["id"]) in edges
        assert (nodes["decoder\noutput"]["id"], nodes["sink"]["id"]) in edges
        assert len(edges) == 5


class TestCombos:

    def test_combos_mirror_path_hierarchy(self):
        graph = marshal(LINKS, LIVENESS)

        combos = {combo["label"]: combo for combo in graph["combos"]}
        assert set(combos) == {PIPELINE, "decoder bin"}
        assert combos[PIPELINE]["parentId"] is None
        assert combos["decoder bin"]["parentId"] == combos[PIPELINE]["id"]
        assert combos["decoder bin"]["path"] == [PIPELINE, "decoder bin"]

    def test_parent_ids_resolve_to_combos(self):
        graph = marshal(LINKS, LIVENESS)

        ids = {combo["id"] for combo in graph["combos"]}
        for combo in graph["combos"]:
            assert combo["parentId"] is None or combo["parentId"] in ids
        for node in graph["nodes"]:
            assert node["comboId"] in ids


class TestStyles:

    def test_styles_follow_liveness(self):
        graph = marshal(LINKS, LIVENESS)

        nodes = nodes_by_label(graph)
        assert nodes["source"]["style"] == NODE_STYLES[(Liveness.NEW, False)]
        assert nodes["filter"]["style"] == NODE_STYLES[(Liveness.DEAD, False)]
        assert nodes["parser"]["style"] == NODE_STYLES[(Liveness.EXISTING, False)]
        assert nodes["decoder\ninput"]["style"] == NODE_STYLES[(Liveness.EXISTING, True)]

    def test_dead_wins_over_new(self):
        liveness = {"new": {f"{PIPELINE}/source"}, "dead": {f"{PIPELINE}/source"}, "existing": set()}

        graph = marshal([link(PIPELINE, "source", "filter")], liveness)

        assert nodes_by_label(graph)["source"]["style"] == {"fill": "#ff5559"}

    def test_unknown_element_gets_default_style(self, caplog):
        with caplog.at_level(logging.WARNING, logger="marshaller"):
            graph = marshal([link(PIPELINE, "source", "filter")], {"new": {f"{PIPELINE}/source"}})

        assert nodes_by_label(graph)["filter"]["style"] == DEFAULT_NODE_STYLE
        assert f"{PIPELINE}/filter has not been found" in caplog.text

    def test_missing_liveness_does_not_abort(self):
        graph = marshal([link(PIPELINE, "source", "filter")])

        assert all(node["style"] == {} for node in graph["nodes"])


def test_empty_links():
    assert marshal([], {}) == {"nodes": [], "edges": [], "combos": []}
