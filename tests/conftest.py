from __future__ import annotations

import copy
from typing import Any, Dict

import pytest

OBJECT_INFO: Dict[str, Any] = {
    "LoadImage": {
        "input": {"required": {"image": [["a.png", "b.png"]]}},
        "output": ["IMAGE"],
        "output_name": ["IMAGE"],
        "category": "image",
    },
    "Blur": {
        "input": {"required": {"image": ["IMAGE"], "radius": ["INT", {"default": 1, "min": 0, "max": 10}]}},
        "output": ["IMAGE"],
        "category": "image/filters",
    },
    "SaveImage": {
        "input": {"required": {"images": ["IMAGE"], "filename_prefix": ["STRING", {"default": "out"}]}},
        "output": [],
        "category": "image",
    },
    "KSampler": {
        "input": {
            "required": {
                "model": ["MODEL"],
                "seed": ["INT", {"default": 0, "min": 0, "max": 100}],
                "sampler_name": [["euler", "ddim"]],
            }
        },
        "output": ["LATENT"],
        "category": "sampling",
    },
    "ControlNetLoader": {
        "input": {"required": {"control_net_name": [["cn.safetensors"]]}},
        "output": ["CONTROL_NET"],
        "category": "loaders",
    },
}


def _image_out(links, slot_index: int = 0) -> Dict[str, Any]:
    return {"name": "IMAGE", "type": "IMAGE", "links": list(links), "slot_index": slot_index}


@pytest.fixture
def registry():
    from promptgraph import OperationRegistry

    return OperationRegistry.from_object_info(copy.deepcopy(OBJECT_INFO))


@pytest.fixture
def chain_document() -> Dict[str, Any]:
    """Legacy (flow-less) LoadImage -> Blur -> SaveImage document."""
    return {
        "last_node_id": 3,
        "last_link_id": 2,
        "nodes": [
            {
                "id": 1,
                "type": "LoadImage",
                "mode": 0,
                "pos": [10, 10],
                "outputs": [_image_out([1])],
                "widgets_values": ["a.png"],
            },
            {
                "id": 2,
                "type": "Blur",
                "mode": 0,
                "inputs": [{"name": "image", "type": "IMAGE", "link": 1}],
                "outputs": [_image_out([2])],
                "widgets_values": [3],
            },
            {
                "id": 3,
                "type": "SaveImage",
                "mode": 0,
                "inputs": [{"name": "images", "type": "IMAGE", "link": 2}],
                "outputs": [],
                "widgets_values": ["out"],
            },
        ],
        "links": [[1, 1, 0, 2, 0, "IMAGE"], [2, 2, 0, 3, 0, "IMAGE"]],
        "groups": [],
        "extra": {},
        "version": 0.4,
    }


@pytest.fixture
def pair_group_config() -> Dict[str, Any]:
    """Group of two chained Blur nodes (runtime form, FLOW slots first)."""

    def blur(index: int, radius: int) -> Dict[str, Any]:
        return {
            "id": index,
            "type": "Blur",
            "mode": 0,
            "inputs": [
                {"name": "FROM", "type": "FLOW", "link": None},
                {"name": "image", "type": "IMAGE", "link": None},
            ],
            "outputs": [
                {"name": "TO", "type": "FLOW", "links": []},
                {"name": "IMAGE", "type": "IMAGE", "links": [], "slot_index": 1},
            ],
            "widgets_values": [radius],
        }

    return {
        "nodes": [blur(0, 2), blur(1, 4)],
        "links": [[0, 1, 1, 1, 0, "IMAGE"], [0, 0, 1, 0, 0, "FLOW"]],
    }


@pytest.fixture
def group_document(pair_group_config) -> Dict[str, Any]:
    """Legacy document: LoadImage -> workflow/pair -> SaveImage."""
    return {
        "last_node_id": 3,
        "last_link_id": 2,
        "nodes": [
            {"id": 1, "type": "LoadImage", "mode": 0, "outputs": [_image_out([1])], "widgets_values": ["b.png"]},
            {
                "id": 2,
                "type": "workflow/pair",
                "mode": 0,
                "inputs": [{"name": "0:image", "type": "IMAGE", "link": 1}],
                "outputs": [{"name": "1:IMAGE", "type": "IMAGE", "links": [2], "slot_index": 0}],
                "widgets_values": [7, 9],
            },
            {
                "id": 3,
                "type": "SaveImage",
                "mode": 0,
                "inputs": [{"name": "images", "type": "IMAGE", "link": 2}],
                "outputs": [],
                "widgets_values": ["grouped"],
            },
        ],
        "links": [[1, 1, 0, 2, 0, "IMAGE"], [2, 2, 0, 3, 0, "IMAGE"]],
        "groups": [],
        "extra": {"groupNodes": {"pair": pair_group_config}},
        "version": 0.4,
    }
