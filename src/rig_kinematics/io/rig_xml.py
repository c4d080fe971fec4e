"""XML rig parser for building host joint trees from files.

A rig file nests `<node>` elements under a single `<rig>` element:

    <rig name="bear">
      <node name="Body" position="0 0 1">
        <node name="RJoint_Neck_XYZ_C" position="0 0.8 0.2">
          <node name="Effector_Head" position="0 0.4 0"/>
        </node>
      </node>
    </rig>

Every node accepts optional `position`, `rotation` (Euler XYZ, radians) and
`scale` attributes as three whitespace-separated numbers.
"""

import logging
from pathlib import Path
from typing import Set, Tuple, Union

from lxml import etree

from rig_kinematics.core.joint_tree import Node

logger = logging.getLogger(__name__)

_DEFAULTS = {
    "position": (0.0, 0.0, 0.0),
    "rotation": (0.0, 0.0, 0.0),
    "scale": (1.0, 1.0, 1.0),
}


def load_rig(rig_path: Union[str, Path]) -> Node:
    """Load a rig file and convert it to a Node tree.

    Args:
        rig_path: Path to the XML rig file to load.

    Returns:
        Node: Root of the joint tree, with world matrices propagated.
    """
    tree = etree.parse(str(rig_path))
    root = _build_tree(tree.getroot())
    logger.debug("Loaded rig %s with root %r", rig_path, root.name)
    return root


def parse_rig(xml: Union[str, bytes]) -> Node:
    """Parse an XML rig document held in memory.

    Args:
        xml: Rig document text.

    Returns:
        Node: Root of the joint tree, with world matrices propagated.
    """
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    return _build_tree(etree.fromstring(xml))


def _build_tree(rig_elem) -> Node:
    if rig_elem.tag != "rig":
        raise ValueError(f"Expected <rig> document element, found <{rig_elem.tag}>")

    # Find root node (the only top-level <node>)
    top_level = rig_elem.findall("node")
    if len(top_level) != 1:
        raise ValueError(f"Expected exactly one root node, found: {len(top_level)}")

    seen: Set[str] = set()
    root = _build_node(top_level[0], seen)
    root.update_matrix_world()
    return root


def _build_node(elem, seen: Set[str]) -> Node:
    name = elem.get("name")
    if not name:
        raise ValueError(f"<node> on line {elem.sourceline} has no name")
    if name in seen:
        raise ValueError(f"Duplicate node name: {name}")
    seen.add(name)

    node = Node(
        name,
        position=_parse_vec3(elem, "position"),
        rotation=_parse_vec3(elem, "rotation"),
        scale=_parse_vec3(elem, "scale"),
    )
    for child_elem in elem.findall("node"):
        node.add(_build_node(child_elem, seen))
    return node


def _parse_vec3(elem, attribute: str) -> Tuple[float, float, float]:
    """Read a 'x y z' attribute, falling back to the attribute's default."""
    text = elem.get(attribute)
    if text is None:
        return _DEFAULTS[attribute]
    try:
        values = tuple(float(v) for v in text.split())
    except ValueError:
        raise ValueError(f"Node '{elem.get('name')}': {attribute} is not numeric: {text!r}")
    if len(values) != 3:
        raise ValueError(f"Node '{elem.get('name')}': {attribute} needs 3 values, got {len(values)}")
    return values
