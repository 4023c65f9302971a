"""Media nodes fed by the finish-pulse bridge."""

from __future__ import annotations

from typing import Any

from fleetgraph.definitions import NodeDefinition, ProcessContext, port
from fleetgraph.nodes.utils import coerce_boolean

MEDIA_FINISH_NODE_TYPE = "media-finish"


def _media_finish(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del config
    if coerce_boolean(inputs.get("reset")):
        # Drain so an end reported before the reset does not leak into the next run.
        ctx.consume_finish_pulse()
        return {"finished": False}
    return {"finished": ctx.consume_finish_pulse()}


def create_media_finish_node() -> NodeDefinition:
    """One-tick ``finished`` pulse per end reported by the playback collaborator.

    This is the one built-in whose output depends on state kept outside the
    graph: the bridge entry keyed by this node's id.
    """
    return NodeDefinition(
        type=MEDIA_FINISH_NODE_TYPE,
        label="Media Finish",
        category="Player",
        inputs=[port("reset", "Reset", "boolean", default=False)],
        outputs=[port("finished", "Finish", "boolean")],
        compute=_media_finish,
    )
