"""Graph workflow definition."""

from pydantic_graph import Graph

from mergebot.core.config import State
from mergebot.core.log import logger


def create_workflow():
    """Create the merge workflow graph.

    Prepare → ResolveSource → Synchronize → Merge → Publish →
        Report → Notify → End

    Returns:
        Graph workflow with State as state_type
    """
    logger.debug("Building workflow graph")

    # Import nodes (lazy to avoid circular imports)
    from mergebot.workflow.nodes.merge import Merge
    from mergebot.workflow.nodes.notify import Notify
    from mergebot.workflow.nodes.prepare import Prepare
    from mergebot.workflow.nodes.publish import Publish
    from mergebot.workflow.nodes.report import Report
    from mergebot.workflow.nodes.resolve import ResolveSource
    from mergebot.workflow.nodes.synchronize import Synchronize

    workflow = Graph(
        nodes=(
            Prepare,
            ResolveSource,
            Synchronize,
            Merge,
            Publish,
            Report,
            Notify,
        ),
        state_type=State
    )

    return workflow
