"""Workflow nodes for graph state machine."""

from mergebot.workflow.nodes.merge import Merge
from mergebot.workflow.nodes.notify import Notify
from mergebot.workflow.nodes.prepare import Prepare
from mergebot.workflow.nodes.publish import Publish
from mergebot.workflow.nodes.report import Report
from mergebot.workflow.nodes.resolve import ResolveSource
from mergebot.workflow.nodes.synchronize import Synchronize

__all__ = [
    "Prepare",
    "ResolveSource",
    "Synchronize",
    "Merge",
    "Publish",
    "Report",
    "Notify",
]
