from src.mailflow.workflow.conditions import evaluate_condition
from src.mailflow.workflow.engine import WorkflowEngine
from src.mailflow.workflow.executor import StepExecutor
from src.mailflow.workflow.graph import GraphCache, load_graph, resolve_next
from src.mailflow.workflow.personalization import personalize
from src.mailflow.workflow.timeline import build_timeline

__all__ = [
    "GraphCache",
    "StepExecutor",
    "WorkflowEngine",
    "build_timeline",
    "evaluate_condition",
    "load_graph",
    "personalize",
    "resolve_next",
]
