from app.pipeline.compiler import compile_issues
from app.pipeline.evaluators import CriteriaEvaluators
from app.pipeline.nodes import PipelineNodes, build_guarantee_dag
from app.pipeline.resolution import compose_citizen_message, resolve_status

__all__ = [
    "CriteriaEvaluators",
    "PipelineNodes",
    "build_guarantee_dag",
    "compile_issues",
    "compose_citizen_message",
    "resolve_status",
]
