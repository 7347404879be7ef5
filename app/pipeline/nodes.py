from __future__ import annotations

from typing import Any

from app.contracts.schemas import CheckDetails, GuaranteeCheckResult
from app.pipeline.compiler import compile_issues
from app.pipeline.dag import DAG, Node
from app.pipeline.evaluators import CriteriaEvaluators
from app.pipeline.resolution import compose_citizen_message, resolve_status

EVALUATOR_NODES = (
    "document_validation",
    "service_availability",
    "backend_dependencies",
    "duplicate_check",
)


class PipelineNodes:
    def __init__(self, evaluators: CriteriaEvaluators) -> None:
        self.evaluators = evaluators

    def document_validation(self, ctx: dict[str, Any]) -> dict[str, Any]:
        return {"result": self.evaluators.validate_documents(ctx["request"], ctx["config"])}

    def service_availability(self, ctx: dict[str, Any]) -> dict[str, Any]:
        return {"result": self.evaluators.check_service_availability(ctx["request"], ctx["config"])}

    def backend_dependencies(self, ctx: dict[str, Any]) -> dict[str, Any]:
        return {"result": self.evaluators.check_backend_dependencies(ctx["request"], ctx["config"])}

    def duplicate_check(self, ctx: dict[str, Any]) -> dict[str, Any]:
        return {"result": self.evaluators.check_duplicates(ctx["request"], ctx["config"])}

    def compile(self, ctx: dict[str, Any]) -> dict[str, Any]:
        # Reason order follows evaluator order: document, service, dependency, duplicate.
        compiled = compile_issues(*(ctx[name]["result"] for name in EVALUATOR_NODES))
        return {
            "blocking_reasons": compiled.blocking_reasons,
            "backend_actions": compiled.backend_actions,
        }

    def resolve(self, ctx: dict[str, Any]) -> dict[str, Any]:
        compiled = ctx["compile"]
        return {"status": resolve_status(compiled["blocking_reasons"], compiled["backend_actions"])}

    def compose(self, ctx: dict[str, Any]) -> dict[str, Any]:
        compiled = ctx["compile"]
        status = ctx["resolve"]["status"]
        request = ctx["request"]
        result = GuaranteeCheckResult(
            guarantee_status=status,
            request_type=request.request_type,
            service_type=request.service_type,
            blocking_reasons=compiled["blocking_reasons"],
            backend_actions=compiled["backend_actions"],
            check_details=CheckDetails(
                document_validation=ctx["document_validation"]["result"],
                service_availability=ctx["service_availability"]["result"],
                backend_dependencies=ctx["backend_dependencies"]["result"],
                duplicate_check=ctx["duplicate_check"]["result"],
                timestamp=self.evaluators.clock(),
            ),
            citizen_message=compose_citizen_message(status, compiled["blocking_reasons"], compiled["backend_actions"]),
        )
        return {"result": result}


def build_guarantee_dag(nodes: PipelineNodes, max_workers: int = 4) -> DAG:
    return DAG(
        [
            Node("document_validation", nodes.document_validation, []),
            Node("service_availability", nodes.service_availability, []),
            Node("backend_dependencies", nodes.backend_dependencies, []),
            Node("duplicate_check", nodes.duplicate_check, []),
            Node("compile", nodes.compile, list(EVALUATOR_NODES)),
            Node("resolve", nodes.resolve, ["compile"]),
            Node("compose", nodes.compose, ["compile", "resolve"]),
        ],
        max_workers=max_workers,
    )
