from fastapi import APIRouter, Depends, HTTPException

from ...config import CompilerSettings
from ...services.compiler import CompileRequest, compile_requirements
from ...services.pattern_library import PatternLibrary
from ..dependencies import get_pattern_library, get_settings

router = APIRouter(prefix="/blueprints")


@router.post("/compile")
def compile_blueprint(
    request: CompileRequest,
    library: PatternLibrary = Depends(get_pattern_library),
    settings: CompilerSettings = Depends(get_settings),
):
    """
    Compile signals + explicit constraints into a render-ready Blueprint.
    Returns the Blueprint (nodes, edges, metrics, warnings, summary) or
    structured diagnostics when compilation fails.
    """
    result = compile_requirements(library, request, settings=settings)

    if not result.success:
        raise HTTPException(
            status_code=422,
            detail={
                "message": "Compilation failed",
                "diagnostics": [d.model_dump(mode="json") for d in result.diagnostics],
            },
        )

    return {
        "blueprint": result.blueprint.to_output(),
        "spec": {
            **result.spec.model_dump(mode="json", exclude={"constraints"}),
            "patterns": result.spec.patterns,
            "constraints": result.spec.constraints.values(),
            "rl": result.spec.to_rl(),
        },
    }
