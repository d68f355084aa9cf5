from fastapi import APIRouter, Depends, HTTPException

from ...errors import UnknownPatternError
from ...services.pattern_library import PatternLibrary
from ..dependencies import get_pattern_library

router = APIRouter(prefix="/patterns")


@router.get("")
def list_patterns(library: PatternLibrary = Depends(get_pattern_library)):
    return [
        {
            "id": template.id,
            "category": template.category,
            "inherits_from": sorted(template.inherits_from),
            "keywords": list(template.keywords),
        }
        for template in library.templates()
    ]


@router.get("/{pattern_id}")
def get_pattern(pattern_id: str, library: PatternLibrary = Depends(get_pattern_library)):
    """Template record plus its flattened (inherited) constraints."""
    try:
        template = library.get(pattern_id)
    except UnknownPatternError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())

    return {
        **template.model_dump(mode="json"),
        "ancestors": library.ancestors(pattern_id),
        "resolved_constraints": library.resolve(pattern_id),
    }
