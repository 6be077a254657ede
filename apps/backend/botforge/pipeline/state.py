from typing import Annotated, Any, Optional, TypedDict
import operator


def overwrite(_: Any, updated: Any) -> Any:
    return updated


class RefineState(TypedDict, total=False):
    artifact: Annotated[str, overwrite]
    bot_id: str
    token: Optional[str]
    max_iterations: int
    iteration: Annotated[int, overwrite]
    valid: Annotated[bool, overwrite]
    version_id: Annotated[Optional[str], overwrite]
    errors: Annotated[list, overwrite]
    last_signatures: Annotated[Optional[list[str]], overwrite]
    stuck_count: Annotated[int, overwrite]
    fixes_applied: Annotated[list[str], operator.add]
    still_broken: Annotated[list[str], overwrite]
    warnings: Annotated[list[str], overwrite]


MAX_REFINE_ITERATIONS = 5
STUCK_LIMIT = 2
