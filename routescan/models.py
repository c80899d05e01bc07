from pydantic import BaseModel, ConfigDict, Field, RootModel
from typing import Literal, Optional, Dict, Tuple

Method = Literal["GET", "POST", "PUT", "DELETE"]

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE")

# ---- Route model ----
class Route(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: Method = Field(..., description="HTTP method implemented by the handler")
    declaredType: str = Field(..., description="Rendered type signature of the handler declaration")
    returnType: str = Field(..., description="Inferred response payload type, or the unknown sentinel")
    documentation: Optional[str] = Field(None, description="Free text from adjacent doc comments")
    queryParameters: Tuple[str, ...] = Field(default_factory=tuple, description="Query parameter names in access order")
    bodyType: Optional[str] = Field(None, description="Request body type from the @body doc tag")
    urls: Tuple[str, ...] = Field(..., min_length=1, description="Expanded URL templates")
    path: str = Field(..., description="Canonical route path before expansion")


MethodTable = Dict[Method, Route]
RouteMap = Dict[str, MethodTable]


class RouteMapModel(RootModel[Dict[str, Dict[Method, Route]]]):
    """JSON envelope for a route map keyed by absolute file path."""
    pass
