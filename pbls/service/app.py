"""FastAPI application exposing the pbls query façade as JSON endpoints."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, List, Optional, TypeVar

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..config import ConfigError
from ..documents import DocumentNotOpenError
from ..models import (
    CompletionItem,
    Diagnostic,
    Location,
    Position,
    Range,
    Symbol,
    TextChange,
)
from ..workspace import Workspace

T = TypeVar("T")


class PositionModel(BaseModel):
    line: int
    character: int


class RangeModel(BaseModel):
    start: PositionModel
    end: PositionModel


class TextChangeModel(BaseModel):
    text: str
    range: Optional[RangeModel] = None


class OpenRequest(BaseModel):
    path: str
    text: str
    version: Optional[int] = None


class ChangeRequest(BaseModel):
    path: str
    text: Optional[str] = None
    version: Optional[int] = None
    changes: List[TextChangeModel] = []


class CloseRequest(BaseModel):
    path: str


class DocumentResponse(BaseModel):
    path: str
    accepted: bool
    version: Optional[int] = None


class PositionRequest(BaseModel):
    """A cursor given either as a character offset or a line/character position."""

    path: str
    offset: Optional[int] = None
    position: Optional[PositionModel] = None


class SymbolQuery(BaseModel):
    path: Optional[str] = None
    query: str = ""


class DiagnosticModel(BaseModel):
    path: str
    message: str
    severity: str
    source: str
    code: str
    range: Optional[RangeModel] = None


class DiagnosticsResponse(BaseModel):
    diagnostics: List[DiagnosticModel]


class LocationModel(BaseModel):
    path: str
    range: RangeModel


class LocationsResponse(BaseModel):
    locations: List[LocationModel]


class SymbolModel(BaseModel):
    name: str
    fqn: str
    kind: str
    path: str
    range: Optional[RangeModel] = None


class SymbolsResponse(BaseModel):
    symbols: List[SymbolModel]


class CompletionItemModel(BaseModel):
    label: str
    kind: str
    detail: Optional[str] = None
    insert_text: Optional[str] = None


class CompletionResponse(BaseModel):
    items: List[CompletionItemModel]


class HealthResponse(BaseModel):
    status: str
    root: str
    compiler: bool


def create_app(workspace_factory: Callable[[], Workspace]) -> FastAPI:
    """Create the FastAPI application around a single shared workspace."""

    workspace = workspace_factory()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            workspace.shutdown()

    app = FastAPI(title="pbls", version=__version__, lifespan=lifespan)
    app.state.workspace = workspace

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            root=str(workspace.root),
            compiler=workspace.pipeline.compiler_enabled,
        )

    @app.post("/documents/open", response_model=DocumentResponse)
    async def open_document(payload: OpenRequest) -> DocumentResponse:
        document = await _run(lambda: workspace.open_document(payload.path, payload.text, payload.version))
        return DocumentResponse(path=str(document.path), accepted=True, version=document.version)

    @app.post("/documents/change", response_model=DocumentResponse)
    async def change_document(payload: ChangeRequest) -> DocumentResponse:
        changes = [TextChange(text=change.text, range=_range(change.range)) for change in payload.changes]
        accepted = await _run(
            lambda: workspace.change_document(
                payload.path,
                payload.text,
                version=payload.version,
                changes=changes,
            )
        )
        document = workspace.documents.get(payload.path)
        return DocumentResponse(
            path=str(document.path) if document else payload.path,
            accepted=accepted,
            version=document.version if document else None,
        )

    @app.post("/documents/close", response_model=DocumentResponse)
    async def close_document(payload: CloseRequest) -> DocumentResponse:
        await _run(lambda: workspace.close_document(payload.path))
        return DocumentResponse(path=payload.path, accepted=True)

    @app.get("/diagnostics", response_model=DiagnosticsResponse)
    async def diagnostics(path: Optional[str] = None) -> DiagnosticsResponse:
        if path is None:
            found = workspace.workspace_diagnostics()
        else:
            found = await _run(lambda: workspace.get_diagnostics(path))
        return DiagnosticsResponse(diagnostics=[_diagnostic(item) for item in found])

    @app.post("/definition", response_model=LocationsResponse)
    async def definition(payload: PositionRequest) -> LocationsResponse:
        found = await _run(lambda: workspace.definition(payload.path, _cursor(payload)))
        return LocationsResponse(locations=[_location(item) for item in found])

    @app.post("/references", response_model=LocationsResponse)
    async def references(payload: PositionRequest) -> LocationsResponse:
        found = await _run(lambda: workspace.references(payload.path, _cursor(payload)))
        return LocationsResponse(locations=[_location(item) for item in found])

    @app.post("/completion", response_model=CompletionResponse)
    async def completion(payload: PositionRequest) -> CompletionResponse:
        found = await _run(lambda: workspace.completion(payload.path, _cursor(payload)))
        return CompletionResponse(items=[_completion(item) for item in found])

    @app.post("/symbols/document", response_model=SymbolsResponse)
    async def document_symbols(payload: SymbolQuery) -> SymbolsResponse:
        if payload.path is None:
            raise ValueError("path is required for document symbols")
        found = await _run(lambda: workspace.document_symbols(payload.path, payload.query))
        return SymbolsResponse(symbols=[_symbol(item) for item in found])

    @app.post("/symbols/workspace", response_model=SymbolsResponse)
    async def workspace_symbols(payload: SymbolQuery) -> SymbolsResponse:
        found = await _run(lambda: workspace.workspace_symbols(payload.query))
        return SymbolsResponse(symbols=[_symbol(item) for item in found])

    @app.exception_handler(DocumentNotOpenError)
    async def document_not_open_handler(_: Any, exc: DocumentNotOpenError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: Any, exc: ConfigError) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(_: Any, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "127.0.0.1", port: int = 8000, root: Path | str = "."
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app(lambda: Workspace(root))
    uvicorn.run(app, host=host, port=port)


# ----------------------------------------------------------------------
# Internals


async def _run(call: Callable[[], T]) -> T:
    # Workspace calls block on locks and disk.
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, call)


def _cursor(payload: PositionRequest) -> Position | int:
    if payload.position is not None:
        return Position(line=payload.position.line, character=payload.position.character)
    if payload.offset is not None:
        return payload.offset
    raise ValueError("either offset or position is required")


def _range(model: Optional[RangeModel]) -> Optional[Range]:
    if model is None:
        return None
    return Range(
        start=Position(line=model.start.line, character=model.start.character),
        end=Position(line=model.end.line, character=model.end.character),
    )


def _range_model(value: Optional[Range]) -> Optional[RangeModel]:
    if value is None:
        return None
    return RangeModel(
        start=PositionModel(line=value.start.line, character=value.start.character),
        end=PositionModel(line=value.end.line, character=value.end.character),
    )


def _diagnostic(item: Diagnostic) -> DiagnosticModel:
    return DiagnosticModel(
        path=str(item.path),
        message=item.message,
        severity=item.severity.value,
        source=item.source.value,
        code=item.code.value,
        range=_range_model(item.range),
    )


def _location(item: Location) -> LocationModel:
    return LocationModel(path=str(item.path), range=_range_model(item.range))


def _symbol(item: Symbol) -> SymbolModel:
    return SymbolModel(
        name=item.name,
        fqn=item.fqn,
        kind=item.kind.value,
        path=str(item.path),
        range=_range_model(item.selection_range or item.range),
    )


def _completion(item: CompletionItem) -> CompletionItemModel:
    return CompletionItemModel(
        label=item.label,
        kind=item.kind.value,
        detail=item.detail,
        insert_text=item.insert_text,
    )


__all__ = ["create_app", "run_service"]
