"""Triplestore connection API endpoints."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.api.deps import get_runtime, get_session
from rdfforge.daemon.runtime import ForgeRuntime
from rdfforge.schemas.triplestore import (
    GraphListResponse, HealthResponse, ResourceResponse, SparqlRequest, SparqlResponse,
    TriplestoreCreate, TriplestoreListResponse, TriplestoreResponse,
)
from rdfforge.services.triplestore_service import TriplestoreService

router = APIRouter(prefix="/triplestores", tags=["triplestores"])


@router.get("", response_model=TriplestoreListResponse)
async def list_triplestores(
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    connections = await TriplestoreService(session, runtime.triplestores).list_all()
    return TriplestoreListResponse(triplestores=connections, total=len(connections))


@router.post("", response_model=TriplestoreResponse, status_code=201)
async def create_triplestore(
    data: TriplestoreCreate,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await TriplestoreService(session, runtime.triplestores).create(**data.model_dump())


@router.delete("/{triplestore_id}", status_code=204)
async def delete_triplestore(
    triplestore_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    await TriplestoreService(session, runtime.triplestores).delete(triplestore_id)
    return Response(status_code=204)


@router.get("/{triplestore_id}/health", response_model=HealthResponse)
async def triplestore_health(
    triplestore_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await TriplestoreService(session, runtime.triplestores).health(triplestore_id)


@router.get("/{triplestore_id}/graphs", response_model=GraphListResponse)
async def list_graphs(
    triplestore_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    graphs = await TriplestoreService(session, runtime.triplestores).graphs(triplestore_id)
    return GraphListResponse(graphs=graphs, total=len(graphs))


@router.post("/{triplestore_id}/sparql", response_model=SparqlResponse)
async def run_sparql(
    triplestore_id: str,
    data: SparqlRequest,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await TriplestoreService(session, runtime.triplestores).sparql(triplestore_id, data.query, data.graph_uri)


@router.get("/{triplestore_id}/resource", response_model=ResourceResponse)
async def describe_resource(
    triplestore_id: str,
    uri: str,
    graph: str | None = None,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    """Outgoing properties of one resource, optionally restricted to a named graph."""
    return await TriplestoreService(session, runtime.triplestores).resource(triplestore_id, uri, graph)
