"""OUTPUT steps: write the job graph to a triplestore."""

from __future__ import annotations

from rdfforge.pipeline.context import JobContext


async def graph_store_write(ctx: JobContext, params: dict) -> dict:
    graph_uri, mode = params["graphUri"], params["mode"]
    if ctx.dry_run:
        ctx.log(f"Dry run: would {mode} {len(ctx.graph)} triples in <{graph_uri}>")
        return {"dry_run": True, "graph_uri": graph_uri, "mode": mode, "triples": len(ctx.graph)}

    store = await ctx.resources.triplestores.get(params.get("triplestoreId"))
    written = await store.write_graph(graph_uri, ctx.graph, mode)
    ctx.output_graph = graph_uri
    ctx.log(f"Wrote {written} triples to <{graph_uri}> on '{store.name}' ({mode})")
    return {"triples_written": written, "graph_uri": graph_uri, "mode": mode, "triplestore": store.name}


HANDLERS = {
    "graph-store-write": graph_store_write,
}
