"""Tests for data source uploads, previews and format handling."""

import pytest

from rdfforge.data.formats import (
    analyze_table, cast_value, detect_encoding, detect_format, infer_column_type, read_csv_text, read_json_text,
)
from rdfforge.core.errors import InputValidationError

PEOPLE_TTL = """
@prefix schema: <http://schema.org/> .
@prefix ex: <https://example.org/> .
ex:alice a schema:Person ; schema:name "Alice" .
"""


async def _upload(client, filename: str, content: bytes | str, media_type: str = "text/csv", **form):
    if isinstance(content, str):
        content = content.encode("utf-8")
    return await client.post(
        "/api/v1/data/upload",
        files={"file": (filename, content, media_type)},
        data={k: str(v) for k, v in form.items()},
    )


class TestFormatDetection:
    def test_extension_wins(self):
        result = detect_format("people.ttl", PEOPLE_TTL.encode())
        assert result == {"format": "turtle", "encoding": "utf-8", "delimiter": None, "confidence": 0.9}

    def test_content_sniffing(self):
        assert detect_format("blob", b"@prefix ex: <https://example.org/> .")["format"] == "turtle"
        assert detect_format("blob", b'{"@context": {}, "@id": "x"}')["format"] == "jsonld"
        assert detect_format("blob", b'[{"a": 1}]')["format"] == "json"
        assert detect_format("blob", b"<https://a> <https://b> <https://c> .\n")["format"] == "ntriples"

    def test_delimiters(self):
        semicolons = b"a;b;c\n1;2;3\n4;5;6\n7;8;9\n"
        assert detect_format("values.csv", semicolons)["delimiter"] == ";"
        tabs = b"a\tb\tc\n1\t2\t3\n4\t5\t6\n7\t8\t9\n"
        assert detect_format("values.csv", tabs)["format"] == "tsv"

    def test_encodings(self):
        assert detect_encoding(b"\xef\xbb\xbfa,b\n") == "utf-8-sig"
        assert detect_encoding("café,b\n".encode("utf-8")) == "utf-8"
        assert detect_encoding("café,b\n1,2\n".encode("latin-1")) == "latin-1"


class TestReaders:
    def test_duplicate_and_blank_headers(self):
        result = read_csv_text("a,a,\n1,2,3\n")
        assert result.table.columns == ["a", "a_2", "column_3"]

    def test_width_mismatch_is_reported(self):
        result = read_csv_text("a,b\n1,2\n3\n4,5,6\n7,8\n")
        assert len(result.table) == 2
        assert [e.row for e in result.errors] == [2, 3]
        assert result.error_rate == 0.5

    def test_blank_lines_are_skipped(self):
        assert len(read_csv_text("a,b\n\n1,2\n,\n").table) == 1

    def test_json_records(self):
        result = read_json_text('{"data": {"items": [{"a": 1}, {"b": 2}, 3]}}', "data.items")
        assert result.table.columns == ["a", "b"]
        assert len(result.table) == 2
        assert len(result.errors) == 1

    def test_json_missing_path(self):
        with pytest.raises(InputValidationError):
            read_json_text('{"data": []}', "items")


class TestAnalysis:
    def test_column_types(self):
        assert infer_column_type(["1", "2", ""]) == "integer"
        assert infer_column_type(["1", "2.5"]) == "decimal"
        assert infer_column_type(["2024-01-01", "2024-01-01T10:00:00"]) == "datetime"
        assert infer_column_type(["true", "false"]) == "boolean"
        assert infer_column_type(["1", "x"]) == "string"
        assert infer_column_type([]) == "string"

    def test_analyze_table(self):
        table = read_csv_text("city,population\nBern,130000\nBasel,\nBern,130000\n").table
        city, population = analyze_table(table)
        assert city == {
            "name": "city",
            "type": "string",
            "nullable": False,
            "null_count": 0,
            "unique_count": 2,
            "sample_values": ["Bern", "Basel"],
        }
        assert population["type"] == "integer"
        assert population["nullable"] is True
        assert population["null_count"] == 1

    def test_cast_value(self):
        assert cast_value(" 42 ", "integer") == 42
        assert cast_value("", "integer") is None
        assert cast_value("yes", "boolean") is True
        assert str(cast_value("1.50", "decimal")) == "1.50"
        assert cast_value("2024-02-29", "date").day == 29
        with pytest.raises(ValueError):
            cast_value("4.2", "integer")
        with pytest.raises(ValueError):
            cast_value("maybe", "boolean")


class TestDataSourceAPI:
    @pytest.mark.asyncio
    async def test_upload_analyzes_columns(self, idle_client, sales_csv):
        resp = await _upload(idle_client, "sales.csv", sales_csv, name="sales", uploaded_by="alice")
        assert resp.status_code == 201, resp.text
        source = resp.json()
        assert source["name"] == "sales"
        assert source["format"] == "csv"
        assert source["delimiter"] == ","
        assert source["encoding"] == "utf-8"
        assert source["row_count"] == 100
        assert source["column_count"] == 3
        assert source["uploaded_by"] == "alice"
        assert source["analyzed_at"] is not None
        types = {c["name"]: c["type"] for c in source["schema"]}
        assert types == {"region": "string", "year": "integer", "value": "decimal"}

    @pytest.mark.asyncio
    async def test_name_defaults_to_file_stem(self, idle_client):
        resp = await _upload(idle_client, "cities.csv", "city\nBern\n", analyze=False)
        assert resp.json()["name"] == "cities"
        assert resp.json()["row_count"] is None
        assert resp.json()["schema"] is None

    @pytest.mark.asyncio
    async def test_empty_upload(self, idle_client):
        resp = await _upload(idle_client, "empty.csv", b"")
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_rdf_upload(self, idle_client):
        resp = await _upload(idle_client, "people.ttl", PEOPLE_TTL, media_type="text/turtle")
        source = resp.json()
        assert source["format"] == "turtle"
        assert source["row_count"] == 2

        preview = (await idle_client.get(f"/api/v1/data/{source['id']}/preview")).json()
        assert preview["columns"] == ["subject", "predicate", "object"]

        download = await idle_client.get(f"/api/v1/data/{source['id']}/download")
        assert download.headers["content-type"].startswith("text/turtle")

    @pytest.mark.asyncio
    async def test_unparseable_upload_is_kept(self, idle_client):
        resp = await _upload(idle_client, "broken.ttl", "this is not turtle", media_type="text/turtle")
        assert resp.status_code == 201
        assert resp.json()["row_count"] is None

        preview = await idle_client.get(f"/api/v1/data/{resp.json()['id']}/preview")
        assert preview.status_code == 422

    @pytest.mark.asyncio
    async def test_preview_pages(self, idle_client, sales_csv):
        source = (await _upload(idle_client, "sales.csv", sales_csv)).json()
        resp = await idle_client.get(f"/api/v1/data/{source['id']}/preview", params={"rows": 2, "offset": 10})
        assert resp.status_code == 200
        preview = resp.json()
        assert preview["columns"] == ["region", "year", "value"]
        assert preview["total_rows"] == 100
        assert preview["data"] == [
            {"region": "r0", "year": "2001", "value": "10.5"},
            {"region": "r1", "year": "2001", "value": "11.5"},
        ]
        assert len(preview["schema"]) == 3

    @pytest.mark.asyncio
    async def test_list_and_filter(self, idle_client, sales_csv):
        await _upload(idle_client, "sales.csv", sales_csv)
        await _upload(idle_client, "people.ttl", PEOPLE_TTL, media_type="text/turtle")

        listing = (await idle_client.get("/api/v1/data")).json()
        assert listing["total"] == 2
        resp = await idle_client.get("/api/v1/data", params={"format": "turtle"})
        assert [s["name"] for s in resp.json()["data_sources"]] == ["people"]

    @pytest.mark.asyncio
    async def test_download_and_delete(self, idle_client, sales_csv):
        source = (await _upload(idle_client, "sales.csv", sales_csv)).json()

        download = await idle_client.get(f"/api/v1/data/{source['id']}/download")
        assert download.status_code == 200
        assert download.text == sales_csv
        assert 'filename="sales.csv"' in download.headers["content-disposition"]

        assert (await idle_client.delete(f"/api/v1/data/{source['id']}")).status_code == 204
        assert (await idle_client.get(f"/api/v1/data/{source['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_reanalyze(self, idle_client, sales_csv):
        source = (await _upload(idle_client, "sales.csv", sales_csv, analyze=False)).json()
        resp = await idle_client.post(f"/api/v1/data/{source['id']}/analyze")
        assert resp.status_code == 200
        assert resp.json()["row_count"] == 100
        assert resp.json()["row_errors"] == 0
        assert (await idle_client.get(f"/api/v1/data/{source['id']}")).json()["column_count"] == 3

    @pytest.mark.asyncio
    async def test_detect_format_endpoint(self, idle_client):
        resp = await idle_client.post(
            "/api/v1/data/detect-format",
            files={"file": ("values.txt", b"a;b;c\n1;2;3\n4;5;6\n", "text/plain")},
        )
        assert resp.status_code == 200
        assert resp.json()["format"] == "csv"
        assert resp.json()["delimiter"] == ";"
        assert resp.json()["confidence"] == 0.5

    @pytest.mark.asyncio
    async def test_unknown_source(self, idle_client):
        resp = await idle_client.get("/api/v1/data/missing")
        assert resp.status_code == 404
        assert resp.json()["kind"] == "not_found"


class TestDataSourceInPipeline:
    @pytest.mark.asyncio
    async def test_load_uploaded_csv(self, client, deploy, cube_steps, write_step, wait_for_job, sales_csv):
        source = (await _upload(client, "sales.csv", sales_csv)).json()
        steps = cube_steps()
        steps[0]["params"] = {"dataSourceId": source["id"]}
        await deploy(client, "sales", steps + [write_step()])

        job = (await client.post("/api/v1/jobs", json={"pipeline_id": "sales"})).json()
        done = await wait_for_job(job["id"])
        assert done.status == "completed", done.error_message
        assert done.rows_processed == 100

    @pytest.mark.asyncio
    async def test_wrong_source_format_rejects_job(self, client, deploy, cube_steps):
        source = (await _upload(client, "people.ttl", PEOPLE_TTL, media_type="text/turtle")).json()
        steps = cube_steps()
        steps[0]["params"] = {"dataSourceId": source["id"]}
        await deploy(client, "sales", steps)

        resp = await client.post("/api/v1/jobs", json={"pipeline_id": "sales"})
        assert resp.status_code == 422
        errors = resp.json()["details"]["errors"]
        assert errors == [{
            "path": "steps.load.params.dataSourceId",
            "message": f"'load-csv' cannot read turtle data source '{source['name']}'",
        }]
        assert (await client.get("/api/v1/jobs")).json()["total"] == 0
