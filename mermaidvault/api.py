import logging

from aiohttp import web

from .constants import SQLITE_MAX_INTEGER
from .db import ConstraintError, MermaidVaultStore, NotFoundError, StoreError
from .utils import diagram_name_from_filename, json_dumps

logger = logging.getLogger("MermaidVault")


def _json_response(obj, status=200):
    return web.Response(
        status=status,
        text=json_dumps(obj),
        content_type="application/json",
    )


def _bad_request(msg):
    return _json_response({"error": msg}, status=400)


def _not_found(msg):
    return _json_response({"error": msg}, status=404)


def _parse_id(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 < value <= SQLITE_MAX_INTEGER else None
    text = str(value or "").strip()
    if not (text.isascii() and text.isdigit()) or len(text) > len(str(SQLITE_MAX_INTEGER)):
        return None
    number = int(text)
    return number if 0 < number <= SQLITE_MAX_INTEGER else None


def _path_id(request, key):
    # Ids are assigned from 1, so 0 matches no row and yields a 404.
    return _parse_id(request.match_info[key]) or 0


def _text_field(payload, key):
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        return None
    return value


def _description_field(payload):
    # Empty descriptions are stored as NULL.
    value = payload.get("description")
    if value is None or value == "":
        return None, None
    if not isinstance(value, str):
        return None, _bad_request("description must be a string")
    return value, None


async def _read_json_object(request):
    try:
        payload = await request.json()
    except ValueError:
        return None, _bad_request("Invalid JSON body")
    if not isinstance(payload, dict):
        return None, _bad_request("Request body must be a JSON object")
    return payload, None


def _download_name(name, ext):
    safe = "".join(ch for ch in name if ch not in '"\\/\r\n').strip() or "diagram"
    return f"{safe}.{ext}"


@web.middleware
async def _store_error_middleware(request, handler):
    try:
        return await handler(request)
    except StoreError as exc:
        logger.exception("Store failure on %s %s", request.method, request.path)
        return _json_response({"error": str(exc)}, status=500)


def setup_routes(app, store):
    routes = web.RouteTableDef()

    @routes.get("/api/health")
    async def health(_request):
        return _json_response({"status": "ok", "db_path": store.db_path})

    @routes.get("/api/collections")
    async def list_collections(_request):
        return _json_response(store.list_collections())

    @routes.get(r"/api/collections/{collection_id:[0-9]+}")
    async def get_collection(request):
        collection = store.get_collection(_path_id(request, "collection_id"))
        if collection is None:
            return _not_found("Collection not found")
        return _json_response(collection)

    @routes.post("/api/collections")
    async def create_collection(request):
        payload, error = await _read_json_object(request)
        if error:
            return error
        name = _text_field(payload, "name")
        if name is None:
            return _bad_request("Name is required")
        description, error = _description_field(payload)
        if error:
            return error
        collection = store.create_collection(name, description)
        return _json_response(collection, status=201)

    @routes.put(r"/api/collections/{collection_id:[0-9]+}")
    async def update_collection(request):
        payload, error = await _read_json_object(request)
        if error:
            return error
        name = _text_field(payload, "name")
        if name is None:
            return _bad_request("Name is required")
        description, error = _description_field(payload)
        if error:
            return error
        try:
            collection = store.update_collection(
                _path_id(request, "collection_id"), name, description
            )
        except NotFoundError:
            return _not_found("Collection not found")
        return _json_response(collection)

    @routes.delete(r"/api/collections/{collection_id:[0-9]+}")
    async def delete_collection(request):
        if not store.delete_collection(_path_id(request, "collection_id")):
            return _not_found("Collection not found")
        return _json_response({"success": True})

    @routes.get(r"/api/diagrams/collection/{collection_id:[0-9]+}")
    async def list_diagrams(request):
        return _json_response(
            store.list_diagrams_by_collection(_path_id(request, "collection_id"))
        )

    @routes.get(r"/api/diagrams/{diagram_id:[0-9]+}")
    async def get_diagram(request):
        diagram = store.get_diagram(_path_id(request, "diagram_id"))
        if diagram is None:
            return _not_found("Diagram not found")
        return _json_response(diagram)

    @routes.get(r"/api/diagrams/{diagram_id:[0-9]+}/source")
    async def download_diagram_source(request):
        diagram = store.get_diagram(_path_id(request, "diagram_id"))
        if diagram is None:
            return _not_found("Diagram not found")
        return web.Response(
            text=diagram["content"],
            content_type="text/plain",
            headers={
                "Content-Disposition": f'attachment; filename="{_download_name(diagram["name"], "mmd")}"'
            },
        )

    @routes.post("/api/diagrams")
    async def create_diagram(request):
        payload, error = await _read_json_object(request)
        if error:
            return error
        collection_id = _parse_id(payload.get("collection_id"))
        name = _text_field(payload, "name")
        content = _text_field(payload, "content")
        if collection_id is None or name is None or content is None:
            return _bad_request("collection_id, name, and content are required")
        try:
            diagram = store.create_diagram(collection_id, name, content)
        except ConstraintError as exc:
            return _bad_request(str(exc))
        return _json_response(diagram, status=201)

    @routes.put(r"/api/diagrams/{diagram_id:[0-9]+}")
    async def update_diagram(request):
        payload, error = await _read_json_object(request)
        if error:
            return error
        name = _text_field(payload, "name")
        content = payload.get("content")
        if name is None or not isinstance(content, str):
            return _bad_request("name and content are required")
        try:
            diagram = store.update_diagram(_path_id(request, "diagram_id"), name, content)
        except NotFoundError:
            return _not_found("Diagram not found")
        return _json_response(diagram)

    @routes.delete(r"/api/diagrams/{diagram_id:[0-9]+}")
    async def delete_diagram(request):
        if not store.delete_diagram(_path_id(request, "diagram_id")):
            return _not_found("Diagram not found")
        return _json_response({"success": True})

    @routes.post("/api/diagrams/upload")
    async def upload_diagram(request):
        if not (request.content_type or "").lower().startswith("multipart/"):
            return _bad_request("Expected a multipart upload")
        form = await request.post()
        upload = form.get("file")
        if not upload or not getattr(upload, "file", None):
            return _bad_request("No file uploaded")
        collection_id = _parse_id(form.get("collection_id"))
        if collection_id is None:
            return _bad_request("collection_id is required")
        try:
            content = upload.file.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            return _bad_request("Diagram file must be UTF-8 encoded")
        name = diagram_name_from_filename(getattr(upload, "filename", "")) or "Untitled diagram"
        try:
            diagram = store.create_diagram(collection_id, name, content)
        except ConstraintError as exc:
            return _bad_request(str(exc))
        logger.info("Uploaded diagram %r into collection id=%s", name, collection_id)
        return _json_response(diagram, status=201)

    app.add_routes(routes)


def create_app(store=None):
    app = web.Application(middlewares=[_store_error_middleware])
    setup_routes(app, store or MermaidVaultStore.get())
    return app
