"""
API Routes for the Prompt Library

This module provides a local JSON API over a Library session so that a web
front end can browse and edit prompts and folders. Every response uses the
same envelope: ``{"success", "message", "data", "errors"}``.
"""

import argparse
import json
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from .config import configure_logging, load_config
from .core.errors import (
    FolderDeletionError,
    FolderNameConflictError,
    FolderNotFoundError,
    IntegrityError,
    InvalidSnapshotError,
    LibraryValidationError,
    StaleVersionError,
    StorageError,
)
from .core.library import Library
from .core.query import ALL_PROMPTS, PROMPTS_PER_PAGE, PromptQuery, SortOption
from .core.storage import create_store
from .core.templates import extract_variables, fill_template
from .core.versions import PromptContent

logger = logging.getLogger(__name__)

LIBRARY_KEY = web.AppKey("library", Library)
PAGE_SIZE_KEY = web.AppKey("page_size", int)

ROUTE_PREFIX = "/prompt_library"


def validate_request_json(request_data: Any) -> tuple[bool, Optional[str], Optional[list[str]]]:
    """
    Validate basic request JSON structure.

    Returns:
        Tuple of (is_valid, error_message, error_details)
    """
    if not isinstance(request_data, dict):
        return False, "Request body must be a JSON object", ["Invalid data format"]

    return True, None, None


def validate_name_field(data: Dict[str, Any], field_name: str = "name") -> tuple[bool, Optional[str], Optional[list[str]]]:
    """
    Validate a required name-like field in request data.

    Returns:
        Tuple of (is_valid, error_message, error_details)
    """
    if field_name not in data or not data[field_name]:
        return False, f"Missing required field: {field_name}", [f"Field '{field_name}' is required"]

    if not isinstance(data[field_name], str):
        return False, "Invalid name", [f"Field '{field_name}' must be a string"]

    name = data[field_name].strip()
    if not name or len(name) > 255:
        return False, "Invalid name", ["Name must be between 1 and 255 characters"]

    return True, None, None


def create_success_response(message: str, data: Any, status: int = 200) -> web.Response:
    return web.json_response({
        "success": True,
        "message": message,
        "data": data,
        "errors": []
    }, status=status)


def create_error_response(message: str, errors: list[str], status: int = 400) -> web.Response:
    return web.json_response({
        "success": False,
        "message": message,
        "errors": errors
    }, status=status)


def error_response_for(action: str, error: Exception) -> web.Response:
    """
    Map a library exception onto an HTTP error response.

    Validation errors are the caller's to fix (4xx). Integrity and storage
    errors mean the dataset must be reloaded (500).
    """
    if isinstance(error, FolderNotFoundError):
        return create_error_response(f"Failed to {action}: not found", [str(error)], status=404)
    if isinstance(error, FolderNameConflictError):
        return create_error_response(f"Failed to {action}: name conflict", [str(error)], status=409)
    if isinstance(error, StaleVersionError):
        return create_error_response(f"Failed to {action}: outdated version", [str(error)], status=409)
    if isinstance(error, FolderDeletionError):
        return create_error_response(f"Failed to {action}", [str(error)], status=409)
    if isinstance(error, InvalidSnapshotError):
        return create_error_response(f"Failed to {action}: {error}", error.errors or [str(error)], status=400)
    if isinstance(error, LibraryValidationError):
        return create_error_response(f"Failed to {action}", [str(error)], status=400)
    if isinstance(error, IntegrityError):
        logger.error(f"Integrity error while trying to {action}: {error}")
        return create_error_response(f"Failed to {action}; reload required", [str(error)], status=500)

    logger.error(f"Server error while trying to {action}: {error}")
    return create_error_response(f"Failed to {action}", ["An unexpected error occurred"], status=500)


async def read_json_body(request: web.Request, required: bool = True):
    """
    Read and validate a JSON object body.

    Returns:
        Tuple of (data, error_response); exactly one of them is None
    """
    if not required and not request.can_read_body:
        return {}, None
    try:
        data = await request.json()
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in request to {request.path}: {e}")
        return None, create_error_response("Invalid JSON format", [str(e)], status=400)

    is_valid, message, errors = validate_request_json(data)
    if not is_valid:
        return None, create_error_response(message or "Validation error", errors or [], status=400)
    return data, None


def parse_prompt_content(data: Dict[str, Any]) -> tuple[Optional[PromptContent], Optional[web.Response]]:
    is_valid, message, errors = validate_name_field(data, "title")
    if not is_valid:
        return None, create_error_response(message or "Validation error", errors or [], status=400)

    tags = data.get("tags", [])
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        return None, create_error_response("Invalid tags", ["Field 'tags' must be a list of strings"], status=400)

    for field_name in ("description", "promptText", "folderId"):
        value = data.get(field_name)
        if value is not None and not isinstance(value, str):
            return None, create_error_response("Validation error", [f"Field '{field_name}' must be a string"], status=400)

    return PromptContent(
        title=data["title"].strip(),
        description=data.get("description") or "",
        text=data.get("promptText") or "",
        tags=[tag.strip() for tag in tags if tag.strip()],
        folder_id=data.get("folderId"),
    ), None


def _library(request: web.Request) -> Library:
    return request.app[LIBRARY_KEY]


# Prompt handlers

async def get_prompts(request: web.Request) -> web.Response:
    """List the latest version of each prompt, filtered, sorted and paginated."""
    params = request.query
    try:
        query = PromptQuery(
            folder_id=params.get("folder", ALL_PROMPTS),
            search=params.get("search", ""),
            tag=params.get("tag") or None,
            sort=SortOption(params.get("sort", SortOption.RECENTLY_USED.value)),
            page=int(params.get("page", 1)),
            page_size=request.app.get(PAGE_SIZE_KEY, PROMPTS_PER_PAGE),
        )
    except ValueError as e:
        return create_error_response("Invalid query parameters", [str(e)], status=400)

    try:
        library = _library(request)
        page = library.query(query)
        counts = library.version_counts()
        data = page.to_dict()
        data["version_counts"] = {item.original_id: counts.get(item.original_id, 1) for item in page.items}
        return create_success_response("Prompts retrieved successfully", data)
    except (StorageError, LibraryValidationError) as e:
        return error_response_for("retrieve prompts", e)


async def create_prompt(request: web.Request) -> web.Response:
    data, error = await read_json_body(request)
    if error is not None:
        return error
    content, error = parse_prompt_content(data)
    if error is not None:
        return error

    try:
        prompt = _library(request).create_prompt(content)
        return create_success_response("Prompt created successfully", prompt.to_dict())
    except (StorageError, IntegrityError, LibraryValidationError) as e:
        return error_response_for("create prompt", e)


async def create_prompt_version(request: web.Request) -> web.Response:
    original_id = request.match_info.get("original_id")
    data, error = await read_json_body(request)
    if error is not None:
        return error
    content, error = parse_prompt_content(data)
    if error is not None:
        return error

    try:
        library = _library(request)
        previous = library.versions.get_latest(original_id)
        if previous is None:
            return create_error_response("Prompt not found", [f"No prompt with id '{original_id}'"], status=404)
        prompt = library.create_version(content, previous)
        return create_success_response("Prompt version saved successfully", prompt.to_dict())
    except (StorageError, IntegrityError, LibraryValidationError) as e:
        return error_response_for("save prompt version", e)


async def use_prompt(request: web.Request) -> web.Response:
    """
    Record one use of a prompt. If ``values`` are supplied, the prompt text is
    returned with its template variables filled in.
    """
    original_id = request.match_info.get("original_id")
    data, error = await read_json_body(request, required=False)
    if error is not None:
        return error
    values = data.get("values") or {}
    if not isinstance(values, dict):
        return create_error_response("Validation error", ["Field 'values' must be an object"], status=400)

    try:
        library = _library(request)
        latest = library.versions.get_latest(original_id)
        if latest is None:
            return create_error_response("Prompt not found", [f"No prompt with id '{original_id}'"], status=404)
        updated = library.record_usage(latest)
        return create_success_response("Prompt usage recorded", {
            "prompt": updated.to_dict(),
            "variables": extract_variables(updated.text),
            "text": fill_template(updated.text, values),
        })
    except (StorageError, IntegrityError) as e:
        return error_response_for("record prompt usage", e)


async def get_prompt_history(request: web.Request) -> web.Response:
    original_id = request.match_info.get("original_id")
    try:
        versions = _library(request).get_history(original_id)
    except StorageError as e:
        return error_response_for("retrieve prompt history", e)
    if not versions:
        return create_error_response("Prompt not found", [f"No prompt with id '{original_id}'"], status=404)
    return create_success_response("Prompt history retrieved successfully",
                                   [version.to_dict() for version in versions])


async def delete_prompt(request: web.Request) -> web.Response:
    original_id = request.match_info.get("original_id")
    try:
        deleted = _library(request).delete_prompt(original_id)
    except (StorageError, IntegrityError) as e:
        return error_response_for("delete prompt", e)
    if not deleted:
        return create_error_response("Prompt not found", [f"No prompt with id '{original_id}'"], status=404)
    return create_success_response(f"Prompt and its {deleted} versions deleted successfully",
                                   {"deleted": deleted})


async def get_tags(request: web.Request) -> web.Response:
    try:
        return create_success_response("Tags retrieved successfully", _library(request).tags())
    except StorageError as e:
        return error_response_for("retrieve tags", e)


# Folder handlers

async def get_folders(request: web.Request) -> web.Response:
    try:
        library = _library(request)
        default_folder = library.folders.ensure_default_folder()
        return create_success_response("Folders retrieved successfully", {
            "default_folder_id": default_folder.id,
            "tree": [node.to_dict() for node in library.folder_tree()],
            "flat": [folder.to_dict() for folder in library.flat_folders()],
        })
    except (StorageError, LibraryValidationError) as e:
        return error_response_for("retrieve folders", e)


async def create_folder(request: web.Request) -> web.Response:
    data, error = await read_json_body(request)
    if error is not None:
        return error
    is_valid, message, errors = validate_name_field(data)
    if not is_valid:
        return create_error_response(message or "Validation error", errors or [], status=400)

    try:
        folder = _library(request).create_folder(data["name"], data.get("parentId"))
        return create_success_response("Folder created successfully", folder.to_dict())
    except (StorageError, LibraryValidationError) as e:
        return error_response_for("create folder", e)


async def rename_folder(request: web.Request) -> web.Response:
    folder_id = request.match_info.get("folder_id")
    data, error = await read_json_body(request)
    if error is not None:
        return error
    is_valid, message, errors = validate_name_field(data)
    if not is_valid:
        return create_error_response(message or "Validation error", errors or [], status=400)

    try:
        folder = _library(request).rename_folder(folder_id, data["name"])
        return create_success_response("Folder renamed successfully", folder.to_dict())
    except (StorageError, LibraryValidationError) as e:
        return error_response_for("rename folder", e)


async def delete_folder(request: web.Request) -> web.Response:
    folder_id = request.match_info.get("folder_id")
    try:
        _library(request).delete_folder(folder_id)
        return create_success_response("Folder deleted successfully", {"id": folder_id})
    except (StorageError, LibraryValidationError) as e:
        return error_response_for("delete folder", e)


# Dataset handlers

async def export_data(request: web.Request) -> web.Response:
    try:
        return create_success_response("Data exported successfully", _library(request).export_all())
    except StorageError as e:
        return error_response_for("export data", e)


async def import_data(request: web.Request) -> web.Response:
    try:
        snapshot = await request.json()
    except json.JSONDecodeError as e:
        return create_error_response("Invalid JSON format", [str(e)], status=400)

    try:
        state = _library(request).import_all(snapshot)
    except (StorageError, IntegrityError, LibraryValidationError) as e:
        return error_response_for("import data", e)
    return create_success_response("Data imported successfully", {
        "prompts": len(state.prompts),
        "folders": len(state.folders),
        "default_folder_id": state.default_folder_id,
    })


def setup_routes(app: web.Application) -> None:
    app.router.add_get(f"{ROUTE_PREFIX}/prompts", get_prompts)
    app.router.add_post(f"{ROUTE_PREFIX}/prompts", create_prompt)
    app.router.add_post(f"{ROUTE_PREFIX}/prompts/{{original_id}}/versions", create_prompt_version)
    app.router.add_post(f"{ROUTE_PREFIX}/prompts/{{original_id}}/usage", use_prompt)
    app.router.add_get(f"{ROUTE_PREFIX}/prompts/{{original_id}}/history", get_prompt_history)
    app.router.add_delete(f"{ROUTE_PREFIX}/prompts/{{original_id}}", delete_prompt)
    app.router.add_get(f"{ROUTE_PREFIX}/tags", get_tags)
    app.router.add_get(f"{ROUTE_PREFIX}/folders", get_folders)
    app.router.add_post(f"{ROUTE_PREFIX}/folders", create_folder)
    app.router.add_put(f"{ROUTE_PREFIX}/folders/{{folder_id}}", rename_folder)
    app.router.add_delete(f"{ROUTE_PREFIX}/folders/{{folder_id}}", delete_folder)
    app.router.add_get(f"{ROUTE_PREFIX}/export", export_data)
    app.router.add_post(f"{ROUTE_PREFIX}/import", import_data)


def create_app(library: Library, page_size: Optional[int] = None) -> web.Application:
    """Build the aiohttp application serving ``library``."""
    app = web.Application()
    app[LIBRARY_KEY] = library
    if page_size is not None:
        app[PAGE_SIZE_KEY] = page_size
    setup_routes(app)
    return app


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Serve a local prompt library over HTTP")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--config", default=None, help="Path to config.json")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(config.log_level)

    library = Library(
        create_store(config.storage_dir),
        default_folder_name=config.default_folder_name,
        backup_before_import=config.backup_before_import,
    )
    state = library.load_all()
    logger.info(f"Loaded {len(state.prompts)} prompt versions and {len(state.folders)} folders")

    web.run_app(create_app(library, page_size=config.page_size), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
