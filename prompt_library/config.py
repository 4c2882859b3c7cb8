import json
import logging
import os
import os.path

import jsonschema

from .core.folder import DEFAULT_FOLDER_NAME
from .core.query import PROMPTS_PER_PAGE

package_path = os.path.dirname(__file__)
schema_path = os.path.join(package_path, "config-schema.json")

HOME_ENV_VAR = "PROMPT_LIBRARY_HOME"


def library_home() -> str:
    return os.environ.get(HOME_ENV_VAR) or os.path.join(os.path.expanduser("~"), ".prompt_library")


def config_path() -> str:
    return os.path.join(library_home(), "config.json")


class LibraryConfig:
    storage_dir: str
    default_folder_name: str
    page_size: int
    backup_before_import: bool
    log_level: str

    def __init__(self, config_data: dict | None = None):
        config_data = dict(config_data or {})
        if config_data:
            with open(schema_path, "r") as schema_file:
                try:
                    jsonschema.validate(config_data, json.load(schema_file))
                except jsonschema.ValidationError as e:
                    logging.error(
                        f"Config file failed to validate against expected schema, using defaults: {e.message}"
                    )
                    config_data = {}

        self.storage_dir = config_data.get("storage_dir") or os.path.join(library_home(), "data")
        self.default_folder_name = config_data.get("default_folder_name", DEFAULT_FOLDER_NAME)
        self.page_size = config_data.get("page_size", PROMPTS_PER_PAGE)
        self.backup_before_import = config_data.get("backup_before_import", True)
        self.log_level = config_data.get("log_level", "INFO")

    def as_dict(self) -> dict[str, str | int | bool]:
        return {
            "storage_dir": self.storage_dir,
            "default_folder_name": self.default_folder_name,
            "page_size": self.page_size,
            "backup_before_import": self.backup_before_import,
            "log_level": self.log_level,
        }

    def save(self, path: str | None = None) -> None:
        path = path or config_path()
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.as_dict(), f, indent=2)


def load_config(path: str | None = None) -> LibraryConfig:
    path = path or config_path()
    config_data = {}
    if os.path.exists(path):
        try:
            with open(path, "r") as config_file:
                config_data = json.load(config_file)
        except json.JSONDecodeError as e:
            logging.error(f"Config file {path} is not valid JSON, using defaults: {e}")
            config_data = {}
        else:
            logging.getLogger(__name__).info(f"Loaded config from: {path}")
    else:
        logging.getLogger(__name__).info(f"No existing config found at {path}, using defaults")

    if not isinstance(config_data, dict):
        logging.error(f"Config file {path} does not contain a JSON object, using defaults")
        config_data = {}
    return LibraryConfig(config_data)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
