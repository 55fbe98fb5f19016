"""Project-level configuration, catalog files and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from formulify.formulas.catalog import NamedExpression, as_catalog
from formulify.formulas.errors import InvalidNameError
from formulify.formulas.lexer import is_valid_name


DEFAULT_CONFIG = {
    "catalog_file": "formulas.yaml",
    "max_resolution_depth": 200,
    "validate_before_evaluate": True,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

CONFIG_FILENAME = "formulify.yaml"

DEMO_CONFIG = """\
# formulify project configuration
catalog_file: formulas.yaml
validate_before_evaluate: true
# max_resolution_depth: 200
# logging_fsync: false
"""

DEMO_CATALOG_HEADER = """\
# Each formula may reference other formulas by name.
# A formula equal to its own name is a leaf variable.
"""

DEMO_FORMULAS = {
    "a": "a",
    "b": "b",
    "c": "a + b",
    "d": "1 + c - a * 2",
}


class CatalogFileError(ValueError):
    """A catalog file is missing or malformed."""


class FormulaSpec(BaseModel):
    """One catalog file entry."""

    name: str
    formula: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not is_valid_name(value):
            raise ValueError(f"invalid formula name {value!r}")
        return value

    def to_expression(self) -> NamedExpression:
        return NamedExpression(self.name, self.formula)


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``formulify.yaml``, with defaults.

    Args:
        project_dir: Root of the formulify project.

    Returns:
        Merged configuration dict.

    Raises:
        CatalogFileError: If the file is not a YAML mapping.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        try:
            user_config = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise CatalogFileError(f"{config_path}: invalid YAML: {exc}") from exc
        if not isinstance(user_config, dict):
            raise CatalogFileError(f"{config_path} must contain a mapping")
        config.update(user_config)
    return config


def parse_catalog(data: Any, source: str = "<catalog>") -> dict[str, NamedExpression]:
    """Build a catalog from loaded YAML data.

    Accepts ``{"formulas": {name: formula}}``, ``{"formulas": [{name,
    formula}, ...]}``, or a bare name -> formula mapping.

    Raises:
        CatalogFileError: On malformed entries or duplicate names.
    """
    if isinstance(data, dict) and "formulas" in data:
        data = data["formulas"]
    if data is None:
        return {}

    if isinstance(data, dict):
        raw = [{"name": str(k), "formula": v} for k, v in data.items()]
    elif isinstance(data, list):
        raw = data
    else:
        raise CatalogFileError(f"{source}: expected a mapping or list of formulas")

    catalog: dict[str, NamedExpression] = {}
    for idx, item in enumerate(raw):
        if isinstance(item, dict) and isinstance(item.get("formula"), (int, float)):
            item = {**item, "formula": str(item["formula"])}
        try:
            spec = FormulaSpec.model_validate(item)
        except ValidationError as exc:
            raise CatalogFileError(f"{source}: entry {idx}: {exc}") from exc
        if spec.name in catalog:
            raise CatalogFileError(f"{source}: duplicate formula name {spec.name!r}")
        try:
            catalog[spec.name] = spec.to_expression()
        except InvalidNameError as exc:
            raise CatalogFileError(f"{source}: {exc}") from exc
    return catalog


def load_catalog(path: Path) -> dict[str, NamedExpression]:
    """Load a catalog YAML file.

    Raises:
        CatalogFileError: If the file is missing or malformed.
    """
    path = Path(path)
    if not path.exists():
        raise CatalogFileError(f"Catalog file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise CatalogFileError(f"{path}: invalid YAML: {exc}") from exc
    return parse_catalog(data, source=str(path))


def load_project_catalog(project_dir: Path, config: dict[str, Any] | None = None) -> dict[str, NamedExpression]:
    """Load the catalog named by the project's ``catalog_file`` setting."""
    cfg = config or load_project_config(project_dir)
    return load_catalog(Path(project_dir) / cfg["catalog_file"])


def save_catalog(path: Path, catalog: dict[str, NamedExpression], header: str = "") -> None:
    """Write *catalog* as ``formulas:`` mapping YAML, preserving entry order.

    *header* (YAML comment lines) is written verbatim above the mapping.
    """
    data = {"formulas": {name: expr.formula for name, expr in catalog.items()}}
    Path(path).write_text(header + yaml.safe_dump(data, default_flow_style=False, sort_keys=False))


def scaffold_project(target_dir: Path) -> Path:
    """Create a demo project with a config file and a small catalog.

    Args:
        target_dir: Directory to create (must not already contain a config).

    Returns:
        Path to the created project directory.
    """
    target_dir = Path(target_dir)
    if (target_dir / CONFIG_FILENAME).exists():
        raise FileExistsError(f"{CONFIG_FILENAME} already exists in {target_dir}")

    target_dir.mkdir(parents=True, exist_ok=True)
    (target_dir / CONFIG_FILENAME).write_text(DEMO_CONFIG)
    save_catalog(target_dir / DEFAULT_CONFIG["catalog_file"], as_catalog(DEMO_FORMULAS), header=DEMO_CATALOG_HEADER)
    (target_dir / "logs").mkdir(exist_ok=True)
    return target_dir
